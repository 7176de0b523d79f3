"""Parsing commands: parse, recognize, normalize, boundaries, choice."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.markup import escape
from rich.table import Table

from ..models.data import NOTES_FIELD, ParseMode, ParseResult
from ..models.template import Template
from ..recognition.choice import parse_choice_question
from .shared import build_service, console, get_config_and_logger, read_source

SourceArg = Annotated[str, typer.Argument(help="Note file, or - to read stdin")]
ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", help="Path to config.yaml", exists=True),
]
LogLevelOption = Annotated[
    str,
    typer.Option("--log-level", help="Log level (DEBUG, INFO, WARN, ERROR)"),
]
JsonOption = Annotated[bool, typer.Option("--json", help="Print the result as JSON")]


def parse_mappings(mappings: list[str]) -> dict[str, int]:
    """Turn ``field=N`` options into a field mapping."""
    result: dict[str, int] = {}
    for item in mappings:
        name, sep, index = item.partition("=")
        if not sep or not name.strip() or not index.strip().isdigit():
            msg = f"Expected FIELD=GROUP, got {item!r}"
            raise typer.BadParameter(msg, param_hint="--map")
        result[name.strip()] = int(index)
    return result


def _fields_table(fields: dict[str, str], title: str) -> Table:
    table = Table(title=title, show_lines=True)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value")
    for name, value in fields.items():
        if name == NOTES_FIELD:
            continue
        table.add_row(name, escape(value) if value else "[dim](empty)[/dim]")
    return table


def _print_warnings(warnings: list[str]) -> None:
    for warning in warnings:
        console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")


def _print_parse_result(result: ParseResult) -> None:
    status = "[green]succeeded[/green]" if result.success else "[red]not recognized[/red]"
    console.print(
        f"Mode: [bold]{result.mode.value}[/bold]  State: {result.state.value}  "
        f"Result: {status}  Confidence: {result.confidence:.2f}"
    )
    if result.matched_pattern:
        console.print(f"Matched: [bold]{result.matched_pattern}[/bold]")
    if result.success:
        console.print(_fields_table(result.fields, "Extracted fields"))
    if result.error:
        code = escape(f" [{result.error_code.value}]") if result.error_code else ""
        console.print(f"[bold red]Error{code}:[/bold red] {escape(result.error)}")
    _print_warnings(result.warnings)

    preserved = result.preserved_content
    if preserved is not None:
        console.print(
            f"Content preserved with fallback template "
            f"[bold]{preserved.fallback_template_id}[/bold] "
            f"after {len(preserved.attempts)} attempt(s)"
        )
        for suggestion in preserved.repair_suggestions:
            console.print(f"  - {suggestion}")


def register(app: typer.Typer) -> None:
    """Register parsing commands on the given Typer app."""

    @app.command()
    def parse(
        source: SourceArg = "-",
        mode: Annotated[
            ParseMode,
            typer.Option("--mode", "-m", help="lenient for raw notes, strict for templated ones"),
        ] = ParseMode.LENIENT,
        template_regex: Annotated[
            str | None,
            typer.Option("--template-regex", help="Regex of the bound template"),
        ] = None,
        mappings: Annotated[
            list[str] | None,
            typer.Option("--map", help="Template field mapping FIELD=GROUP (repeatable)"),
        ] = None,
        required: Annotated[
            list[str] | None,
            typer.Option("--required", help="Required template field (repeatable)"),
        ] = None,
        flags: Annotated[
            str, typer.Option("--flags", help="Template regex flags (i, m, s, x)")
        ] = "m",
        as_json: JsonOption = False,
        config_path: ConfigOption = None,
        log_level: LogLevelOption = "INFO",
    ) -> None:
        """Parse a note with the lenient or strict policy."""
        config, logger = get_config_and_logger(config_path, log_level)

        template: Template | None = None
        if template_regex is not None:
            try:
                template = Template(
                    id="cli-template",
                    regex=template_regex,
                    flags=flags,
                    field_mapping=parse_mappings(mappings or []),
                    required_fields=required or None,
                )
            except ValidationError as e:
                console.print(f"[bold red]Invalid template:[/bold red] {e.errors()[0]['msg']}")
                raise typer.Exit(code=2) from e
        elif mappings or required:
            raise typer.BadParameter(
                "--map and --required need --template-regex", param_hint="--map"
            )

        content = read_source(source)
        result = build_service(config).parse(content, mode, template)
        logger.debug("cli_parse_finished", mode=mode.value, success=result.success)

        if as_json:
            typer.echo(result.model_dump_json(indent=2))
        else:
            _print_parse_result(result)

        if not result.success:
            raise typer.Exit(code=1)

    @app.command()
    def recognize(
        source: SourceArg = "-",
        as_json: JsonOption = False,
        config_path: ConfigOption = None,
        log_level: LogLevelOption = "INFO",
    ) -> None:
        """Run the recognition pipeline and show the winning strategy."""
        config, _logger = get_config_and_logger(config_path, log_level)
        content = read_source(source)
        result = build_service(config).parse_with_pipeline(content)

        if as_json:
            typer.echo(result.model_dump_json(indent=2))
            return

        console.print(
            f"Strategy: [bold]{result.strategy}[/bold]  Method: {result.method.value}  "
            f"Confidence: {result.confidence:.2f}"
        )
        if result.pattern_id:
            console.print(f"Pattern: [bold]{result.pattern_id}[/bold]")
        console.print(_fields_table(result.fields, "Recognized fields"))
        _print_warnings(result.warnings)

    @app.command()
    def normalize(
        source: SourceArg = "-",
        show_changes: Annotated[
            bool,
            typer.Option("--show-changes", help="Also list applied passes and protected spans"),
        ] = False,
        config_path: ConfigOption = None,
        log_level: LogLevelOption = "INFO",
    ) -> None:
        """Print normalized note text."""
        config, _logger = get_config_and_logger(config_path, log_level)
        content = read_source(source)
        service = build_service(config)
        result = service.normalize(content)

        typer.echo(result.processed)
        if not show_changes:
            return

        stats = result.statistics()
        console.print(
            f"\nPasses applied: {', '.join(result.transformations) or 'none'}"
        )
        console.print(
            f"Length: {stats['original_length']} -> {stats['processed_length']}  "
            f"Protected spans: {json.dumps(stats['preserved'])}"
        )
        diagnosis = service.preprocessor.needs_preprocessing(content)
        for reason in diagnosis.reasons:
            console.print(f"  - {reason}")
        for recommendation in diagnosis.recommendations:
            console.print(f"[cyan]Tip:[/cyan] {recommendation}")

    @app.command()
    def boundaries(
        source: SourceArg = "-",
        config_path: ConfigOption = None,
        log_level: LogLevelOption = "INFO",
    ) -> None:
        """Show line classification and the question/answer boundary."""
        config, _logger = get_config_and_logger(config_path, log_level)
        content = read_source(source)
        parsed = build_service(config).detect_boundaries(content)

        table = Table(title="Sections")
        table.add_column("Line", justify="right", style="dim")
        table.add_column("Kind", style="cyan")
        table.add_column("Level", justify="right")
        table.add_column("Text")
        for section in parsed.sections:
            marker = ""
            if section.line == parsed.question_index:
                marker = " [green](question)[/green]"
            elif section.line == parsed.boundary_index:
                marker = " [red](boundary)[/red]"
            table.add_row(
                str(section.line + 1),
                section.kind.value,
                str(section.level or ""),
                f"{escape(section.text)}{marker}",
            )
        console.print(table)

        console.print(f"Question: [bold]{escape(parsed.question) or '(none)'}[/bold]")
        console.print(f"Answer:\n{escape(parsed.answer) or '(none)'}")
        console.print(
            f"Boundary: {parsed.boundary_reason}  Language: {parsed.language}  "
            f"Confidence: {parsed.confidence:.2f}"
        )
        _print_warnings(parsed.warnings)

    @app.command()
    def choice(
        options_file: Annotated[
            str, typer.Argument(help="File with one option per line, or - for stdin")
        ],
        answer: Annotated[
            str, typer.Option("--answer", "-a", help="Correct answer, e.g. 'B' or 'A, C'")
        ],
        as_json: JsonOption = False,
    ) -> None:
        """Parse a multiple-choice option block and its correct answer."""
        result = parse_choice_question(read_source(options_file), answer)

        if as_json:
            typer.echo(result.model_dump_json(indent=2))
        else:
            table = Table(title="Options")
            table.add_column("Id", style="cyan")
            table.add_column("Option")
            table.add_column("Correct", justify="center")
            for option in result.options:
                table.add_row(
                    option.id,
                    escape(option.content),
                    "[green]yes[/green]" if option.is_correct else "",
                )
            console.print(table)
            if result.success:
                kind = "multiple answers" if result.is_multiple else "single answer"
                console.print(f"Correct: {', '.join(result.correct_answers)} ({kind})")
            if result.error:
                code = escape(f" [{result.error_code.value}]") if result.error_code else ""
                console.print(f"[bold red]Error{code}:[/bold red] {escape(result.error)}")
            _print_warnings(result.warnings)

        if not result.success:
            raise typer.Exit(code=1)
