"""Pattern library commands: list, check, test, import, export."""

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.table import Table

from ..exceptions import PatternImportError
from ..models.patterns import PatternCategory, regex_flags
from ..recognition.api import safety_options_from_settings
from ..recognition.matcher import describe_candidate
from ..recognition.pattern_safety import validate_pattern
from .shared import build_service, console, get_config_and_logger, read_source

patterns_app = typer.Typer(
    name="patterns",
    help="Inspect, check and exchange content patterns.",
    no_args_is_help=True,
)

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", help="Path to config.yaml", exists=True),
]
LogLevelOption = Annotated[
    str,
    typer.Option("--log-level", help="Log level (DEBUG, INFO, WARN, ERROR)"),
]


@patterns_app.command(name="list")
def list_patterns(
    category: Annotated[
        PatternCategory | None,
        typer.Option("--category", "-c", help="Only patterns of this category"),
    ] = None,
    tag: Annotated[str | None, typer.Option("--tag", help="Only patterns with this tag")] = None,
    config_path: ConfigOption = None,
    log_level: LogLevelOption = "INFO",
) -> None:
    """Show registered patterns, highest priority first."""
    config, _logger = get_config_and_logger(config_path, log_level)
    registry = build_service(config).registry

    patterns = registry.by_category(category) if category else registry.all()
    if tag:
        patterns = [p for p in patterns if tag in p.tags]

    table = Table(title=f"Patterns ({len(patterns)})")
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Category")
    table.add_column("Priority", justify="right")
    table.add_column("Base", justify="right")
    table.add_column("Fields")
    table.add_column("Source", style="dim")
    for pattern in patterns:
        table.add_row(
            pattern.id,
            pattern.category.value,
            str(pattern.priority),
            f"{pattern.base_confidence:.2f}",
            ", ".join(pattern.field_mapping),
            "built-in" if pattern.builtin else "custom",
        )
    console.print(table)


@patterns_app.command()
def check(
    regex: Annotated[str, typer.Argument(help="Regular expression to screen")],
    flags: Annotated[str, typer.Option("--flags", help="Regex flags (i, m, s, x)")] = "m",
    no_probe: Annotated[
        bool, typer.Option("--no-probe", help="Skip the timed adversarial probe")
    ] = False,
    as_json: Annotated[bool, typer.Option("--json", help="Print the report as JSON")] = False,
    config_path: ConfigOption = None,
    log_level: LogLevelOption = "INFO",
) -> None:
    """Run the ReDoS and complexity screen on a regex."""
    config, _logger = get_config_and_logger(config_path, log_level)
    options = safety_options_from_settings(config.pattern_safety)
    if no_probe:
        options.run_probe = False

    try:
        flag_bits = regex_flags(flags)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--flags") from e

    report = validate_pattern(regex, flag_bits, options)

    if as_json:
        typer.echo(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
    else:
        verdict = "[green]accepted[/green]" if report.is_valid else "[red]rejected[/red]"
        console.print(f"Pattern {verdict}")
        if report.error:
            code = escape(f" [{report.error_code.value}]") if report.error_code else ""
            console.print(f"[bold red]Reason{code}:[/bold red] {escape(report.error)}")
        console.print(
            f"Complexity: {report.complexity} ({report.complexity_level.value})  "
            f"Risk: {report.risk_level.value}"
        )
        if report.probe is not None:
            console.print(
                f"Probe: max {report.probe.max_seconds * 1000:.1f} ms, "
                f"average {report.probe.average_seconds * 1000:.1f} ms"
            )
        for issue in report.critical_issues:
            console.print(f"[bold red]Critical:[/bold red] {escape(issue)}")
        for warning in report.warnings:
            console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")
        for suggestion in report.suggestions:
            console.print(f"[cyan]Tip:[/cyan] {escape(suggestion)}")

    if not report.is_valid:
        raise typer.Exit(code=1)


@patterns_app.command(name="test")
def test_pattern(
    pattern_id: Annotated[str, typer.Argument(help="Id of a registered pattern")],
    source: Annotated[str, typer.Argument(help="Note file, or - to read stdin")] = "-",
    config_path: ConfigOption = None,
    log_level: LogLevelOption = "INFO",
) -> None:
    """Dry-run one pattern against a note."""
    config, _logger = get_config_and_logger(config_path, log_level)
    service = build_service(config)
    result = service.matcher.test_pattern(pattern_id, read_source(source))

    if not result.matched or result.candidate is None:
        console.print(f"[red]No match:[/red] {result.reason}")
        raise typer.Exit(code=1)

    console.print(f"[green]Matched[/green] {escape(describe_candidate(result.candidate))}")
    for name, value in result.candidate.fields.items():
        console.print(f"[cyan]{name}:[/cyan] {escape(value)}")


@patterns_app.command(name="import")
def import_patterns(
    file: Annotated[Path, typer.Argument(help="JSON array of custom pattern records")],
    save: Annotated[
        Path | None,
        typer.Option("--save", help="Write every accepted pattern to this JSON file"),
    ] = None,
    config_path: ConfigOption = None,
    log_level: LogLevelOption = "INFO",
) -> None:
    """Validate and import custom patterns; each record is checked on its own."""
    config, _logger = get_config_and_logger(config_path, log_level)
    manager = build_service(config).custom_patterns

    try:
        report = manager.import_file(file)
    except PatternImportError as e:
        console.print(f"[bold red]Import failed:[/bold red] {escape(e.message)}")
        if e.suggestion:
            console.print(f"[yellow]Suggestion:[/yellow] {escape(e.suggestion)}")
        raise typer.Exit(code=1) from e

    for pattern_id in report.imported:
        console.print(f"[green]Imported[/green] {pattern_id}")
    for error in report.errors:
        console.print(f"[red]Rejected[/red] {escape(error)}")
    console.print(
        f"{len(report.imported)} imported, {len(report.errors)} rejected"
    )

    if save is not None:
        count = manager.export_file(save)
        console.print(f"Saved {count} pattern(s) to {save}")

    if not report.success:
        raise typer.Exit(code=1)


@patterns_app.command(name="export")
def export_patterns(
    output: Annotated[Path, typer.Argument(help="File to write the JSON array to")],
    config_path: ConfigOption = None,
    log_level: LogLevelOption = "INFO",
) -> None:
    """Export the custom patterns loaded from custom_patterns_path."""
    config, _logger = get_config_and_logger(config_path, log_level)
    count = build_service(config).custom_patterns.export_file(output)
    console.print(f"Exported {count} custom pattern(s) to {output}")
