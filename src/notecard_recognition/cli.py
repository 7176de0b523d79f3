"""Command-line interface for note recognition."""

from __future__ import annotations

import typer

from .cli_commands import parse_commands, pattern_commands

app = typer.Typer(
    name="notecard-recognition",
    help="Recognize flashcard fields in freeform notes.",
    no_args_is_help=True,
)

app.add_typer(
    pattern_commands.patterns_app,
    name="patterns",
    help="Pattern library commands",
)

parse_commands.register(app)


def cli() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    cli()
