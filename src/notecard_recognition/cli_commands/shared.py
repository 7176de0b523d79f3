"""Shared utilities for CLI commands."""

import sys
from pathlib import Path
from typing import Any

import typer
from rich.console import Console

from notecard_recognition.config import Config, load_config, set_config
from notecard_recognition.exceptions import ConfigurationError, NotecardRecognitionError
from notecard_recognition.recognition.api import RecognitionService
from notecard_recognition.utils.logging import configure_logging, get_logger

# Shared console for all commands
console = Console()

# Cached across commands within one process
_config: Config | None = None
_logger: Any | None = None


def get_config_and_logger(
    config_path: Path | None = None,
    log_level: str = "INFO",
    verbose: bool = False,
) -> tuple[Config, Any]:
    """Load configuration and logger (dependency injection helper).

    Args:
        config_path: Optional path to config file
        log_level: Logging level
        verbose: Show all log messages on terminal (for debugging)

    Returns:
        Tuple of (Config, Logger)
    """
    global _config, _logger

    if _config is None or config_path is not None:
        try:
            _config = load_config(config_path)
        except ConfigurationError as e:
            console.print(f"[bold red]Configuration error:[/bold red] {e.message}")
            if e.suggestion:
                console.print(f"[yellow]Suggestion:[/yellow] {e.suggestion}")
            raise typer.Exit(code=2) from e
        set_config(_config)

        configure_logging(
            log_level or _config.log_level,
            log_dir=_config.log_dir,
            log_file=_config.log_file,
            verbose=verbose,
        )
        _logger = get_logger("cli")

    return _config, _logger


def reset_cli_state() -> None:
    """Forget the cached config and logger (for tests)."""
    global _config, _logger
    _config = None
    _logger = None


def build_service(config: Config) -> RecognitionService:
    """Recognition service for one command, exiting cleanly on a bad pattern file."""
    try:
        return RecognitionService(config)
    except NotecardRecognitionError as e:
        console.print(f"[bold red]Cannot load custom patterns:[/bold red] {e.message}")
        raise typer.Exit(code=2) from e


def read_source(source: str) -> str:
    """Read note text from a file path, or from stdin when the path is ``-``."""
    if source == "-":
        return sys.stdin.read()
    path = Path(source)
    if not path.is_file():
        console.print(f"[bold red]Error:[/bold red] File not found: {source}")
        raise typer.Exit(code=1)
    return path.read_text(encoding="utf-8")
