"""CLI command modules for notecard-recognition.

- shared.py: Common utilities (config/logger loading, console, input reading)
- parse_commands.py: parse, recognize, normalize, boundaries, choice
- pattern_commands.py: patterns list/check/test/import/export
"""

from .parse_commands import parse_mappings
from .pattern_commands import patterns_app
from .shared import get_config_and_logger, read_source, reset_cli_state

__all__ = [
    "get_config_and_logger",
    "parse_mappings",
    "patterns_app",
    "read_source",
    "reset_cli_state",
]
