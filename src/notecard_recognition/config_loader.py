"""Locate, read and validate config.yaml."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .config_settings import Config
from .error_codes import ErrorCode
from .exceptions import ConfigurationError
from .utils.logging import get_logger

CONFIG_ENV_VAR = "NOTECARD_RECOGNITION_CONFIG"
DEFAULT_CONFIG_NAME = "config.yaml"

logger = get_logger(__name__)

_config: Config | None = None


def find_config_file(config_path: Path | None = None) -> Path | None:
    """First existing YAML file among the explicit path, the env var and ./config.yaml.

    Raises:
        ConfigurationError: If an explicit ``config_path`` does not exist
    """
    if config_path is not None:
        path = config_path.expanduser()
        if not path.exists():
            msg = f"Config file not found: {config_path}"
            raise ConfigurationError(
                msg,
                error_code=ErrorCode.CFG_PATH_INVALID.value,
                suggestion="Check the --config path or omit it to use defaults",
            )
        return path

    candidates = [Path.cwd() / DEFAULT_CONFIG_NAME]
    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        candidates.insert(0, Path(env_path).expanduser())
    return next((path for path in candidates if path.exists()), None)


def read_config_file(path: Path, *, strict_config: bool = True) -> dict[str, Any]:
    """Parse a YAML config file into a mapping of settings.

    With ``strict_config=False`` an unreadable or malformed file is logged
    and treated as empty.
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        logger.error("config_file_unreadable", config_path=str(path), error=str(e))
        if not strict_config:
            return {}
        raise ConfigurationError(
            f"Failed to parse config file: {path}",
            error_code=ErrorCode.CFG_INVALID.value,
            suggestion=f"Fix the YAML syntax and save the file as UTF-8 ({e})",
        ) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file must contain a mapping: {path}",
            error_code=ErrorCode.CFG_INVALID.value,
            suggestion="Write settings as top-level 'key: value' pairs",
        )
    return data


def load_config(
    config_path: Path | None = None, *, strict_config: bool = True
) -> Config:
    """Build a Config from environment variables and an optional YAML file.

    Values from the YAML file take precedence over environment variables.

    Raises:
        ConfigurationError: For a missing explicit path, unreadable YAML
            (when ``strict_config``) or out-of-range values
    """
    path = find_config_file(config_path)
    settings = read_config_file(path, strict_config=strict_config) if path else {}

    try:
        config = Config(**settings)
    except ValidationError as e:
        problems = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        logger.error(
            "config_invalid",
            config_path=str(path) if path else None,
            problems=problems,
        )
        raise ConfigurationError(
            "Configuration values are invalid",
            error_code=ErrorCode.CFG_INVALID.value,
            suggestion="; ".join(problems),
        ) from e

    logger.debug(
        "config_loaded",
        config_path=str(path) if path else None,
        keys=sorted(settings),
        strategies=len(config.strategy_order),
        language=config.language,
    )
    return config


def get_config() -> Config:
    """Process-wide Config, loaded on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: Config) -> None:
    global _config
    _config = config


def reset_config() -> None:
    """Drop the cached Config so the next get_config() reloads it."""
    global _config
    _config = None


__all__ = [
    "CONFIG_ENV_VAR",
    "Config",
    "find_config_file",
    "get_config",
    "load_config",
    "read_config_file",
    "reset_config",
    "set_config",
]
