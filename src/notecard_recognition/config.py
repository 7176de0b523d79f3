"""Configuration entrypoint (re-exported from split modules)."""

from .config_loader import get_config, load_config, reset_config, set_config
from .config_models import (
    DEFAULT_STRATEGY_ORDER,
    PatternSafetySettings,
    PreprocessingSettings,
)
from .config_settings import Config

__all__ = [
    "DEFAULT_STRATEGY_ORDER",
    "Config",
    "PatternSafetySettings",
    "PreprocessingSettings",
    "get_config",
    "load_config",
    "reset_config",
    "set_config",
]
