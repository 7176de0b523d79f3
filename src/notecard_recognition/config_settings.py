"""Settings model for the recognition engine (split from config.py)."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .config_models import (
    DEFAULT_STRATEGY_ORDER,
    PatternSafetySettings,
    PreprocessingSettings,
)
from .error_codes import ErrorCode
from .exceptions import ConfigurationError

VALID_LANGUAGES = ("auto", "zh", "en", "ja", "ko", "ru")


class Config(BaseSettings):
    """Recognition configuration using pydantic-settings.

    Environment variables use the ``NOTECARD_`` prefix, e.g.
    ``NOTECARD_ACCEPTANCE_THRESHOLD=0.6``.
    """

    model_config = SettingsConfigDict(
        env_prefix="NOTECARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        validate_assignment=True,
    )

    # Pipeline thresholds
    acceptance_threshold: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="A strategy result is accepted when its confidence exceeds this",
    )
    protective_confidence: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Confidence assigned to the first-line/rest fallback split",
    )
    boundary_min_confidence: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Boundary detection results below this are discarded",
    )
    truncation_coverage_threshold: float = Field(
        default=0.9,
        ge=0.0,
        le=1.0,
        description="Field coverage below this raises a truncation warning",
    )
    multi_pattern_warning_confidence: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Pattern matches below this carry a low-confidence warning",
    )
    hybrid_boundary_confidence: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Hybrid strategy trusts the boundary detector above this",
    )
    strategy_order: list[str] = Field(
        default_factory=lambda: list(DEFAULT_STRATEGY_ORDER),
        description="Strategies to run, in order",
    )

    # Recognition behaviour
    language: str = Field(
        default="auto", description="Content language hint (auto, zh, en, ja, ko, ru)"
    )
    preserve_formatting: bool = Field(
        default=True, description="Keep heading markup inside extracted answers"
    )
    preprocessing: PreprocessingSettings = Field(default_factory=PreprocessingSettings)
    pattern_safety: PatternSafetySettings = Field(
        default_factory=PatternSafetySettings
    )
    custom_patterns_path: Path | None = Field(
        default=None, description="JSON file holding custom pattern records"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_dir: Path | None = Field(
        default=None, description="Directory for the rotating JSON log file"
    )
    log_file: Path | None = Field(default=None, description="Explicit log file path")

    @field_validator("custom_patterns_path", "log_dir", "log_file", mode="before")
    @classmethod
    def parse_optional_path(cls, v: Any) -> Path | None:
        """Convert string to Path, treating empty strings as unset."""
        if v is None or v == "":
            return None
        if isinstance(v, str):
            return Path(v).expanduser()
        if isinstance(v, Path):
            return v.expanduser()
        msg = f"Path field must be string or Path, got {type(v).__name__}"
        raise ValueError(msg)

    @field_validator("language", "log_level", mode="before")
    @classmethod
    def _normalize_case(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @model_validator(mode="after")
    def validate_config(self) -> Config:
        """Validate cross-field configuration values after initialization."""
        if not self.strategy_order:
            msg = "strategy_order must name at least one strategy"
            raise ConfigurationError(
                msg,
                error_code=ErrorCode.CFG_INVALID.value,
                suggestion=f"Use a subset of: {', '.join(DEFAULT_STRATEGY_ORDER)}",
            )

        unknown = [s for s in self.strategy_order if s not in DEFAULT_STRATEGY_ORDER]
        if unknown:
            msg = f"Unknown strategies in strategy_order: {', '.join(unknown)}"
            raise ConfigurationError(
                msg,
                error_code=ErrorCode.CFG_INVALID.value,
                suggestion=f"Valid strategies: {', '.join(DEFAULT_STRATEGY_ORDER)}",
            )

        if len(set(self.strategy_order)) != len(self.strategy_order):
            msg = "strategy_order lists a strategy more than once"
            raise ConfigurationError(
                msg,
                error_code=ErrorCode.CFG_INVALID.value,
                suggestion="Remove the duplicate entries from strategy_order",
            )

        if self.language.lower() not in VALID_LANGUAGES:
            msg = f"Invalid language: {self.language}"
            raise ConfigurationError(
                msg,
                error_code=ErrorCode.CFG_INVALID.value,
                suggestion=f"Use one of: {', '.join(VALID_LANGUAGES)}",
            )

        if self.log_level.upper() not in (
            "TRACE",
            "DEBUG",
            "INFO",
            "WARNING",
            "ERROR",
            "CRITICAL",
        ):
            msg = f"Invalid log_level: {self.log_level}"
            raise ConfigurationError(
                msg,
                error_code=ErrorCode.CFG_INVALID.value,
                suggestion="Use DEBUG, INFO, WARNING, ERROR or CRITICAL",
            )

        if self.custom_patterns_path is not None:
            if self.custom_patterns_path.exists() and not self.custom_patterns_path.is_file():
                msg = f"custom_patterns_path is not a file: {self.custom_patterns_path}"
                raise ConfigurationError(
                    msg,
                    error_code=ErrorCode.CFG_PATH_INVALID.value,
                    suggestion="Point custom_patterns_path at a JSON file",
                )

        return self
