"""Config sub-models for preprocessing and the pattern safety screen."""

from __future__ import annotations

from pydantic import BaseModel, Field

# Strategy names in their default execution order
DEFAULT_STRATEGY_ORDER: tuple[str, ...] = (
    "strict_regex",
    "multi_pattern",
    "boundary_detection",
    "hybrid",
    "relaxed_regex",
    "keyword_heuristic",
)


class PreprocessingSettings(BaseModel):
    """Which normalization passes run before recognition."""

    enabled: bool = True
    normalize_headings: bool = True
    normalize_punctuation: bool = True
    normalize_terminal_punctuation: bool = Field(
        default=False,
        description="Also map full-width ？！。 (changes visible question text)",
    )
    standardize_quotes: bool = True
    normalize_whitespace: bool = True
    normalize_line_breaks: bool = True
    remove_extra_spaces: bool = True
    preserve_code_blocks: bool = True
    preserve_links: bool = True
    preserve_math: bool = True


class PatternSafetySettings(BaseModel):
    """Limits applied to user-supplied regular expressions."""

    max_length: int = Field(default=1000, ge=1)
    max_complexity: int = Field(default=100, ge=1)
    allow_lookahead: bool = True
    allow_lookbehind: bool = True
    allow_backreferences: bool = False
    timeout_seconds: float = Field(
        default=1.0, gt=0.0, description="Hard budget per adversarial probe string"
    )
    run_probe: bool = Field(
        default=True, description="Execute the timed adversarial probe"
    )


__all__ = [
    "DEFAULT_STRATEGY_ORDER",
    "PatternSafetySettings",
    "PreprocessingSettings",
]
