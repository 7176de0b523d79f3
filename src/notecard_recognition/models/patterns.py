"""Pattern records: built-in content patterns and user-defined custom patterns."""

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

_FLAG_LETTERS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
}
# Accepted for compatibility with patterns written for other regex engines
_IGNORED_FLAG_LETTERS = frozenset("guy")

# Patterns tagged with this rank below every structural match
FALLBACK_TAG = "fallback"


def regex_flags(flags: str) -> int:
    """Translate a flag string such as ``"mi"`` into ``re`` flag bits.

    Raises:
        ValueError: If the string contains an unknown flag letter
    """
    value = 0
    for letter in flags:
        if letter in _FLAG_LETTERS:
            value |= _FLAG_LETTERS[letter]
        elif letter not in _IGNORED_FLAG_LETTERS:
            msg = f"Unknown regex flag: {letter!r}"
            raise ValueError(msg)
    return value


class PatternCategory(str, Enum):
    """Structural family a pattern belongs to."""

    HEADING = "heading"
    BOLD = "bold"
    QA_PAIR = "qa_pair"
    LIST = "list"
    DEFINITION = "definition"
    CHOICE = "choice"
    CLOZE = "cloze"
    CUSTOM = "custom"


class ContentPattern(BaseModel):
    """A named regex with a field mapping, priority and base confidence."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Unique pattern identifier")
    name: str = Field(min_length=1, description="Human-readable name")
    regex: str = Field(min_length=1, description="Regular expression source")
    flags: str = Field(default="m", description="Flag letters (i, m, s, x)")
    field_mapping: dict[str, int] = Field(
        description="Field name to capture group index (0 is the whole match)"
    )
    priority: int = Field(default=0, description="Higher runs and wins ties first")
    base_confidence: float = Field(ge=0.0, le=1.0, description="Confidence at full coverage")
    category: PatternCategory = Field(default=PatternCategory.CUSTOM)
    description: str = Field(default="", description="What the pattern recognizes")
    examples: list[str] = Field(default_factory=list, description="Sample inputs")
    tags: list[str] = Field(default_factory=list, description="Free-form tags")
    builtin: bool = Field(default=False, description="Shipped with the library")

    @field_validator("flags")
    @classmethod
    def _check_flags(cls, v: str) -> str:
        regex_flags(v)
        return v

    @property
    def compile_flags(self) -> int:
        return regex_flags(self.flags)

    @property
    def is_fallback(self) -> bool:
        """Catch-all pattern that only wins when nothing structural matched."""
        return FALLBACK_TAG in self.tags


class PatternTestCase(BaseModel):
    """Sample input a custom pattern must (or must not) match."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    input: str
    expected_fields: dict[str, str] = Field(
        default_factory=dict, alias="expectedFields"
    )
    should_match: bool = Field(default=True, alias="shouldMatch")


class CustomPatternRecord(BaseModel):
    """Serializable form of a user-defined pattern, as stored in JSON."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | None = Field(default=None, description="Assigned on creation when absent")
    name: str = Field(min_length=1)
    description: str = ""
    regex: str = Field(min_length=1)
    flags: str = "m"
    field_mappings: dict[str, int] = Field(alias="fieldMappings")
    priority: int = 50
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    category: PatternCategory = PatternCategory.CUSTOM
    enabled: bool = True
    tags: list[str] = Field(default_factory=list)
    test_cases: list[PatternTestCase] = Field(default_factory=list, alias="testCases")

    @field_validator("flags")
    @classmethod
    def _check_flags(cls, v: str) -> str:
        regex_flags(v)
        return v

    def to_content_pattern(self) -> ContentPattern:
        """Build the registry form of this record (requires an id)."""
        if not self.id:
            msg = "custom pattern record has no id"
            raise ValueError(msg)
        return ContentPattern(
            id=self.id,
            name=self.name,
            regex=self.regex,
            flags=self.flags,
            field_mapping=dict(self.field_mappings),
            priority=self.priority,
            base_confidence=self.confidence,
            category=self.category,
            description=self.description,
            examples=[case.input for case in self.test_cases if case.should_match],
            tags=list(self.tags),
        )
