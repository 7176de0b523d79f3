"""Note templates: a regex plus the fields it fills."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .patterns import regex_flags

# Fields that are required whenever a template maps them
BASIC_REQUIRED_FIELDS = ("question", "answer", "front", "back")


class Template(BaseModel):
    """A card template bound to a note, as consumed by the strict parser."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Template identifier")
    name: str = Field(default="", description="Display name")
    regex: str = Field(min_length=1, description="Regex with one group per field")
    flags: str = Field(default="m", description="Flag letters (i, m, s, x)")
    field_mapping: dict[str, int] = Field(
        description="Field name to capture group index"
    )
    required_fields: list[str] | None = Field(
        default=None,
        description="Fields that must be non-empty; defaults to the basic fields mapped",
    )

    @field_validator("flags")
    @classmethod
    def _check_flags(cls, v: str) -> str:
        regex_flags(v)
        return v

    @property
    def compile_flags(self) -> int:
        return regex_flags(self.flags)

    def effective_required_fields(self) -> list[str]:
        """Required fields, defaulting to the basic fields this template maps."""
        if self.required_fields is not None:
            return list(self.required_fields)
        return [name for name in self.field_mapping if name in BASIC_REQUIRED_FIELDS]
