"""Data models for recognition results."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from ..error_codes import ErrorCode, ErrorKind, code_for_kind
from ..exceptions import (
    FieldMappingGapError,
    InvalidPatternError,
    PatternMismatchError,
    RecognitionError,
    RequiredFieldEmptyError,
    TemplateMismatchError,
    TruncationRiskError,
)
from .patterns import ContentPattern

# Field that always carries the untouched input text
NOTES_FIELD = "notes"


def _utcnow() -> datetime:
    return datetime.now(UTC)


# Preprocessing


class PreservedSpan(BaseModel):
    """A span protected from normalization and restored verbatim."""

    kind: str = Field(description="code_block, inline_code, image, link, url or math")
    original: str = Field(description="Exact original text")
    placeholder: str = Field(description="Token that stood in for the span")


class PreprocessResult(BaseModel):
    """Output of the format preprocessor."""

    processed: str = Field(description="Normalized text with protected spans restored")
    original: str = Field(description="Input text")
    transformations: list[str] = Field(
        default_factory=list, description="Names of passes that changed the text"
    )
    preserved_spans: list[PreservedSpan] = Field(default_factory=list)

    @computed_field
    def changed(self) -> bool:
        """Check if any pass modified the text."""
        return self.processed != self.original

    def statistics(self) -> dict[str, Any]:
        """Summary counts for diagnostics and the CLI."""
        by_kind: dict[str, int] = {}
        for span in self.preserved_spans:
            by_kind[span.kind] = by_kind.get(span.kind, 0) + 1
        return {
            "original_length": len(self.original),
            "processed_length": len(self.processed),
            "length_delta": len(self.processed) - len(self.original),
            "transformations": len(self.transformations),
            "preserved": by_kind,
        }


class PreprocessingDiagnosis(BaseModel):
    """Which normalization passes a text would benefit from."""

    needs_preprocessing: bool
    reasons: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


# Pattern matching


class MatchCandidate(BaseModel):
    """One pattern's match against a piece of content, with its scores."""

    model_config = ConfigDict(frozen=True)

    pattern: ContentPattern
    groups: tuple[str | None, ...] = Field(description="Raw capture groups (0 first)")
    fields: dict[str, str] = Field(description="Mapped and trimmed field values")
    confidence: float = Field(ge=0.0, le=1.0)
    coverage: float = Field(ge=0.0, le=1.0)
    score: float = Field(ge=0.0, le=1.0, description="Composite selection score")
    registration_index: int = Field(ge=0)
    span: tuple[int, int]

    @property
    def pattern_id(self) -> str:
        return self.pattern.id


class MatchOutcome(BaseModel):
    """Every candidate for a piece of content, best first."""

    best: MatchCandidate | None = None
    candidates: list[MatchCandidate] = Field(default_factory=list)
    attempted: int = 0
    elapsed_ms: float = 0.0

    @computed_field
    def matched(self) -> bool:
        """Check if any pattern matched."""
        return self.best is not None


# Boundary detection


class SectionKind(str, Enum):
    HEADING = "heading"
    CONTENT = "content"
    SEPARATOR = "separator"


class Section(BaseModel):
    """One classified line of the input."""

    model_config = ConfigDict(frozen=True)

    kind: SectionKind
    level: int | None = Field(default=None, description="Heading level 1-6")
    text: str = Field(description="Heading text, or the stripped line")
    raw: str = Field(description="The line exactly as it appeared")
    line: int = Field(ge=0)
    start: int = Field(ge=0, description="Offset of the line in the input")
    end: int = Field(ge=0, description="Offset just past the line (newline excluded)")


class ParsedContent(BaseModel):
    """Question and answer as located by the boundary detector."""

    question: str
    answer: str
    context: str = Field(default="", description="Lines above the question")
    sections: list[Section] = Field(default_factory=list)
    question_index: int | None = None
    boundary_index: int | None = Field(
        default=None, description="First section after the answer"
    )
    boundary_reason: str = "end_of_document"
    language: str = "en"
    confidence: float = Field(ge=0.0, le=1.0)
    warnings: list[str] = Field(default_factory=list)


class CompletenessReport(BaseModel):
    """Whitespace-insensitive coverage of extracted fields against the input."""

    is_complete: bool
    coverage: float = Field(ge=0.0, le=1.0)
    original_length: int
    extracted_length: int
    missing_characters: int


class FixSuggestion(BaseModel):
    """Issues found in a parse and what to do about them."""

    is_valid: bool
    issues: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


# Recognition pipeline


class ParseMethod(str, Enum):
    REGEX = "regex"
    INTELLIGENT = "intelligent"
    HYBRID = "hybrid"


class EnhancedParseResult(BaseModel):
    """Pipeline result. ``fields['notes']`` always holds the original input."""

    success: bool
    fields: dict[str, str] = Field(default_factory=dict)
    confidence: float = Field(ge=0.0, le=1.0)
    method: ParseMethod = ParseMethod.REGEX
    strategy: str | None = Field(default=None, description="Strategy that produced it")
    pattern_id: str | None = Field(default=None, description="Winning pattern, if any")
    warnings: list[str] = Field(default_factory=list)
    original_content: str
    error_kind: ErrorKind | None = None

    @model_validator(mode="after")
    def _carry_notes(self) -> "EnhancedParseResult":
        self.fields[NOTES_FIELD] = self.original_content
        return self

    @property
    def question(self) -> str:
        return self.fields.get("question", "")

    @property
    def answer(self) -> str:
        return self.fields.get("answer", "")


# Dual-mode orchestration


class ParseMode(str, Enum):
    LENIENT = "lenient"
    STRICT = "strict"


class ParseState(str, Enum):
    IDLE = "idle"
    PARSING = "parsing"
    SUCCEEDED = "succeeded"
    PRESERVED_FALLBACK = "preserved_fallback"
    FAILED = "failed"


class ParseAttempt(BaseModel):
    """Record of one pattern tried by the lenient policy."""

    strategy: str
    pattern: str
    success: bool
    extracted_fields: dict[str, str] = Field(default_factory=dict)
    error: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)


class PreservedContent(BaseModel):
    """Unparseable content kept verbatim, with what was tried."""

    original_content: str
    attempts: list[ParseAttempt] = Field(default_factory=list)
    fallback_template_id: str
    preserved_at: datetime = Field(default_factory=_utcnow)
    repair_suggestions: list[str] = Field(default_factory=list)


_KIND_TO_EXCEPTION: dict[ErrorKind, type[RecognitionError]] = {
    ErrorKind.PATTERN_MISMATCH: PatternMismatchError,
    ErrorKind.LOW_CONFIDENCE: PatternMismatchError,
}


class ParseResult(BaseModel):
    """Result of a dual-mode parse."""

    success: bool
    state: ParseState
    mode: ParseMode
    fields: dict[str, str] = Field(default_factory=dict)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    matched_pattern: str | None = None
    warnings: list[str] = Field(default_factory=list)
    error: str | None = None
    error_kind: ErrorKind | None = None
    error_code: ErrorCode | None = None
    error_field: str | None = Field(
        default=None, description="Field named by a required-field error"
    )
    preserved_content: PreservedContent | None = None
    original_content: str = ""
    pipeline_result: EnhancedParseResult | None = None

    def raise_for_error(self) -> None:
        """Raise the exception matching this result's error, if it failed."""
        if self.success:
            return
        message = self.error or "content could not be parsed"
        error_code = self.error_code
        if error_code is None and self.error_kind is not None:
            error_code = code_for_kind(self.error_kind)
        code = error_code.value if error_code else None
        if self.error_kind is ErrorKind.REQUIRED_FIELD_EMPTY:
            raise RequiredFieldEmptyError(
                message,
                field_name=self.error_field or "",
                suggestion="Fill in the field in the note",
                error_code=code,
            )
        if self.error_kind is ErrorKind.INVALID_PATTERN:
            raise InvalidPatternError(message, error_code=code)
        if self.error_kind is ErrorKind.FIELD_MAPPING_GAP:
            raise FieldMappingGapError(
                message,
                field_name=self.error_field or "",
                group_index=-1,
                group_count=-1,
                error_code=code,
            )
        if self.error_kind is ErrorKind.TRUNCATION_RISK:
            raise TruncationRiskError(
                message, coverage=self.confidence, threshold=1.0, error_code=code
            )
        if self.mode is ParseMode.STRICT and self.error_kind is ErrorKind.PATTERN_MISMATCH:
            raise TemplateMismatchError(
                message,
                suggestion="Edit the note to follow the template layout",
                error_code=code,
            )
        exc_type = _KIND_TO_EXCEPTION.get(
            self.error_kind or ErrorKind.PATTERN_MISMATCH, PatternMismatchError
        )
        raise exc_type(message, error_code=code)


# Choice questions


class ChoiceOption(BaseModel):
    """One option of a multiple-choice question."""

    id: str = Field(description="Normalized label, e.g. 'A' or '3'")
    label: str = Field(description="Label as written, e.g. 'A.'")
    content: str
    is_correct: bool = False


class CorrectAnswerResult(BaseModel):
    """Labels named by a correct-answer string."""

    success: bool
    correct_ids: list[str] = Field(default_factory=list)
    is_multiple: bool = False
    errors: list[str] = Field(default_factory=list)

    @property
    def error(self) -> str | None:
        return "; ".join(self.errors) if self.errors else None


class ChoiceParseResult(BaseModel):
    """Options with correctness marked."""

    success: bool
    options: list[ChoiceOption] = Field(default_factory=list)
    correct_answers: list[str] = Field(default_factory=list)
    is_multiple: bool = False
    error: str | None = None
    error_code: ErrorCode | None = None
    warnings: list[str] = Field(default_factory=list)


class MarkedChoiceQuestion(BaseModel):
    """A choice question written with inline correctness markers."""

    question: str
    options: list[ChoiceOption]
    explanation: str = ""
    is_multiple: bool = False

    @computed_field
    def correct_ids(self) -> list[str]:
        """Ids of the options marked correct."""
        return [option.id for option in self.options if option.is_correct]


class IssueSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class IssueType(str, Enum):
    TRUNCATION = "truncation"
    MISSING_FIELD = "missing_field"
    LOW_QUALITY = "low_quality"
    FORMAT_MISMATCH = "format_mismatch"
    DATA_LOSS = "data_loss"


class ValidationIssue(BaseModel):
    """A single finding of the parse-result validator."""

    type: IssueType
    severity: IssueSeverity
    message: str
    field: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class ValidationStatistics(BaseModel):
    original_length: int = 0
    parsed_length: int = 0
    coverage: float = Field(default=1.0, ge=0.0, le=1.0)
    field_count: int = 0
    empty_fields: int = 0
    average_field_length: float = 0.0
    content_distribution: dict[str, int] = Field(default_factory=dict)


class ValidationReport(BaseModel):
    """Result of a completeness/data-loss check on a parse result."""

    issues: list[ValidationIssue] = Field(default_factory=list)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    suggestions: list[str] = Field(default_factory=list)
    statistics: ValidationStatistics = Field(default_factory=ValidationStatistics)

    @property
    def errors(self) -> list[str]:
        """Messages of critical issues."""
        return [i.message for i in self.issues if i.severity is IssueSeverity.CRITICAL]

    @property
    def warnings(self) -> list[str]:
        return [i.message for i in self.issues if i.severity is IssueSeverity.WARNING]

    @property
    def coverage(self) -> float:
        return self.statistics.coverage

    @computed_field
    def is_valid(self) -> bool:
        """Check if validation passed (no critical issues)."""
        return len(self.errors) == 0
