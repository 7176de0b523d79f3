"""Exceptions raised by notecard-recognition.

Recognition itself does not raise: the pipeline and the lenient parser always
return a result, and malformed notes end up preserved rather than rejected.
The classes below cover pattern registration, strict-mode parsing, custom
pattern import and configuration. ``PatternRegistration.unwrap()`` and
``ParseResult.raise_for_error()`` turn a failed result into one of them.

    NotecardRecognitionError
     ConfigurationError
     PatternError
        InvalidPatternError        regex syntax, ReDoS or complexity rejection
        FieldMappingGapError       field mapped to a group the regex lacks
        PatternNotFoundError
        DuplicatePatternError
        PatternImportError         custom pattern JSON unreadable or malformed
     RecognitionError
        PatternMismatchError       nothing matched (lenient, preserved)
        TemplateMismatchError      bound template did not match (strict)
        RequiredFieldEmptyError    required template field is empty (strict)
        TruncationRiskError        fields cover too little of the note

Example::

    result = parser.parse(content, ParseMode.STRICT, template)
    try:
        result.raise_for_error()
    except RequiredFieldEmptyError as e:
        highlight_field(e.field_name, hint=e.suggestion)
"""

from typing import Any


class NotecardRecognitionError(Exception):
    """Base class carrying a message, a fix hint and an ``ErrorCode`` value.

    ``context`` holds the identifying details (pattern id, field name,
    coverage) that ``to_dict()`` passes on to structured logs.
    """

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        self.message = message
        self.suggestion = suggestion
        self.error_code = error_code
        self.context = context or {}
        text = f"[{error_code}] {message}" if error_code else message
        if suggestion:
            text += f"\nSuggestion: {suggestion}"
        super().__init__(text)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "suggestion": self.suggestion,
            "context": dict(self.context),
        }


# Configuration Errors


class ConfigurationError(NotecardRecognitionError):
    """Configuration loading or validation errors.

    Raised when:
    - Config file is missing or malformed
    - Threshold values fall outside [0, 1]
    - The strategy order names an unknown strategy
    """


# Pattern Library Errors


class PatternError(NotecardRecognitionError):
    """Base class for pattern registration and lookup errors."""


class InvalidPatternError(PatternError):
    """Regex syntax error, or rejection by the complexity/ReDoS screen.

    Attributes:
        pattern_id: Id of the rejected pattern, if known
        critical_issues: Critical findings reported by the safety screen
    """

    def __init__(
        self,
        message: str,
        *,
        pattern_id: str | None = None,
        critical_issues: list[str] | None = None,
        suggestion: str | None = None,
        error_code: str | None = None,
    ):
        self.pattern_id = pattern_id
        self.critical_issues = list(critical_issues or [])
        super().__init__(
            message,
            suggestion,
            error_code,
            {"pattern_id": pattern_id, "critical_issues": self.critical_issues},
        )


class FieldMappingGapError(PatternError):
    """A field mapping references a capture group the regex does not have.

    Attributes:
        field_name: The offending field
        group_index: The group index it was mapped to
        group_count: Number of capture groups the regex actually declares
    """

    def __init__(
        self,
        message: str,
        *,
        field_name: str,
        group_index: int,
        group_count: int,
        suggestion: str | None = None,
        error_code: str | None = None,
    ):
        self.field_name = field_name
        self.group_index = group_index
        self.group_count = group_count
        super().__init__(
            message,
            suggestion,
            error_code,
            {
                "field_name": field_name,
                "group_index": group_index,
                "group_count": group_count,
            },
        )


class PatternNotFoundError(PatternError):
    """Lookup of an unregistered pattern id."""


class DuplicatePatternError(PatternError):
    """A pattern with the same id is already registered."""


class PatternImportError(PatternError):
    """Custom pattern JSON could not be decoded as an array of records."""


# Recognition Errors


class RecognitionError(NotecardRecognitionError):
    """Base class for content recognition errors."""


class PatternMismatchError(RecognitionError):
    """No registered pattern matched the content."""


class TemplateMismatchError(RecognitionError):
    """Content does not match the bound template's regex (strict mode)."""


class RequiredFieldEmptyError(RecognitionError):
    """A field the bound template marks as required came out empty.

    Attributes:
        field_name: The required field that is empty
    """

    def __init__(
        self,
        message: str,
        *,
        field_name: str,
        suggestion: str | None = None,
        error_code: str | None = None,
    ):
        self.field_name = field_name
        super().__init__(message, suggestion, error_code, {"field_name": field_name})


class TruncationRiskError(RecognitionError):
    """Extracted fields cover less of the input than the coverage threshold.

    Attributes:
        coverage: Measured coverage in [0, 1]
        threshold: Coverage threshold that was not met
    """

    def __init__(
        self,
        message: str,
        *,
        coverage: float,
        threshold: float,
        suggestion: str | None = None,
        error_code: str | None = None,
    ):
        self.coverage = coverage
        self.threshold = threshold
        super().__init__(
            message,
            suggestion,
            error_code,
            {"coverage": coverage, "threshold": threshold},
        )


def get_exception_hierarchy() -> dict[str, list[str]]:
    """Get the exception hierarchy as a dictionary.

    Returns:
        Dictionary mapping base exceptions to their subclasses
    """
    return {
        "NotecardRecognitionError": [
            "ConfigurationError",
            "PatternError",
            "RecognitionError",
        ],
        "PatternError": [
            "InvalidPatternError",
            "FieldMappingGapError",
            "PatternNotFoundError",
            "DuplicatePatternError",
            "PatternImportError",
        ],
        "RecognitionError": [
            "PatternMismatchError",
            "TemplateMismatchError",
            "RequiredFieldEmptyError",
            "TruncationRiskError",
        ],
    }


def is_caller_correctable(error: Exception) -> bool:
    """Check whether the user can fix the error by editing content or template.

    Invalid patterns need a rewritten regex; missing or mismatched content is
    something the caller can prompt the author to correct.

    Args:
        error: The exception to check

    Returns:
        True if editing the note or template would resolve the error
    """
    correctable_types = (
        RequiredFieldEmptyError,
        TemplateMismatchError,
        PatternMismatchError,
        TruncationRiskError,
        FieldMappingGapError,
    )
    return isinstance(error, correctable_types)
