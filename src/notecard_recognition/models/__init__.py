"""Pattern, template and result models."""

from .data import (
    NOTES_FIELD,
    ChoiceOption,
    ChoiceParseResult,
    CompletenessReport,
    CorrectAnswerResult,
    EnhancedParseResult,
    FixSuggestion,
    IssueSeverity,
    IssueType,
    MarkedChoiceQuestion,
    MatchCandidate,
    MatchOutcome,
    ParseAttempt,
    ParsedContent,
    ParseMethod,
    ParseMode,
    ParseResult,
    ParseState,
    PreprocessingDiagnosis,
    PreprocessResult,
    PreservedContent,
    PreservedSpan,
    Section,
    SectionKind,
    ValidationIssue,
    ValidationReport,
    ValidationStatistics,
)
from .patterns import (
    ContentPattern,
    CustomPatternRecord,
    PatternCategory,
    PatternTestCase,
    regex_flags,
)
from .template import BASIC_REQUIRED_FIELDS, Template

__all__ = [
    "BASIC_REQUIRED_FIELDS",
    "NOTES_FIELD",
    "ChoiceOption",
    "ChoiceParseResult",
    "CompletenessReport",
    "ContentPattern",
    "CorrectAnswerResult",
    "CustomPatternRecord",
    "EnhancedParseResult",
    "FixSuggestion",
    "IssueSeverity",
    "IssueType",
    "MarkedChoiceQuestion",
    "MatchCandidate",
    "MatchOutcome",
    "ParseAttempt",
    "ParseMethod",
    "ParseMode",
    "ParseResult",
    "ParseState",
    "ParsedContent",
    "PatternCategory",
    "PatternTestCase",
    "PreprocessResult",
    "PreprocessingDiagnosis",
    "PreservedContent",
    "PreservedSpan",
    "Section",
    "SectionKind",
    "Template",
    "ValidationIssue",
    "ValidationReport",
    "ValidationStatistics",
    "regex_flags",
]
