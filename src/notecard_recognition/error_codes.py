"""Structured error codes for machine-readable error handling.

This module provides the error codes used to categorize failures throughout
the recognition pipeline. Error codes follow the format:
{DOMAIN}-{CATEGORY}-{NUMBER}

Error Domains:
    PAT - Pattern library errors (syntax, ReDoS, field mappings)
    REC - Recognition errors (mismatch, low confidence, truncation)
    CHO - Choice question errors (options, correct answers)
    CFG - Configuration errors
    IMP - Custom pattern import/export errors

Usage:
    from notecard_recognition.error_codes import ErrorCode

    logger.warning(
        "pattern_rejected",
        error_code=ErrorCode.PAT_REDOS_NESTED.value,
        pattern_id="custom_flashcard_1a2b3c",
    )
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Structured error codes for machine-readable handling.

    All error codes inherit from str for JSON serialization compatibility.
    Format: {DOMAIN}-{CATEGORY}-{NUMBER}
    """

    # =========================================================================
    # Pattern Errors (PAT-xxx-xxx)
    # =========================================================================
    PAT_SYNTAX_INVALID = "PAT-SYNTAX-001"
    """Regex failed to compile."""

    PAT_REDOS_NESTED = "PAT-REDOS-001"
    """Nested unbounded quantifiers allow catastrophic backtracking."""

    PAT_REDOS_TIMEOUT = "PAT-REDOS-002"
    """Regex exceeded the time budget on an adversarial probe string."""

    PAT_TOO_COMPLEX = "PAT-COMPLEX-001"
    """Regex complexity score or length exceeds the configured limit."""

    PAT_FEATURE_DISALLOWED = "PAT-FEATURE-001"
    """Regex uses a construct disabled by configuration (backreferences, lookbehind)."""

    PAT_MAPPING_GAP = "PAT-MAPPING-001"
    """Field mapped to a capture group the regex does not declare."""

    PAT_MAPPING_EMPTY = "PAT-MAPPING-002"
    """Pattern declares no field mappings."""

    PAT_NOT_FOUND = "PAT-LOOKUP-001"
    """Pattern id is not registered."""

    PAT_DUPLICATE = "PAT-LOOKUP-002"
    """Pattern id is already registered."""

    # =========================================================================
    # Recognition Errors (REC-xxx-xxx)
    # =========================================================================
    REC_PATTERN_MISMATCH = "REC-MATCH-001"
    """No registered pattern matched the content."""

    REC_TEMPLATE_MISMATCH = "REC-MATCH-002"
    """Bound template regex did not match the content."""

    REC_LOW_CONFIDENCE = "REC-CONF-001"
    """Best result stayed at or below the acceptance threshold."""

    REC_REQUIRED_FIELD_EMPTY = "REC-FIELD-001"
    """A required template field came out empty."""

    REC_TRUNCATION_RISK = "REC-TRUNC-001"
    """Extracted fields cover less of the input than expected."""

    REC_EMPTY_CONTENT = "REC-EMPTY-001"
    """Input content is empty or whitespace only."""

    REC_STRATEGY_FAILED = "REC-STRAT-001"
    """A recognition strategy raised unexpectedly and was skipped."""

    # =========================================================================
    # Choice Errors (CHO-xxx-xxx)
    # =========================================================================
    CHO_NO_OPTIONS = "CHO-OPT-001"
    """No option lines could be parsed."""

    CHO_UNKNOWN_LABEL = "CHO-ANS-001"
    """Correct answer names a label that is not among the options."""

    CHO_EMPTY_ANSWER = "CHO-ANS-002"
    """Correct answer text is empty."""

    CHO_SEQUENCE_GAP = "CHO-SEQ-001"
    """Option labels are not a contiguous sequence."""

    # =========================================================================
    # Configuration Errors (CFG-xxx-xxx)
    # =========================================================================
    CFG_INVALID = "CFG-INVALID-001"
    """Configuration validation failed."""

    CFG_PATH_INVALID = "CFG-PATH-001"
    """Configured file path is invalid or inaccessible."""

    # =========================================================================
    # Import Errors (IMP-xxx-xxx)
    # =========================================================================
    IMP_DECODE_FAILED = "IMP-DECODE-001"
    """Custom pattern file is not valid JSON."""

    IMP_NOT_ARRAY = "IMP-SHAPE-001"
    """Custom pattern JSON is not an array of records."""

    IMP_RECORD_INVALID = "IMP-RECORD-001"
    """A single custom pattern record failed validation."""


class ErrorKind(str, Enum):
    """Closed set of failure kinds a parse result can report."""

    PATTERN_MISMATCH = "pattern_mismatch"
    LOW_CONFIDENCE = "low_confidence"
    INVALID_PATTERN = "invalid_pattern"
    FIELD_MAPPING_GAP = "field_mapping_gap"
    TRUNCATION_RISK = "truncation_risk"
    REQUIRED_FIELD_EMPTY = "required_field_empty"


_KIND_TO_CODE = {
    ErrorKind.PATTERN_MISMATCH: ErrorCode.REC_PATTERN_MISMATCH,
    ErrorKind.LOW_CONFIDENCE: ErrorCode.REC_LOW_CONFIDENCE,
    ErrorKind.INVALID_PATTERN: ErrorCode.PAT_SYNTAX_INVALID,
    ErrorKind.FIELD_MAPPING_GAP: ErrorCode.PAT_MAPPING_GAP,
    ErrorKind.TRUNCATION_RISK: ErrorCode.REC_TRUNCATION_RISK,
    ErrorKind.REQUIRED_FIELD_EMPTY: ErrorCode.REC_REQUIRED_FIELD_EMPTY,
}


def get_error_domain(code: ErrorCode) -> str:
    """Extract the domain from an error code.

    Args:
        code: The error code

    Returns:
        The domain prefix (e.g., "PAT", "REC", "CHO")
    """
    return code.value.split("-")[0]


def code_for_kind(kind: ErrorKind) -> ErrorCode:
    """Map a result-level error kind to its default error code."""
    return _KIND_TO_CODE[kind]


def get_error_severity(code: ErrorCode) -> str:
    """Get the severity level for an error code.

    Args:
        code: The error code

    Returns:
        Severity level: "critical", "error", "warning"
    """
    critical_codes = {
        ErrorCode.PAT_REDOS_NESTED,
        ErrorCode.PAT_REDOS_TIMEOUT,
        ErrorCode.CFG_INVALID,
    }
    warning_codes = {
        ErrorCode.REC_LOW_CONFIDENCE,
        ErrorCode.REC_TRUNCATION_RISK,
        ErrorCode.CHO_SEQUENCE_GAP,
        ErrorCode.REC_STRATEGY_FAILED,
    }

    if code in critical_codes:
        return "critical"
    if code in warning_codes:
        return "warning"
    return "error"
