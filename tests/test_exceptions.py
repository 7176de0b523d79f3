"""Tests for the exception hierarchy and structured error codes."""

import pytest

from notecard_recognition.error_codes import (
    ErrorCode,
    ErrorKind,
    code_for_kind,
    get_error_domain,
    get_error_severity,
)
from notecard_recognition.exceptions import (
    ConfigurationError,
    FieldMappingGapError,
    InvalidPatternError,
    NotecardRecognitionError,
    PatternError,
    PatternImportError,
    PatternMismatchError,
    RecognitionError,
    RequiredFieldEmptyError,
    TruncationRiskError,
    get_exception_hierarchy,
    is_caller_correctable,
)
from notecard_recognition.models.data import ParseMode, ParseResult, ParseState


class TestExceptionFormatting:
    """Test message formatting and serialization."""

    def test_message_with_code_and_suggestion(self):
        """Test that the code prefixes and the suggestion follows the message."""
        error = ConfigurationError("bad value", suggestion="fix it", error_code="CFG-INVALID-001")

        assert str(error) == "[CFG-INVALID-001] bad value\nSuggestion: fix it"

    def test_plain_message(self):
        """Test a message without code or suggestion."""
        assert str(PatternMismatchError("no match")) == "no match"

    def test_to_dict(self):
        """Test the structured form used in logs."""
        error = RequiredFieldEmptyError("empty", field_name="answer", error_code="REC-FIELD-001")

        data = error.to_dict()

        assert data == {
            "message": "empty",
            "error_code": "REC-FIELD-001",
            "suggestion": None,
            "context": {"field_name": "answer"},
            "type": "RequiredFieldEmptyError",
        }

    def test_specialized_attributes(self):
        """Test the extra attributes of specialized errors."""
        gap = FieldMappingGapError("gap", field_name="answer", group_index=2, group_count=1)
        invalid = InvalidPatternError("bad", pattern_id="p", critical_issues=["nested"])
        truncation = TruncationRiskError("cut", coverage=0.4, threshold=0.9)

        assert (gap.field_name, gap.group_index, gap.group_count) == ("answer", 2, 1)
        assert invalid.context == {"pattern_id": "p", "critical_issues": ["nested"]}
        assert truncation.coverage == 0.4


class TestHierarchy:
    """Test class relationships."""

    @pytest.mark.parametrize(
        ("error_type", "base"),
        [
            (ConfigurationError, NotecardRecognitionError),
            (InvalidPatternError, PatternError),
            (PatternImportError, PatternError),
            (RequiredFieldEmptyError, RecognitionError),
            (TruncationRiskError, RecognitionError),
        ],
    )
    def test_subclasses(self, error_type, base):
        """Test that each error sits under its family."""
        assert issubclass(error_type, base)

    def test_hierarchy_listing_matches_classes(self):
        """Test that the documented hierarchy names real subclasses."""
        import notecard_recognition.exceptions as module

        for base_name, children in get_exception_hierarchy().items():
            base = getattr(module, base_name)
            for child in children:
                assert issubclass(getattr(module, child), base)

    def test_configuration_error_is_not_value_error(self):
        """Test that config validation errors are not wrapped by pydantic."""
        assert not issubclass(ConfigurationError, ValueError)

    def test_caller_correctable(self):
        """Test which errors the note author can fix."""
        assert is_caller_correctable(RequiredFieldEmptyError("x", field_name="a"))
        assert is_caller_correctable(PatternMismatchError("x"))
        assert not is_caller_correctable(InvalidPatternError("x"))
        assert not is_caller_correctable(ValueError("x"))


class TestErrorCodes:
    """Test the error code helpers."""

    def test_codes_are_unique_and_well_formed(self):
        """Test the DOMAIN-CATEGORY-NUMBER format."""
        values = [code.value for code in ErrorCode]

        assert len(values) == len(set(values))
        for value in values:
            domain, category, number = value.split("-")
            assert domain in {"PAT", "REC", "CHO", "CFG", "IMP"}
            assert category.isupper()
            assert number.isdigit()

    def test_domain(self):
        """Test domain extraction."""
        assert get_error_domain(ErrorCode.CHO_NO_OPTIONS) == "CHO"

    @pytest.mark.parametrize(
        ("code", "severity"),
        [
            (ErrorCode.PAT_REDOS_NESTED, "critical"),
            (ErrorCode.REC_LOW_CONFIDENCE, "warning"),
            (ErrorCode.CHO_SEQUENCE_GAP, "warning"),
            (ErrorCode.REC_TEMPLATE_MISMATCH, "error"),
        ],
    )
    def test_severity(self, code, severity):
        """Test severity classification."""
        assert get_error_severity(code) == severity

    def test_every_kind_has_a_code(self):
        """Test that each result-level kind maps to a code."""
        for kind in ErrorKind:
            assert isinstance(code_for_kind(kind), ErrorCode)

    def test_raise_for_error_defaults_code_from_kind(self):
        """Test that a result without an explicit code raises with the kind's code."""
        result = ParseResult(
            success=False,
            state=ParseState.FAILED,
            mode=ParseMode.LENIENT,
            error="too unsure",
            error_kind=ErrorKind.LOW_CONFIDENCE,
        )

        with pytest.raises(PatternMismatchError) as exc_info:
            result.raise_for_error()

        assert exc_info.value.error_code == "REC-CONF-001"

    def test_truncation_kind(self):
        """Test the truncation mapping."""
        result = ParseResult(
            success=False,
            state=ParseState.FAILED,
            mode=ParseMode.STRICT,
            confidence=0.4,
            error_kind=ErrorKind.TRUNCATION_RISK,
        )

        with pytest.raises(TruncationRiskError) as exc_info:
            result.raise_for_error()

        assert exc_info.value.coverage == 0.4
        assert exc_info.value.message == "content could not be parsed"
