"""Tests for lenient and strict parsing."""

import pytest

from notecard_recognition.error_codes import ErrorCode, ErrorKind
from notecard_recognition.exceptions import (
    FieldMappingGapError,
    InvalidPatternError,
    PatternMismatchError,
    RequiredFieldEmptyError,
    TemplateMismatchError,
)
from notecard_recognition.models.data import ParseMode, ParseState
from notecard_recognition.models.template import Template
from notecard_recognition.recognition.dual_mode import (
    repair_suggestions,
    select_fallback_template,
)

QA_TEMPLATE = Template(
    id="qa",
    regex=r"^Q: (.*)\nA: (.*)$",
    field_mapping={"question": 1, "answer": 2},
)


class TestLenient:
    """Test the lenient policy."""

    def test_divider_note(self, dual_mode, sample_notes):
        """Test that the ---div--- layout is tried first."""
        result = dual_mode.parse(sample_notes["divider"])

        assert result.success is True
        assert result.state is ParseState.SUCCEEDED
        assert result.matched_pattern == "lenient-primary"
        assert result.fields["question"] == "What is a closure?"
        assert result.fields["answer"] == "A function bundled with its environment."
        assert result.confidence == 1.0

    def test_trailing_tag_line(self, dual_mode):
        """Test that a final '#tag' line becomes the tags field."""
        result = dual_mode.parse("Question text\n---div---\nAnswer text here\n#flashcard #cs")

        assert result.fields["answer"] == "Answer text here"
        assert result.fields["tags"] == "flashcard cs"
        assert "No tags; add a '#tag' line to help organize cards" not in result.warnings

    def test_pipeline_result_is_used(self, dual_mode, sample_notes):
        """Test that a confident pipeline result is accepted."""
        result = dual_mode.parse(sample_notes["h2"])

        assert result.matched_pattern == "h2-qa"
        assert result.pipeline_result.strategy == "multi_pattern"
        assert result.fields["answer"] == "X is Y."

    def test_chinese_note(self, dual_mode, sample_notes):
        """Test a Chinese-labelled note end to end."""
        result = dual_mode.parse(sample_notes["chinese"])

        assert result.success is True
        assert result.fields["question"] == "什么是递归？"
        assert result.fields["answer"] == "函数调用自身。"

    def test_free_first_line_accepted(self, dual_mode):
        """Test that a question-like first line is accepted from the pipeline."""
        result = dual_mode.parse("What is X\nX is Y")

        assert result.matched_pattern == "free-first-line"
        assert result.confidence == pytest.approx(0.6)

    def test_simple_split_when_pipeline_is_unsure(self, dual_mode):
        """Test that the first-line/rest lenient pattern catches weak notes."""
        result = dual_mode.parse("Recursion\nSelf call")

        assert result.success is True
        assert result.matched_pattern == "lenient-simple"
        assert result.confidence == pytest.approx(0.65)

    def test_single_line_is_preserved(self, dual_mode):
        """Test that an unrecognizable note is preserved with suggestions."""
        result = dual_mode.parse("Recursion")

        assert result.success is False
        assert result.state is ParseState.PRESERVED_FALLBACK
        assert result.error_code is ErrorCode.REC_PATTERN_MISMATCH
        assert result.fields == {"notes": "Recursion"}
        preserved = result.preserved_content
        assert preserved.fallback_template_id == "emergency-basic"
        assert "Add the answer on a new line below the question" in preserved.repair_suggestions
        assert [a.success for a in preserved.attempts] == [False, False, False, False]
        assert result.pipeline_result is not None

    def test_empty_note_is_preserved(self, dual_mode):
        """Test the empty-input edge case."""
        result = dual_mode.parse("")

        assert result.success is False
        assert result.error_code is ErrorCode.REC_EMPTY_CONTENT
        assert result.preserved_content.repair_suggestions == [
            "The note is empty; write a question and an answer"
        ]
        assert result.pipeline_result is None

    def test_preserved_raises_pattern_mismatch(self, dual_mode):
        """Test that raise_for_error maps lenient failures to PatternMismatchError."""
        with pytest.raises(PatternMismatchError) as exc_info:
            dual_mode.parse("Recursion").raise_for_error()

        assert exc_info.value.error_code == "REC-MATCH-001"

    def test_success_does_not_raise(self, dual_mode, sample_notes):
        """Test that raise_for_error is a no-op on success."""
        dual_mode.parse(sample_notes["divider"]).raise_for_error()

    def test_todo_warning(self, dual_mode):
        """Test that TODO markers are reported."""
        result = dual_mode.parse("Question here\n---div---\nTODO write the answer")

        assert "Content contains a TODO marker" in result.warnings

    def test_notes_field_always_present(self, dual_mode, sample_notes):
        """Test that every lenient result keeps the input verbatim."""
        for content in [*sample_notes.values(), "", "Recursion", "  ##x  \n"]:
            assert dual_mode.parse(content).fields["notes"] == content


class TestStrict:
    """Test the strict policy."""

    def test_divider_without_template(self, dual_mode, sample_notes):
        """Test that strict mode without a template expects the divider layout."""
        result = dual_mode.parse(sample_notes["divider"], ParseMode.STRICT)

        assert result.success is True
        assert result.matched_pattern == "strict-divider"
        assert result.mode is ParseMode.STRICT

    def test_no_divider(self, dual_mode, sample_notes):
        """Test that other layouts fail without fallback."""
        result = dual_mode.parse(sample_notes["h2"], "strict")

        assert result.state is ParseState.FAILED
        assert result.error_kind is ErrorKind.PATTERN_MISMATCH
        with pytest.raises(TemplateMismatchError):
            result.raise_for_error()

    def test_divider_with_empty_answer(self, dual_mode):
        """Test that an empty answer names the field."""
        result = dual_mode.parse("Question here\n---div---\n", ParseMode.STRICT)

        assert result.error_kind is ErrorKind.REQUIRED_FIELD_EMPTY
        assert result.error_field == "answer"
        with pytest.raises(RequiredFieldEmptyError) as exc_info:
            result.raise_for_error()
        assert exc_info.value.field_name == "answer"

    def test_template_match(self, dual_mode):
        """Test a template that matches."""
        result = dual_mode.parse("Q: What is X?\nA: X is Y.", ParseMode.STRICT, QA_TEMPLATE)

        assert result.success is True
        assert result.matched_pattern == "qa"
        assert result.fields == {
            "question": "What is X?",
            "answer": "X is Y.",
            "notes": "Q: What is X?\nA: X is Y.",
        }

    def test_template_required_field_empty(self, dual_mode):
        """Test that a matched but empty required field fails."""
        result = dual_mode.parse("Q: What is X?\nA: ", ParseMode.STRICT, QA_TEMPLATE)

        assert result.error_code is ErrorCode.REC_REQUIRED_FIELD_EMPTY
        assert result.error_field == "answer"

    def test_optional_field_may_be_empty(self, dual_mode):
        """Test that only required fields are enforced."""
        template = QA_TEMPLATE.model_copy(update={"required_fields": ["question"]})

        result = dual_mode.parse("Q: What is X?\nA: ", ParseMode.STRICT, template)

        assert result.success is True

    def test_template_mismatch_does_not_fall_back(self, dual_mode, sample_notes):
        """Test that strict mode never substitutes a looser pattern."""
        result = dual_mode.parse(sample_notes["h2"], ParseMode.STRICT, QA_TEMPLATE)

        assert result.error_code is ErrorCode.REC_TEMPLATE_MISMATCH
        assert result.fields == {"notes": sample_notes["h2"]}

    def test_mapping_gap(self, dual_mode):
        """Test a template mapping a missing group."""
        template = Template(id="gap", regex=r"^(.+)$", field_mapping={"question": 1, "answer": 2})

        result = dual_mode.parse("x", ParseMode.STRICT, template)

        assert result.error_field == "answer"
        with pytest.raises(FieldMappingGapError):
            result.raise_for_error()

    def test_invalid_template_regex(self, dual_mode):
        """Test a template whose regex does not compile."""
        template = Template(id="bad", regex="(", field_mapping={"question": 1})

        result = dual_mode.parse("x", ParseMode.STRICT, template)

        assert result.error_code is ErrorCode.PAT_SYNTAX_INVALID
        with pytest.raises(InvalidPatternError):
            result.raise_for_error()


class TestFallbackHelpers:
    """Test fallback template selection and repair suggestions."""

    @pytest.mark.parametrize(
        ("content", "template_id"),
        [
            ("Fill {{c1::this}} in", "basic-cloze"),
            ("x" * 501, "basic-qa"),
            ("short", "emergency-basic"),
        ],
    )
    def test_select_fallback_template(self, content, template_id):
        """Test the fallback template chosen for preserved content."""
        assert select_fallback_template(content) == template_id

    def test_repair_suggestions_for_two_lines(self):
        """Test that cramped two-line notes get a blank-line hint."""
        suggestions = repair_suggestions("Question\nAnswer", [])

        assert "Put a blank line between the question and the answer" in suggestions
        assert "Separate fields with a '---div---' line" in suggestions
