"""Tests for multiple-choice option and answer parsing."""

import pytest

from notecard_recognition.error_codes import ErrorCode
from notecard_recognition.recognition.choice import (
    is_choice_question,
    parse_choice_question,
    parse_correct_answer,
    parse_marked_choice_question,
    parse_options,
    validate_choice_question,
)

OPTIONS = "A. Paris\nB) London\nC、Berlin"
MARKED = "Q: Which are prime?\nA) 2 {✓}\nB) 4\nC) 5 {✓}\n---div---\n2 and 5 only"


class TestParseOptions:
    """Test option line parsing."""

    def test_mixed_label_styles(self):
        """Test that dots, parentheses and the ideographic comma are accepted."""
        parsed = parse_options(OPTIONS)

        assert [(o.id, o.label, o.content) for o in parsed.options] == [
            ("A", "A.", "Paris"),
            ("B", "B)", "London"),
            ("C", "C、", "Berlin"),
        ]
        assert parsed.warnings == []
        assert parsed.error is None

    def test_parenthesized_label(self):
        """Test '(A) text'."""
        parsed = parse_options("(A) one\n(B) two")

        assert [o.label for o in parsed.options] == ["(A)", "(B)"]

    def test_checkbox_list(self):
        """Test that checked boxes mark correct options."""
        parsed = parse_options("- [x] Paris\n- [ ] London\n* [X] Lyon")

        assert [o.id for o in parsed.options] == ["A", "B", "C"]
        assert [o.is_correct for o in parsed.options] == [True, False, True]

    @pytest.mark.parametrize(
        ("text", "warning"),
        [
            ("A. x\nC. y", "Option labels are not contiguous: expected A, B, got A, C"),
            ("1. x\n2. y\n4. z", "Option numbers are not contiguous: expected 1, 2, 3, got 1, 2, 4"),
            ("A. x\nA. y", "Duplicate option labels: A"),
            ("A. x\n2. y", "Option labels mix letters and numbers; use A, B, C or 1, 2, 3"),
            ("A. x\nsome stray line", "Could not parse option line: 'some stray line'"),
            ("A. x\nB.", "Option B has no content"),
        ],
    )
    def test_sequence_warnings(self, text, warning):
        """Test gap, duplicate, mixed-label and unparseable-line warnings."""
        assert warning in parse_options(text).warnings

    @pytest.mark.parametrize(
        ("text", "error"),
        [("  \n", "Options text is empty"), ("no options here", "No option lines found")],
    )
    def test_no_options(self, text, error):
        """Test that text without options reports an error."""
        assert parse_options(text).error == error


class TestCorrectAnswer:
    """Test correct-answer resolution."""

    @pytest.fixture
    def options(self):
        return parse_options(OPTIONS).options

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("A", ["A"]),
            ("b", ["B"]),
            ("A, C", ["A", "C"]),
            ("A；C", ["A", "C"]),
            ("A/B", ["A", "B"]),
            ("AC", ["A", "C"]),
            ("(B)", ["B"]),
            ("A, A", ["A"]),
        ],
    )
    def test_accepted_forms(self, options, text, expected):
        """Test single, listed and run-together labels."""
        result = parse_correct_answer(text, options)

        assert result.success is True
        assert result.correct_ids == expected
        assert result.is_multiple is (len(expected) > 1)

    def test_unknown_label_fails(self, options):
        """Test that a label with no option fails the parse."""
        result = parse_correct_answer("A, D", options)

        assert result.success is False
        assert result.errors == ["Option D does not exist"]
        assert result.error == "Option D does not exist"

    def test_empty_answer(self, options):
        """Test that an empty answer string fails."""
        assert parse_correct_answer(" ", options).errors == ["Correct answer is empty"]


class TestChoiceQuestion:
    """Test the combined options and answer parse."""

    def test_marks_correct_options(self):
        """Test that correct options are flagged."""
        result = parse_choice_question(OPTIONS, "A, C")

        assert result.success is True
        assert [o.is_correct for o in result.options] == [True, False, True]
        assert result.is_multiple is True

    @pytest.mark.parametrize(
        ("options", "answer", "code"),
        [
            ("", "A", ErrorCode.CHO_NO_OPTIONS),
            (OPTIONS, "", ErrorCode.CHO_EMPTY_ANSWER),
            (OPTIONS, "E", ErrorCode.CHO_UNKNOWN_LABEL),
        ],
    )
    def test_failures_carry_codes(self, options, answer, code):
        """Test the error code of each failure."""
        result = parse_choice_question(options, answer)

        assert result.success is False
        assert result.error_code is code
        assert result.error


class TestMarkedChoice:
    """Test the inline-marker format."""

    def test_parse(self):
        """Test question, options, markers and explanation."""
        question = parse_marked_choice_question(MARKED)

        assert question.question == "Which are prime?"
        assert [o.content for o in question.options] == ["2", "4", "5"]
        assert question.correct_ids == ["A", "C"]
        assert question.is_multiple is True
        assert question.explanation == "2 and 5 only"
        assert validate_choice_question(question) == []

    def test_multi_line_question(self):
        """Test that lines before the first option join the question."""
        question = parse_marked_choice_question("问题：Which\nare prime?\nA) 2 {✓}\nB) 4")

        assert question.question == "Which\nare prime?"
        assert question.is_multiple is False

    def test_requires_label_and_options(self):
        """Test that unlabelled or option-less text is not a marked question."""
        assert parse_marked_choice_question("Which are prime?\nA) 2 {✓}") is None
        assert parse_marked_choice_question("Q: Which are prime?") is None

    def test_is_choice_question_needs_two_options(self):
        """Test the two-option minimum."""
        assert is_choice_question(MARKED) is True
        assert is_choice_question("Q: Pick one\nA) only {✓}") is False

    def test_validate_reports_missing_marker(self):
        """Test that a question with no correct option is flagged."""
        question = parse_marked_choice_question("Q: Pick\nA) x\nB) y")

        problems = validate_choice_question(question)

        assert problems == ["No option is marked correct; add {✓} after the right one"]
