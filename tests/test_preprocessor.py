"""Tests for the format preprocessor."""

import pytest

from notecard_recognition.recognition.preprocessor import (
    FormatPreprocessor,
    PreprocessingOptions,
    contains_placeholder,
)


class TestNormalizationPasses:
    """Test the individual normalization passes."""

    def test_heading_gets_space_after_hashes(self, preprocessor):
        """Test that '##Title' becomes '## Title'."""
        result = preprocessor.normalize("##Title\ntext")

        assert result.processed == "## Title\ntext"
        assert "headings" in result.transformations
        assert result.changed is True

    def test_tag_line_is_not_treated_as_heading(self, preprocessor):
        """Test that Obsidian tag lines keep their form."""
        result = preprocessor.normalize("Question\nAnswer\n#flashcard #biology")

        assert result.processed == "Question\nAnswer\n#flashcard #biology"
        assert "headings" not in result.transformations

    def test_full_width_punctuation_is_mapped(self, preprocessor):
        """Test that full-width colons and digits become ASCII."""
        result = preprocessor.normalize("问题：第１题（重要）")

        assert result.processed == "问题:第1题(重要)"
        assert "punctuation" in result.transformations

    def test_terminal_punctuation_kept_by_default(self, preprocessor):
        """Test that full-width question marks survive the default profile."""
        result = preprocessor.normalize("什么是递归？")

        assert result.processed == "什么是递归？"

    def test_terminal_punctuation_mapped_when_enabled(self):
        """Test that the opt-in pass maps terminal punctuation."""
        preprocessor = FormatPreprocessor(
            PreprocessingOptions(normalize_terminal_punctuation=True)
        )

        result = preprocessor.normalize("什么是递归？对。")

        assert result.processed == "什么是递归?对."
        assert "terminal_punctuation" in result.transformations

    def test_typographic_quotes_are_standardized(self, preprocessor):
        """Test that curly quotes become straight quotes."""
        result = preprocessor.normalize("“Hello” and ‘hi’")

        assert result.processed == "\"Hello\" and 'hi'"
        assert "quotes" in result.transformations

    def test_exotic_whitespace_is_normalized(self, preprocessor):
        """Test that no-break and zero-width spaces are cleaned up."""
        result = preprocessor.normalize("a\u00a0b\u200bc")

        assert result.processed == "a bc"
        assert "whitespace" in result.transformations

    def test_line_endings_and_blank_runs(self, preprocessor):
        """Test that CRLF is unified and long blank runs are collapsed."""
        result = preprocessor.normalize("a\r\nb\n\n\n\n\n\nc")

        assert result.processed == "a\nb\n\n\nc"
        assert "line_breaks" in result.transformations

    def test_extra_spaces_removed_but_indentation_kept(self, preprocessor):
        """Test that inner runs and trailing spaces go, leading indentation stays."""
        result = preprocessor.normalize("a   b  \n    - nested  item")

        assert result.processed == "a b\n    - nested item"

    def test_disabled_pass_does_not_run(self):
        """Test that switching a pass off leaves its construct alone."""
        preprocessor = FormatPreprocessor(PreprocessingOptions(normalize_headings=False))

        result = preprocessor.normalize("##Title")

        assert result.processed == "##Title"
        assert result.transformations == []


class TestProtectedSpans:
    """Test that code, math and links are restored byte for byte."""

    def test_code_block_is_untouched(self, preprocessor):
        """Test that fenced code keeps full-width characters and spacing."""
        text = "Intro：\n```\n##x   y：“z”\n```"

        result = preprocessor.normalize(text)

        assert "```\n##x   y：“z”\n```" in result.processed
        assert result.processed.startswith("Intro:")

    def test_inline_code_and_math_are_untouched(self, preprocessor):
        """Test that inline code and inline math survive normalization."""
        text = "Use `a：b` and $x：y$ here"

        result = preprocessor.normalize(text)

        assert result.processed == text
        kinds = {span.kind for span in result.preserved_spans}
        assert kinds == {"inline_code", "math"}

    def test_link_and_url_are_untouched(self, preprocessor):
        """Test that Markdown links and bare URLs are kept verbatim."""
        text = "See [docs（1）](https://example.com/a（b）) or https://example.com/x"

        result = preprocessor.normalize(text)

        assert "[docs（1）](https://example.com/a（b）)" in result.processed
        assert result.processed.endswith("https://example.com/x")

    def test_no_placeholder_leaks(self, preprocessor):
        """Test that every placeholder is replaced on the way out."""
        result = preprocessor.normalize("`a`\n```\nb\n```\n![img](x.png) [[Wiki]]")

        assert not contains_placeholder(result.processed)

    def test_statistics_count_preserved_kinds(self, preprocessor):
        """Test that statistics group preserved spans by kind."""
        result = preprocessor.normalize("Use `x` and `y`, see https://a.example")

        stats = result.statistics()

        assert stats["preserved"] == {"inline_code": 2, "url": 1}
        assert stats["original_length"] == len(result.original)
        assert stats["length_delta"] == len(result.processed) - len(result.original)


class TestDiagnosis:
    """Test needs_preprocessing reporting."""

    @pytest.mark.parametrize(
        ("text", "reason"),
        [
            ("##Title", "headings without a space after '#'"),
            ("问题：x", "full-width punctuation or digits"),
            ("“quoted”", "typographic quotes"),
            ("a\u00a0b", "non-standard whitespace"),
            ("a\r\nb", "irregular line breaks"),
            ("a  b", "repeated or trailing spaces"),
        ],
    )
    def test_reasons(self, preprocessor, text, reason):
        """Test that each construct is reported with its reason."""
        diagnosis = preprocessor.needs_preprocessing(text)

        assert diagnosis.needs_preprocessing is True
        assert reason in diagnosis.reasons

    def test_clean_text_needs_nothing(self, preprocessor):
        """Test that normalized text is reported clean."""
        diagnosis = preprocessor.needs_preprocessing("## Title\n\nBody #tag")

        assert diagnosis.needs_preprocessing is False
        assert diagnosis.reasons == []

    def test_tag_line_is_not_a_heading_problem(self, preprocessor):
        """Test that a lone tag line does not trigger the heading reason."""
        diagnosis = preprocessor.needs_preprocessing("#flashcard")

        assert "headings without a space after '#'" not in diagnosis.reasons


class TestIdempotence:
    """Test that normalizing twice changes nothing further."""

    @pytest.mark.parametrize(
        "text",
        [
            "##Title\n\n\n\n\nBody：text  here",
            "Q：“What”？\r\nA：`code：x` done",
            "  leading\tindent  \n",
        ],
    )
    def test_normalize_is_idempotent(self, preprocessor, text):
        """Test that a second pass is a no-op."""
        once = preprocessor.normalize(text).processed
        twice = preprocessor.normalize(once)

        assert twice.processed == once
        assert twice.transformations == []

    def test_quick_normalize_strips_and_keeps_quotes(self, preprocessor):
        """Test the minimal profile used by lenient parsing."""
        assert preprocessor.quick_normalize("##Q\n“A”  \n") == "## Q\n“A”"
