"""Tests for the recognition pipeline."""

import pytest

from notecard_recognition.config import Config
from notecard_recognition.models.data import ParseMethod
from notecard_recognition.models.template import Template
from notecard_recognition.recognition.pipeline import PipelineThresholds, RecognitionPipeline
from notecard_recognition.recognition.strategies import (
    BoundaryDetectionStrategy,
    KeywordHeuristicStrategy,
    MultiPatternStrategy,
    ParseStrategy,
    StrategyContext,
    StrictRegexStrategy,
)


class ExplodingStrategy(ParseStrategy):
    name = "exploding"

    def execute(self, content, template=None):
        raise RuntimeError("boom")


@pytest.fixture
def context(matcher, detector, recognizer):
    return StrategyContext(matcher=matcher, detector=detector, recognizer=recognizer)


class TestAcceptance:
    """Test strategy ordering and acceptance."""

    def test_h2_note(self, pipeline, sample_notes):
        """Test that an H2 note is accepted from the pattern strategy."""
        result = pipeline.parse(sample_notes["h2"])

        assert result.success is True
        assert result.strategy == "multi_pattern"
        assert result.pattern_id == "h2-qa"
        assert result.confidence == 1.0
        assert result.question == "What is X?"
        assert result.answer == "X is Y."

    @pytest.mark.parametrize(
        ("content", "pattern_id", "question", "answer"),
        [
            (
                "Q: What is Y?\nA: Y is Z.\nQ: What is W?\nA: W is V.",
                "qa-pair",
                "What is Y?",
                "Y is Z.",
            ),
            (
                "## What is X?\nX is Y.\n## What is W?\nW is V.",
                "h2-qa",
                "What is X?",
                "X is Y.",
            ),
        ],
    )
    def test_multi_card_note_uses_structural_pattern(
        self, pipeline, content, pattern_id, question, answer
    ):
        """Test that the first card is split by its layout, not by the first-line fallback."""
        result = pipeline.parse(content)

        assert result.pattern_id == pattern_id
        assert result.question == question
        assert result.answer == answer
        assert any(w.startswith("Possible truncation") for w in result.warnings)

    def test_template_runs_first(self, pipeline):
        """Test that a bound template is tried before the registry."""
        template = Template(
            id="qa", regex=r"^Q: (.+)\nA: ([\s\S]+)", field_mapping={"question": 1, "answer": 2}
        )

        result = pipeline.parse("Q: What is Y?\nA: Y is Z.", template)

        assert result.strategy == "strict_regex"
        assert result.method is ParseMethod.REGEX

    def test_content_is_normalized_first(self, pipeline):
        """Test that '##Title' is recognized after heading normalization."""
        content = "##What is X?\n\nX is Y."

        result = pipeline.parse(content)

        assert result.pattern_id == "h2-qa"
        assert result.fields["notes"] == content

    def test_best_of_when_none_accepted(self, context):
        """Test that the highest-confidence success wins when nothing is accepted."""
        pipeline = RecognitionPipeline(
            [KeywordHeuristicStrategy(context), MultiPatternStrategy(context)],
            thresholds=PipelineThresholds(acceptance_threshold=0.99),
        )

        result = pipeline.parse("Recursion\nSelf call")

        assert result.strategy == "multi_pattern"
        assert result.confidence == 0.5

    def test_config_order_is_respected(self, registry):
        """Test that strategy_order limits and orders the strategies."""
        config = Config(strategy_order=["boundary_detection", "multi_pattern"])

        pipeline = RecognitionPipeline.from_config(config, registry)

        assert [s.name for s in pipeline.strategies] == ["boundary_detection", "multi_pattern"]

    def test_default_pipeline(self, registry):
        """Test the default wiring."""
        pipeline = RecognitionPipeline.default(registry)

        assert len(pipeline.strategies) == 6
        assert pipeline.thresholds.acceptance_threshold == 0.5


class TestTruncationCheck:
    """Test the coverage check on the returned result."""

    def test_accepted_result_with_low_coverage_is_flagged(self, context):
        """Test that an accepted result covering half of the note is warned."""
        pipeline = RecognitionPipeline(
            [MultiPatternStrategy(context)],
            thresholds=PipelineThresholds(acceptance_threshold=0.1),
            detector=context.detector,
        )

        result = pipeline.parse("Q: What is Y?\nA: Y is Z.\nQ: What is W?\nA: W is V.")

        assert result.success is True
        assert result.pattern_id == "qa-pair"
        assert result.warnings[-1] == "Possible truncation: fields cover 50% of the note"

    def test_full_coverage_is_not_flagged(self, pipeline, sample_notes):
        """Test that complete extractions carry no truncation warning."""
        for key in ("h2", "qa", "chinese", "cloze"):
            result = pipeline.parse(sample_notes[key])

            assert not any("truncat" in w.lower() for w in result.warnings), key

    def test_strategy_warning_is_not_repeated(self, context):
        """Test that a strategy's own truncation warning is not added twice."""
        template = Template(
            id="short", regex=r"^Q: (.+)\nA: (.+)", field_mapping={"question": 1, "answer": 2}
        )
        pipeline = RecognitionPipeline([StrictRegexStrategy(context)], detector=context.detector)

        result = pipeline.parse(
            "Q: What?\nA: line one\nline two with much more text after it", template
        )

        assert result.strategy == "strict_regex"
        assert sum("truncat" in w.lower() for w in result.warnings) == 1


class TestProtectiveFallback:
    """Test the result returned when no strategy succeeds."""

    def test_first_line_and_rest(self, context):
        """Test the protective split of unrecognized content."""
        pipeline = RecognitionPipeline([BoundaryDetectionStrategy(context)])

        result = pipeline.parse("just text\nmore text")

        assert result.strategy == "protective"
        assert result.success is True
        assert result.confidence == 0.3
        assert result.question == "just text"
        assert result.answer == "more text"

    def test_empty_content(self, pipeline):
        """Test that empty input yields an unsuccessful result that still keeps notes."""
        result = pipeline.parse("")

        assert result.success is False
        assert result.strategy == "protective"
        assert result.confidence == 0.0
        assert result.fields == {"notes": ""}

    def test_strategy_exception_is_contained(self, context):
        """Test that a strategy raising does not stop the pipeline."""
        pipeline = RecognitionPipeline(
            [ExplodingStrategy(context), MultiPatternStrategy(context)]
        )

        result = pipeline.parse("## What is X?\n\nX is Y.")

        assert result.strategy == "multi_pattern"


class TestInvariants:
    """Test properties that hold for every input."""

    def test_notes_always_hold_original(self, pipeline, sample_notes):
        """Test that no input is ever lost."""
        for content in [*sample_notes.values(), "", "   ", "x", "```\ncode\n```"]:
            assert pipeline.parse(content).fields["notes"] == content

    def test_parse_is_deterministic(self, pipeline, sample_notes):
        """Test that parsing twice gives identical results."""
        for content in sample_notes.values():
            first = pipeline.parse(content)
            second = pipeline.parse(content)

            assert first.fields == second.fields
            assert first.strategy == second.strategy
            assert first.confidence == second.confidence

    def test_cloze_note(self, pipeline, sample_notes):
        """Test that cloze deletions are recognized."""
        result = pipeline.parse(sample_notes["cloze"])

        assert result.pattern_id == "cloze"
        assert result.fields["cloze"] == sample_notes["cloze"]

    def test_choice_note(self, pipeline, sample_notes):
        """Test that a lettered choice note is recognized."""
        result = pipeline.parse(sample_notes["choice"])

        assert result.pattern_id == "multiple-choice"
        assert result.fields["correct_answer"] == "A"
