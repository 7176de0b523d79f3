"""Tests for the multi-pattern matcher and its scoring."""

import pytest

from notecard_recognition.models.patterns import ContentPattern
from notecard_recognition.recognition.matcher import (
    PatternMatcher,
    describe_candidate,
    significant_length,
)


def make_pattern(pattern_id, regex, **overrides):
    values = {
        "id": pattern_id,
        "name": pattern_id,
        "regex": regex,
        "field_mapping": {"question": 1, "answer": 2},
        "priority": 50,
        "base_confidence": 0.8,
    }
    values.update(overrides)
    return ContentPattern(**values)


class TestMatching:
    """Test candidate collection and selection."""

    def test_h2_note_selects_h2_qa(self, matcher, sample_notes):
        """Test that a level-2 heading note is won by h2-qa."""
        outcome = matcher.match(sample_notes["h2"])

        assert outcome.matched is True
        assert outcome.best.pattern_id == "h2-qa"
        assert outcome.best.fields["question"] == "What is X?"
        assert outcome.best.fields["answer"] == "X is Y."

    def test_priority_breaks_score_tie(self, matcher, sample_notes):
        """Test that h2-qa beats h2-flexible on an equal score."""
        outcome = matcher.match(sample_notes["h2"])
        by_id = {candidate.pattern_id: candidate for candidate in outcome.candidates}

        assert by_id["h2-flexible"].score == by_id["h2-qa"].score
        assert outcome.candidates.index(by_id["h2-qa"]) < outcome.candidates.index(
            by_id["h2-flexible"]
        )

    def test_registration_order_breaks_full_tie(self, registry):
        """Test that the earlier registration wins when score and priority tie."""
        regex = r"^Term:[ \t]*(.+)\n+Meaning:[ \t]*([\s\S]+)"
        registry.register(make_pattern("first", regex)).unwrap()
        registry.register(make_pattern("second", regex)).unwrap()

        best = PatternMatcher(registry).match("Term: Closure\nMeaning: A function").best

        assert best.pattern_id == "first"

    def test_chinese_note(self, matcher, sample_notes):
        """Test that Chinese labels are recognized."""
        best = matcher.match_best(sample_notes["chinese"])

        assert best.pattern_id == "chinese-qa"
        assert best.fields["question"] == "什么是递归？"

    def test_fallback_ranks_after_structural_match(self, matcher):
        """Test that the first-line fallback loses even when its raw score is higher."""
        outcome = matcher.match("## What is X?\nX is Y.\n## What is W?\nW is V.")
        by_id = {candidate.pattern_id: candidate for candidate in outcome.candidates}

        assert by_id["free-first-line"].score > by_id["h2-qa"].score
        assert outcome.best.pattern_id == "h2-qa"
        assert all(c.pattern.is_fallback for c in outcome.candidates[-2:])

    def test_fallback_wins_when_alone(self, matcher):
        """Test that the fallback is still chosen when nothing structural matches."""
        assert matcher.match_best("Recursion\nSelf call").pattern_id == "free-first-line"

    def test_attempts_every_pattern(self, matcher, registry):
        """Test that every registered pattern is tried."""
        outcome = matcher.match("Recursion\nSelf call")

        assert outcome.attempted == len(registry)
        assert outcome.elapsed_ms >= 0

    def test_empty_content_matches_nothing(self, matcher):
        """Test that blank content produces no candidates."""
        outcome = matcher.match("  \n ")

        assert outcome.matched is False
        assert outcome.candidates == []

    def test_match_is_deterministic(self, matcher, sample_notes):
        """Test that repeated matching ranks candidates identically."""
        first = [c.pattern_id for c in matcher.match(sample_notes["qa"]).candidates]
        second = [c.pattern_id for c in matcher.match(sample_notes["qa"]).candidates]

        assert first == second


class TestScoring:
    """Test coverage, confidence and score."""

    def test_significant_length_ignores_whitespace(self):
        """Test the whitespace-free length."""
        assert significant_length(" a b\n\tc ") == 3

    def test_full_coverage(self, matcher, sample_notes):
        """Test that a match spanning the note has coverage 1."""
        best = matcher.match_best(sample_notes["h2"])

        assert best.coverage == 1.0
        assert best.confidence == 1.0

    def test_partial_coverage_lowers_confidence(self, matcher):
        """Test that text outside the match reduces coverage."""
        content = "Some preface that is not part of any card at all\n## Q\nShort"

        candidate = matcher.evaluate(
            make_pattern("h2-only", r"^##[ \t]+(.+?)\n([\s\S]+)", flags="m"), content
        )

        assert candidate.coverage < 0.5
        assert candidate.confidence < 0.8

    def test_balanced_split_outranks_earlier_registration(self, registry):
        """Test that the balanced question/answer bonus decides between equal patterns."""
        registry.register(
            make_pattern("lopsided", r"\A([\s\S]+) (environment)\Z", base_confidence=0.5)
        ).unwrap()
        registry.register(
            make_pattern("balanced", r"\A(\w+)\n([\s\S]+)\Z", base_confidence=0.5)
        ).unwrap()
        content = "Closure\nA function bundled with its lexical environment"

        outcome = PatternMatcher(registry).match(content)
        by_id = {candidate.pattern_id: candidate for candidate in outcome.candidates}

        assert by_id["balanced"].confidence == pytest.approx(0.75)
        assert by_id["lopsided"].confidence == pytest.approx(0.7)
        assert outcome.best.pattern_id == "balanced"

    def test_scores_are_bounded(self, matcher, sample_notes):
        """Test that all scores stay within [0, 1]."""
        for content in sample_notes.values():
            for candidate in matcher.match(content).candidates:
                assert 0.0 <= candidate.score <= 1.0
                assert 0.0 <= candidate.confidence <= 1.0

    def test_describe_candidate(self, matcher, sample_notes):
        """Test the one-line candidate summary."""
        line = describe_candidate(matcher.match_best(sample_notes["h2"]))

        assert line.startswith("h2-qa score=1.00 confidence=1.00")


class TestDryRun:
    """Test test_pattern explanations."""

    def test_matched(self, matcher, sample_notes):
        """Test a successful dry run."""
        result = matcher.test_pattern("h2-qa", sample_notes["h2"])

        assert result.matched is True
        assert result.candidate.pattern_id == "h2-qa"

    def test_unknown_pattern(self, matcher):
        """Test a dry run of an unregistered id."""
        assert matcher.test_pattern("nope", "x").reason == "pattern is not registered"

    def test_empty_content(self, matcher):
        """Test a dry run against blank content."""
        assert matcher.test_pattern("h2-qa", "  ").reason == "content is empty"

    def test_no_regex_match(self, matcher):
        """Test a dry run where the regex does not match."""
        assert matcher.test_pattern("h2-qa", "plain").reason == "regex did not match"

    def test_match_without_fields(self, registry):
        """Test a dry run whose groups are all blank."""
        registry.register(
            make_pattern("blank", r"^( *)x", field_mapping={"question": 1})
        ).unwrap()

        result = PatternMatcher(registry).test_pattern("blank", "  x")

        assert result.reason == "match produced no non-empty fields"
