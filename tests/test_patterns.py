"""Tests for the built-in pattern library and the pattern registry."""

import threading

import pytest
from pydantic import ValidationError

from notecard_recognition.exceptions import (
    DuplicatePatternError,
    FieldMappingGapError,
    InvalidPatternError,
    PatternNotFoundError,
)
from notecard_recognition.models.patterns import ContentPattern, PatternCategory, regex_flags
from notecard_recognition.recognition.patterns import BUILTIN_PATTERNS, PatternRegistry

TERM_REGEX = r"^Term:[ \t]*(.+)\n+Meaning:[ \t]*([\s\S]+)"


def make_pattern(pattern_id="custom-term", regex=TERM_REGEX, **overrides):
    values = {
        "id": pattern_id,
        "name": "Term and meaning",
        "regex": regex,
        "field_mapping": {"question": 1, "answer": 2},
        "priority": 40,
        "base_confidence": 0.8,
    }
    values.update(overrides)
    return ContentPattern(**values)


class TestBuiltinPatterns:
    """Test the shipped pattern set."""

    def test_ids_are_unique(self):
        """Test that no two built-ins share an id."""
        ids = [pattern.id for pattern in BUILTIN_PATTERNS]
        assert len(ids) == len(set(ids))

    def test_every_builtin_matches_its_examples(self, registry):
        """Test that each built-in recognizes the examples it documents."""
        for pattern in BUILTIN_PATTERNS:
            compiled = registry.compiled(pattern.id)
            for example in pattern.examples:
                assert compiled.search(example), f"{pattern.id} missed {example!r}"

    def test_priority_order(self, registry):
        """Test that snapshots run highest priority first."""
        ids = [pattern.id for pattern in registry.all()]

        assert ids[0] == "h2-qa"
        assert ids[-1] == "single-line"
        priorities = [pattern.priority for pattern in registry.all()]
        assert priorities == sorted(priorities, reverse=True)

    def test_h2_answer_keeps_h3_subsections(self, registry):
        """Test that an H2 answer runs past H3 headings up to the next H2."""
        content = "## Q1\nIntro\n### Detail\nMore\n## Q2\nOther"

        match = registry.compiled("h2-qa").search(content)

        assert match.group(1) == "Q1"
        assert match.group(2) == "Intro\n### Detail\nMore"

    def test_qa_pair_answer_spans_lines(self, registry):
        """Test that a Q:/A: answer continues until the next Q: label."""
        content = "Q: First?\nA: line one\nline two\nQ: Second?\nA: x"

        match = registry.compiled("qa-pair").search(content)

        assert match.group(2) == "line one\nline two"


class TestPatternModel:
    """Test ContentPattern validation."""

    def test_unknown_flag_rejected(self):
        """Test that unknown flag letters fail validation."""
        with pytest.raises(ValidationError):
            make_pattern(flags="q")

    def test_foreign_engine_flags_ignored(self):
        """Test that g, u and y are accepted and ignored."""
        assert regex_flags("gmu") == regex_flags("m")

    def test_confidence_bounds(self):
        """Test that base confidence must lie in [0, 1]."""
        with pytest.raises(ValidationError):
            make_pattern(base_confidence=1.5)


class TestRegistration:
    """Test registering, replacing and removing patterns."""

    def test_register_safe_pattern(self, registry):
        """Test that a safe custom pattern is added."""
        registration = registry.register(make_pattern())

        assert registration.ok is True
        assert registration.unwrap() == "custom-term"
        assert "custom-term" in registry
        assert len(registry) == len(BUILTIN_PATTERNS) + 1

    def test_redos_pattern_rejected_and_not_added(self, registry):
        """Test that a catastrophic-backtracking pattern is refused."""
        registration = registry.register(
            make_pattern("evil", regex=r"^(a+)+$", field_mapping={"question": 1})
        )

        assert registration.ok is False
        assert isinstance(registration.error, InvalidPatternError)
        assert registration.error.error_code == "PAT-REDOS-001"
        assert registration.error.critical_issues
        assert "evil" not in registry
        with pytest.raises(InvalidPatternError):
            registration.unwrap()

    def test_mapping_gap_rejected(self, registry):
        """Test that a field mapped past the last group is refused."""
        registration = registry.register(make_pattern("gap", regex=r"^(.+)$"))

        assert isinstance(registration.error, FieldMappingGapError)
        assert registration.error.field_name == "answer"
        assert registration.error.group_count == 1
        assert registration.error.error_code == "PAT-MAPPING-001"

    def test_empty_mapping_rejected(self, registry):
        """Test that a pattern mapping no fields is refused."""
        registration = registry.register(make_pattern("empty", field_mapping={}))

        assert registration.error.error_code == "PAT-MAPPING-002"

    def test_duplicate_id_rejected(self, registry):
        """Test that an id cannot be registered twice without replace."""
        registry.register(make_pattern()).unwrap()

        registration = registry.register(make_pattern(priority=99))

        assert isinstance(registration.error, DuplicatePatternError)
        assert registry.get("custom-term").priority == 40

    def test_replace_keeps_registration_order(self, registry):
        """Test that replacing a pattern keeps its tie-break position."""
        registry.register(make_pattern()).unwrap()
        before = [entry.order for entry in registry.snapshot() if entry.pattern.id == "custom-term"]

        registry.update(make_pattern(priority=41)).unwrap()

        after = [entry.order for entry in registry.snapshot() if entry.pattern.id == "custom-term"]
        assert before == after
        assert registry.get("custom-term").priority == 41

    def test_update_unknown_pattern(self, registry):
        """Test that updating a missing id reports PatternNotFoundError."""
        registration = registry.update(make_pattern("missing"))

        assert isinstance(registration.error, PatternNotFoundError)

    def test_remove(self, registry):
        """Test that removal works once and drops the compiled regex."""
        assert registry.remove("single-line") is True
        assert registry.remove("single-line") is False
        with pytest.raises(PatternNotFoundError):
            registry.compiled("single-line")

    def test_builtins_can_be_excluded(self, safety_options):
        """Test an empty registry."""
        registry = PatternRegistry(include_builtins=False, safety_options=safety_options)

        assert len(registry) == 0
        assert registry.statistics()["average_priority"] == 0.0


class TestQueries:
    """Test lookups and statistics."""

    def test_by_category(self, registry):
        """Test filtering by category."""
        ids = [pattern.id for pattern in registry.by_category(PatternCategory.HEADING)]

        assert ids == ["h2-qa", "h2-flexible", "h3-qa", "h1-qa"]

    def test_by_tag(self, registry):
        """Test filtering by tag."""
        ids = [pattern.id for pattern in registry.by_tag("fallback")]

        assert ids == ["free-first-line", "single-line"]

    def test_statistics(self, registry):
        """Test the summary counts."""
        registry.register(make_pattern()).unwrap()

        stats = registry.statistics()

        assert stats["total"] == len(BUILTIN_PATTERNS) + 1
        assert stats["custom"] == 1
        assert stats["by_category"]["heading"] == 4
        assert 0 < stats["average_base_confidence"] < 1


class TestConcurrency:
    """Test that the registry is safe to share between threads."""

    def test_snapshot_unaffected_by_later_changes(self, registry):
        """Test that a snapshot taken earlier does not see a removal."""
        snapshot = registry.snapshot()

        registry.remove("h2-qa")

        assert snapshot[0].pattern.id == "h2-qa"
        assert "h2-qa" not in registry

    def test_parallel_registration(self, registry):
        """Test that concurrent registrations all land."""
        errors = []

        def register(index):
            registration = registry.register(make_pattern(f"custom-{index}"))
            if not registration.ok:
                errors.append(registration.error)

        threads = [threading.Thread(target=register, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert all(f"custom-{i}" in registry for i in range(8))
        orders = [entry.order for entry in registry.snapshot()]
        assert len(orders) == len(set(orders))
