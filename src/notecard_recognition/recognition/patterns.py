"""Content pattern library: built-in patterns and a thread-safe registry.

Every regex anchors the end of the document with ``\\Z`` rather than ``$``.
Under MULTILINE ``$`` also matches at every line end, and a lazy answer group
followed by a lookahead on ``$`` would stop after the first line.
"""

import re
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

from ..error_codes import ErrorCode
from ..exceptions import (
    DuplicatePatternError,
    FieldMappingGapError,
    InvalidPatternError,
    PatternError,
    PatternNotFoundError,
)
from ..models.patterns import ContentPattern, PatternCategory
from ..utils.logging import get_logger
from .pattern_safety import PatternSafetyReport, SafetyOptions, validate_pattern

logger = get_logger(__name__)

_STOP_AT_HEADING = r"\n#{1,6}[ \t]"

BUILTIN_PATTERNS: tuple[ContentPattern, ...] = (
    ContentPattern(
        id="h2-qa",
        builtin=True,
        name="H2 heading question",
        regex=r"^##[ \t]+(.+?)[ \t]*\n([\s\S]*?)(?=\n#{1,2}[ \t]|\Z)",
        field_mapping={"question": 1, "answer": 2},
        priority=100,
        base_confidence=0.95,
        category=PatternCategory.HEADING,
        description="'## Question' followed by the answer up to the next H1/H2",
        examples=["## What is X?\n\nX is Y."],
        tags=["heading", "markdown"],
    ),
    ContentPattern(
        id="h2-flexible",
        builtin=True,
        name="H2 heading, loose spacing",
        regex=r"^##[ \t]*([^#\s].*?)[ \t]*\n([\s\S]*?)(?=\n#{1,2}(?!#)|\Z)",
        field_mapping={"question": 1, "answer": 2},
        priority=95,
        base_confidence=0.90,
        category=PatternCategory.HEADING,
        description="H2 question without a space after the hashes",
        examples=["##What is X?\nX is Y."],
        tags=["heading", "markdown"],
    ),
    ContentPattern(
        id="qa-pair",
        builtin=True,
        name="Q:/A: pair",
        regex=(
            r"^[ \t]*[Qq][ \t]*[:：][ \t]*(.+?)[ \t]*\n+"
            r"[ \t]*[Aa][ \t]*[:：][ \t]*([\s\S]*?)(?=\n[ \t]*[Qq][ \t]*[:：]|\Z)"
        ),
        field_mapping={"question": 1, "answer": 2},
        priority=90,
        base_confidence=0.92,
        category=PatternCategory.QA_PAIR,
        description="'Q: ...' line followed by an 'A: ...' answer",
        examples=["Q: What is Y?\nA: Y is Z."],
        tags=["qa", "label"],
    ),
    ContentPattern(
        id="chinese-qa",
        builtin=True,
        name="问题/答案 pair",
        regex=(
            r"^[ \t]*问题?[ \t]*[:：][ \t]*(.+?)[ \t]*\n+"
            r"[ \t]*答案?[ \t]*[:：][ \t]*([\s\S]*?)(?=\n[ \t]*问题?[ \t]*[:：]|\Z)"
        ),
        field_mapping={"question": 1, "answer": 2},
        priority=88,
        base_confidence=0.90,
        category=PatternCategory.QA_PAIR,
        description="'问题：' line followed by an '答案：' answer",
        examples=["问题：什么是递归？\n答案：函数调用自身。"],
        tags=["qa", "label", "zh"],
    ),
    ContentPattern(
        id="h3-qa",
        builtin=True,
        name="H3 heading question",
        regex=r"^###[ \t]+(.+?)[ \t]*\n([\s\S]*?)(?=\n#{1,3}[ \t]|\Z)",
        field_mapping={"question": 1, "answer": 2},
        priority=85,
        base_confidence=0.85,
        category=PatternCategory.HEADING,
        description="'### Question' followed by the answer up to the next H1-H3",
        examples=["### What is X?\nX is Y."],
        tags=["heading", "markdown"],
    ),
    ContentPattern(
        id="h1-qa",
        builtin=True,
        name="H1 heading question",
        regex=r"^#[ \t]+(.+?)[ \t]*\n([\s\S]*?)(?=\n#[ \t]|\Z)",
        field_mapping={"question": 1, "answer": 2},
        priority=80,
        base_confidence=0.80,
        category=PatternCategory.HEADING,
        description="'# Question' followed by the answer up to the next H1",
        examples=["# What is X?\nX is Y."],
        tags=["heading", "markdown"],
    ),
    ContentPattern(
        id="bold-qa",
        builtin=True,
        name="Bold label question",
        regex=(
            r"^[ \t]*\*\*(.+?)\*\*[ \t]*[:：][ \t]*([\s\S]*?)"
            rf"(?=\n[ \t]*\*\*.+?\*\*[ \t]*[:：]|{_STOP_AT_HEADING}|\Z)"
        ),
        field_mapping={"question": 1, "answer": 2},
        priority=75,
        base_confidence=0.85,
        category=PatternCategory.BOLD,
        description="'**Term**: explanation'",
        examples=["**Recursion**: a function calling itself."],
        tags=["bold", "markdown"],
    ),
    ContentPattern(
        id="question-line",
        builtin=True,
        name="Question-mark line",
        regex=(
            r"^[ \t]*([^\n]*[?？])[ \t]*\n+([\s\S]*?)"
            rf"(?=\n[^\n]*[?？][ \t]*\n|{_STOP_AT_HEADING}|\Z)"
        ),
        field_mapping={"question": 1, "answer": 2},
        priority=70,
        base_confidence=0.75,
        category=PatternCategory.QA_PAIR,
        description="A line ending in '?' followed by its answer",
        examples=["What is X?\nX is Y."],
        tags=["question-mark"],
    ),
    ContentPattern(
        id="list-item-qa",
        builtin=True,
        name="List item with colon",
        regex=(
            r"^[ \t]*[-*+][ \t]+([^\n]+?)[ \t]*[:：][ \t]*([\s\S]*?)"
            rf"(?=\n[ \t]*[-*+][ \t]|{_STOP_AT_HEADING}|\Z)"
        ),
        field_mapping={"question": 1, "answer": 2},
        priority=65,
        base_confidence=0.70,
        category=PatternCategory.LIST,
        description="'- Term: explanation'",
        examples=["- Recursion: a function calling itself."],
        tags=["list", "markdown"],
    ),
    ContentPattern(
        id="numbered-list-qa",
        builtin=True,
        name="Numbered item with colon",
        regex=(
            r"^[ \t]*\d+[.)][ \t]+([^\n]+?)[ \t]*[:：][ \t]*([\s\S]*?)"
            rf"(?=\n[ \t]*\d+[.)][ \t]|{_STOP_AT_HEADING}|\Z)"
        ),
        field_mapping={"question": 1, "answer": 2},
        priority=60,
        base_confidence=0.68,
        category=PatternCategory.LIST,
        description="'1. Term: explanation'",
        examples=["1. Recursion: a function calling itself."],
        tags=["list", "markdown"],
    ),
    ContentPattern(
        id="multiple-choice",
        builtin=True,
        name="Multiple-choice question",
        regex=(
            r"\A[ \t]*([^\n]+?)[ \t]*\n+"
            r"([ \t]*[A-Ha-h][.、):：][^\n]*(?:\n[ \t]*[A-Ha-h][.、):：][^\n]*)+)"
            r"(?:\s*\n(?:[^\n]*(?:答案|Answer|正确答案)[^\n]*[:：][ \t]*([^\n]+)))?"
        ),
        flags="mi",
        field_mapping={"question": 1, "options": 2, "correct_answer": 3},
        priority=72,
        base_confidence=0.88,
        category=PatternCategory.CHOICE,
        description="Stem line followed by lettered options and an optional answer line",
        examples=["Capital of France?\nA. Paris\nB. London\nAnswer: A"],
        tags=["choice"],
    ),
    ContentPattern(
        id="cloze",
        builtin=True,
        name="Cloze deletion",
        regex=r"\A\s*([\s\S]*?\{\{c\d+::[\s\S]+?\}\}[\s\S]*?)\s*\Z",
        flags="",
        field_mapping={"cloze": 1},
        priority=50,
        base_confidence=0.85,
        category=PatternCategory.CLOZE,
        description="Text containing '{{c1::...}}' deletions",
        examples=["The capital of France is {{c1::Paris}}."],
        tags=["cloze"],
    ),
    ContentPattern(
        id="definition",
        builtin=True,
        name="Term: definition",
        regex=(
            r"^[ \t]*([^:\n#*>\-\s][^:\n]{0,79}?)[ \t]*:[ \t]+(\S[\s\S]*?)"
            rf"(?=\n[^:\n]{{1,80}}:[ \t]|{_STOP_AT_HEADING}|\Z)"
        ),
        field_mapping={"question": 1, "answer": 2},
        priority=45,
        base_confidence=0.70,
        category=PatternCategory.DEFINITION,
        description="'Term: definition' on a plain line",
        examples=["Recursion: a function calling itself."],
        tags=["definition"],
    ),
    ContentPattern(
        id="free-first-line",
        builtin=True,
        name="First line and the rest",
        regex=r"\A\s*([^\n]+?)[ \t]*\n+([\s\S]+?)\s*\Z",
        flags="",
        field_mapping={"question": 1, "answer": 2},
        priority=30,
        base_confidence=0.40,
        category=PatternCategory.CUSTOM,
        description="First line as question, everything after as answer",
        examples=["Recursion\nA function calling itself."],
        tags=["fallback"],
    ),
    ContentPattern(
        id="single-line",
        builtin=True,
        name="Single line",
        regex=r"^[ \t]*(\S[^\n]*?)[ \t]*$",
        field_mapping={"question": 1},
        priority=10,
        base_confidence=0.20,
        category=PatternCategory.CUSTOM,
        description="A lone line used as the question",
        examples=["Recursion"],
        tags=["fallback"],
    ),
)


@dataclass
class PatternRegistration:
    """Result of registering a pattern. Rejections carry the exception."""

    ok: bool
    pattern_id: str | None = None
    error: PatternError | None = None
    report: PatternSafetyReport | None = None
    warnings: list[str] = field(default_factory=list)

    def unwrap(self) -> str:
        """Return the registered id, or raise the rejection."""
        if self.error is not None:
            raise self.error
        return self.pattern_id or ""


@dataclass(frozen=True)
class RegisteredPattern:
    """A pattern with its compiled regex and registration sequence number."""

    pattern: ContentPattern
    compiled: re.Pattern[str]
    order: int


class PatternRegistry:
    """Owns patterns and their compiled regexes. Safe to share between threads.

    Readers get a snapshot; a pattern replaced or removed mid-iteration
    does not affect a snapshot already taken.
    """

    def __init__(
        self,
        patterns: Iterable[ContentPattern] | None = None,
        *,
        include_builtins: bool = True,
        safety_options: SafetyOptions | None = None,
    ):
        self.safety_options = safety_options or SafetyOptions()
        self._lock = threading.RLock()
        self._entries: dict[str, RegisteredPattern] = {}
        self._sequence = 0

        if include_builtins:
            for builtin in BUILTIN_PATTERNS:
                self.register(builtin, trusted=True).unwrap()
        for pattern in patterns or ():
            self.register(pattern).unwrap()

    def register(
        self,
        pattern: ContentPattern,
        *,
        trusted: bool = False,
        replace: bool = False,
    ) -> PatternRegistration:
        """Validate, compile and add a pattern.

        Args:
            pattern: The pattern to add
            trusted: Skip the ReDoS/complexity screen (built-in patterns)
            replace: Overwrite an existing pattern with the same id

        Returns:
            Registration result; ``ok`` is False when the pattern was rejected
        """
        report: PatternSafetyReport | None = None
        if not trusted:
            report = validate_pattern(
                pattern.regex, pattern.compile_flags, self.safety_options
            )
            if not report.is_valid:
                error = InvalidPatternError(
                    report.error or "pattern rejected by the safety screen",
                    pattern_id=pattern.id,
                    critical_issues=report.critical_issues,
                    suggestion="; ".join(report.suggestions) or None,
                    error_code=(report.error_code or ErrorCode.PAT_SYNTAX_INVALID).value,
                )
                return self._rejected(pattern, error, report)

        try:
            compiled = re.compile(pattern.regex, pattern.compile_flags)
        except re.error as e:
            error = InvalidPatternError(
                f"invalid regex: {e}",
                pattern_id=pattern.id,
                error_code=ErrorCode.PAT_SYNTAX_INVALID.value,
            )
            return self._rejected(pattern, error, report)

        mapping_error = self._check_mapping(pattern, compiled.groups)
        if mapping_error is not None:
            return self._rejected(pattern, mapping_error, report)

        with self._lock:
            existing = self._entries.get(pattern.id)
            if existing is not None and not replace:
                error = DuplicatePatternError(
                    f"pattern '{pattern.id}' is already registered",
                    suggestion="Use update() to replace it, or choose another id",
                    error_code=ErrorCode.PAT_DUPLICATE.value,
                    context={"pattern_id": pattern.id},
                )
                return self._rejected(pattern, error, report)

            order = existing.order if existing is not None else self._next_order()
            self._entries[pattern.id] = RegisteredPattern(pattern, compiled, order)

        if not trusted:
            logger.info(
                "pattern_registered",
                pattern_id=pattern.id,
                priority=pattern.priority,
                replaced=existing is not None,
            )
        return PatternRegistration(
            ok=True,
            pattern_id=pattern.id,
            report=report,
            warnings=list(report.warnings) if report else [],
        )

    def update(self, pattern: ContentPattern, *, trusted: bool = False) -> PatternRegistration:
        """Replace a registered pattern, keeping its registration order."""
        if pattern.id not in self:
            return PatternRegistration(
                ok=False,
                error=PatternNotFoundError(
                    f"pattern '{pattern.id}' is not registered",
                    error_code=ErrorCode.PAT_NOT_FOUND.value,
                    context={"pattern_id": pattern.id},
                ),
            )
        return self.register(pattern, trusted=trusted, replace=True)

    def remove(self, pattern_id: str) -> bool:
        """Drop a pattern and its compiled regex. Returns False if unknown."""
        with self._lock:
            removed = self._entries.pop(pattern_id, None)
        if removed is not None:
            logger.debug("pattern_removed", pattern_id=pattern_id)
        return removed is not None

    def get(self, pattern_id: str) -> ContentPattern | None:
        with self._lock:
            entry = self._entries.get(pattern_id)
        return entry.pattern if entry else None

    def compiled(self, pattern_id: str) -> re.Pattern[str]:
        """Compiled regex for a registered pattern."""
        with self._lock:
            entry = self._entries.get(pattern_id)
        if entry is None:
            raise PatternNotFoundError(
                f"pattern '{pattern_id}' is not registered",
                error_code=ErrorCode.PAT_NOT_FOUND.value,
                context={"pattern_id": pattern_id},
            )
        return entry.compiled

    def snapshot(self) -> list[RegisteredPattern]:
        """Registered patterns, highest priority first, then registration order."""
        with self._lock:
            entries = list(self._entries.values())
        return sorted(entries, key=lambda e: (-e.pattern.priority, e.order))

    def all(self) -> list[ContentPattern]:
        return [entry.pattern for entry in self.snapshot()]

    def by_category(self, category: PatternCategory | str) -> list[ContentPattern]:
        wanted = PatternCategory(category)
        return [p for p in self.all() if p.category is wanted]

    def by_tag(self, tag: str) -> list[ContentPattern]:
        return [p for p in self.all() if tag in p.tags]

    def statistics(self) -> dict[str, Any]:
        patterns = self.all()
        by_category: dict[str, int] = {}
        for pattern in patterns:
            by_category[pattern.category.value] = by_category.get(pattern.category.value, 0) + 1
        return {
            "total": len(patterns),
            "builtin": sum(1 for p in patterns if p.builtin),
            "custom": sum(1 for p in patterns if not p.builtin),
            "by_category": by_category,
            "average_priority": (
                sum(p.priority for p in patterns) / len(patterns) if patterns else 0.0
            ),
            "average_base_confidence": (
                sum(p.base_confidence for p in patterns) / len(patterns) if patterns else 0.0
            ),
        }

    def __contains__(self, pattern_id: object) -> bool:
        with self._lock:
            return pattern_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[ContentPattern]:
        return iter(self.all())

    def _next_order(self) -> int:
        order = self._sequence
        self._sequence += 1
        return order

    @staticmethod
    def _check_mapping(
        pattern: ContentPattern, group_count: int
    ) -> FieldMappingGapError | None:
        if not pattern.field_mapping:
            return FieldMappingGapError(
                f"pattern '{pattern.id}' maps no fields",
                field_name="",
                group_index=-1,
                group_count=group_count,
                suggestion="Map at least one field, e.g. {\"question\": 1}",
                error_code=ErrorCode.PAT_MAPPING_EMPTY.value,
            )
        for field_name, index in pattern.field_mapping.items():
            if index < 0 or index > group_count:
                return FieldMappingGapError(
                    f"field '{field_name}' is mapped to group {index}, "
                    f"but the regex has {group_count} group(s)",
                    field_name=field_name,
                    group_index=index,
                    group_count=group_count,
                    suggestion="Add a capture group or fix the group index",
                    error_code=ErrorCode.PAT_MAPPING_GAP.value,
                )
        return None

    @staticmethod
    def _rejected(
        pattern: ContentPattern,
        error: PatternError,
        report: PatternSafetyReport | None,
    ) -> PatternRegistration:
        logger.warning(
            "pattern_rejected",
            pattern_id=pattern.id,
            reason=error.message,
            error_code=error.error_code,
        )
        return PatternRegistration(ok=False, pattern_id=pattern.id, error=error, report=report)


def create_default_registry(
    safety_options: SafetyOptions | None = None,
) -> PatternRegistry:
    """A registry holding only the built-in patterns."""
    return PatternRegistry(safety_options=safety_options)
