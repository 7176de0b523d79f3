"""Multi-pattern matcher: run every registered pattern, score, pick the best."""

import re
import time
from dataclasses import dataclass

from ..models.data import MatchCandidate, MatchOutcome
from ..models.patterns import ContentPattern
from ..utils.logging import get_logger, preview
from .languages import MultilingualRecognizer
from .patterns import PatternRegistry, RegisteredPattern

logger = get_logger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")

# Field lengths that earn (or lose) quality points
MIN_QUESTION_BONUS_LENGTH = 5
MIN_ANSWER_BONUS_LENGTH = 10
SHORT_QUESTION_LENGTH = 3
LONG_ANSWER_LENGTH = 5000

# Question share of question + answer length that earns the balance bonus
BALANCED_QUESTION_SHARE = (0.1, 0.5)


def significant_length(text: str) -> int:
    """Length with all whitespace removed."""
    return len(_WHITESPACE_RE.sub("", text))


@dataclass
class PatternTestResult:
    """Dry run of a single pattern against a text."""

    pattern_id: str
    matched: bool
    candidate: MatchCandidate | None = None
    reason: str | None = None


class PatternMatcher:
    """Applies a registry's patterns to content and scores every match.

    The registry is read through snapshots, so a pattern registered or removed
    while a match is running does not affect that match.
    """

    def __init__(
        self,
        registry: PatternRegistry,
        recognizer: MultilingualRecognizer | None = None,
    ):
        self.registry = registry
        self.recognizer = recognizer or MultilingualRecognizer()

    def match(self, content: str) -> MatchOutcome:
        """
        Apply every pattern in priority order.

        Args:
            content: Normalized note text

        Returns:
            All candidates, best first; ``best`` is None when nothing matched.
            Fallback-tagged candidates come after every other candidate.
        """
        started = time.perf_counter()
        entries = self.registry.snapshot()
        candidates: list[MatchCandidate] = []

        for entry in entries:
            candidate = self._apply(entry, content)
            if candidate is None:
                logger.debug("pattern_not_matched", pattern_id=entry.pattern.id)
                continue
            logger.debug(
                "pattern_matched",
                pattern_id=entry.pattern.id,
                confidence=round(candidate.confidence, 3),
                coverage=round(candidate.coverage, 3),
                score=round(candidate.score, 3),
            )
            candidates.append(candidate)

        candidates.sort(key=self._rank)
        elapsed_ms = (time.perf_counter() - started) * 1000

        return MatchOutcome(
            best=candidates[0] if candidates else None,
            candidates=candidates,
            attempted=len(entries),
            elapsed_ms=elapsed_ms,
        )

    def match_best(self, content: str) -> MatchCandidate | None:
        return self.match(content).best

    def evaluate(self, pattern: ContentPattern, content: str) -> MatchCandidate | None:
        """Score one pattern that need not be registered."""
        entry = RegisteredPattern(
            pattern=pattern,
            compiled=re.compile(pattern.regex, pattern.compile_flags),
            order=0,
        )
        return self._apply(entry, content)

    def test_pattern(self, pattern_id: str, content: str) -> PatternTestResult:
        """Dry-run a registered pattern, explaining why it did not match."""
        pattern = self.registry.get(pattern_id)
        if pattern is None:
            return PatternTestResult(
                pattern_id=pattern_id, matched=False, reason="pattern is not registered"
            )
        entry = RegisteredPattern(pattern, self.registry.compiled(pattern_id), 0)
        candidate = self._apply(entry, content)
        if candidate is not None:
            return PatternTestResult(pattern_id=pattern_id, matched=True, candidate=candidate)
        if not content.strip():
            reason = "content is empty"
        elif entry.compiled.search(content) is None:
            reason = "regex did not match"
        else:
            reason = "match produced no non-empty fields"
        return PatternTestResult(pattern_id=pattern_id, matched=False, reason=reason)

    def _apply(self, entry: RegisteredPattern, content: str) -> MatchCandidate | None:
        if not content.strip():
            return None
        match = entry.compiled.search(content)
        if match is None:
            return None

        groups = (match.group(0),) + match.groups()
        fields: dict[str, str] = {}
        for name, index in entry.pattern.field_mapping.items():
            value = groups[index] if index < len(groups) else None
            if value is not None and value.strip():
                fields[name] = value.strip()
        if not fields:
            return None

        coverage = self._coverage(match.group(0), content)
        confidence = self._confidence(entry.pattern, fields, coverage)
        score = self._score(entry.pattern, fields, confidence, coverage)

        return MatchCandidate(
            pattern=entry.pattern,
            groups=groups,
            fields=fields,
            confidence=confidence,
            coverage=coverage,
            score=score,
            registration_index=entry.order,
            span=match.span(),
        )

    @staticmethod
    def _coverage(matched: str, content: str) -> float:
        total = significant_length(content)
        if total == 0:
            return 0.0
        return min(1.0, significant_length(matched) / total)

    def _confidence(
        self, pattern: ContentPattern, fields: dict[str, str], coverage: float
    ) -> float:
        confidence = pattern.base_confidence * coverage
        question = fields.get("question", "")
        answer = fields.get("answer", "")

        if len(question) > MIN_QUESTION_BONUS_LENGTH:
            confidence += 0.1
        if len(answer) > MIN_ANSWER_BONUS_LENGTH:
            confidence += 0.1
        if question and self.recognizer.looks_like_question(question):
            confidence += 0.1
        if question and answer:
            ratio = len(question) / (len(question) + len(answer))
            if BALANCED_QUESTION_SHARE[0] <= ratio < BALANCED_QUESTION_SHARE[1]:
                confidence += 0.05

        return min(1.0, confidence)

    @staticmethod
    def _score(
        pattern: ContentPattern,
        fields: dict[str, str],
        confidence: float,
        coverage: float,
    ) -> float:
        question = fields.get("question", "")
        answer = fields.get("answer", "")
        priority = max(0, min(pattern.priority, 100)) / 100

        score = confidence * 0.4 + coverage * 0.3 + priority * 0.3
        if len(question) > MIN_QUESTION_BONUS_LENGTH:
            score += 0.1
        if len(answer) > MIN_ANSWER_BONUS_LENGTH:
            score += 0.1
        if question and len(question) < SHORT_QUESTION_LENGTH:
            score -= 0.2
        if len(answer) > LONG_ANSWER_LENGTH:
            score -= 0.1

        return max(0.0, min(1.0, score))

    @staticmethod
    def _rank(candidate: MatchCandidate) -> tuple[bool, float, int, int]:
        return (
            candidate.pattern.is_fallback,
            -candidate.score,
            -candidate.pattern.priority,
            candidate.registration_index,
        )


def describe_candidate(candidate: MatchCandidate) -> str:
    """One-line summary used by the CLI and debug logs."""
    question = preview(candidate.fields.get("question", ""), 40)
    return (
        f"{candidate.pattern_id} score={candidate.score:.2f} "
        f"confidence={candidate.confidence:.2f} question={question!r}"
    )
