"""Parsing strategies run by the recognition pipeline.

Each strategy returns a ``StrategyResult`` instead of raising: ``ok`` when it
is confident, ``partial`` when it produced fields but something looks off,
``failed`` with a reason otherwise.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache

from ..config_models import DEFAULT_STRATEGY_ORDER
from ..error_codes import ErrorKind
from ..models.data import EnhancedParseResult, ParsedContent, ParseMethod
from ..models.template import Template
from .boundary import BoundaryDetector
from .languages import MultilingualRecognizer
from .matcher import PatternMatcher

_HEADING_QUESTION_RE = re.compile(r"^#{1,2}[ \t]+(.+)$")
_BOLD_QUESTION_RE = re.compile(r"^\*\*(.+?)\*\*[ \t]*[:：]")
_LOOKAHEAD_RE = re.compile(r"(?<!\\)\(\?=")
_NEGATIVE_LOOKAROUND_RE = re.compile(r"(?<!\\)\(\?<?!")
_LAZY_RE = re.compile(r"(?<!\\)([*+}])\?")

# Template field names that receive the question / answer of a structural parse
_QUESTION_FIELDS = ("question", "front")
_ANSWER_FIELDS = ("answer", "back")


class StrategyStatus(str, Enum):
    OK = "ok"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class StrategyResult:
    """Outcome of one strategy on one piece of content."""

    status: StrategyStatus
    method: ParseMethod
    fields: dict[str, str] = field(default_factory=dict)
    confidence: float = 0.0
    warnings: list[str] = field(default_factory=list)
    pattern_id: str | None = None
    reason: str | None = None
    error_kind: ErrorKind | None = None

    @classmethod
    def ok(
        cls,
        method: ParseMethod,
        fields: dict[str, str],
        confidence: float,
        warnings: list[str] | None = None,
        pattern_id: str | None = None,
    ) -> "StrategyResult":
        return cls(
            StrategyStatus.OK, method, fields, confidence, warnings or [], pattern_id
        )

    @classmethod
    def partial(
        cls,
        method: ParseMethod,
        fields: dict[str, str],
        confidence: float,
        warnings: list[str],
        pattern_id: str | None = None,
    ) -> "StrategyResult":
        return cls(StrategyStatus.PARTIAL, method, fields, confidence, warnings, pattern_id)

    @classmethod
    def failed(
        cls,
        method: ParseMethod,
        reason: str,
        kind: ErrorKind = ErrorKind.PATTERN_MISMATCH,
        confidence: float = 0.0,
        warnings: list[str] | None = None,
    ) -> "StrategyResult":
        return cls(
            StrategyStatus.FAILED,
            method,
            confidence=confidence,
            warnings=warnings or [reason],
            reason=reason,
            error_kind=kind,
        )

    @property
    def success(self) -> bool:
        return self.status is not StrategyStatus.FAILED

    def to_parse_result(self, original: str, strategy: str) -> EnhancedParseResult:
        return EnhancedParseResult(
            success=self.success,
            fields=dict(self.fields),
            confidence=max(0.0, min(1.0, self.confidence)),
            method=self.method,
            strategy=strategy,
            pattern_id=self.pattern_id,
            warnings=list(self.warnings),
            original_content=original,
            error_kind=self.error_kind,
        )


@dataclass
class StrategyContext:
    """Collaborators and thresholds shared by every strategy."""

    matcher: PatternMatcher
    detector: BoundaryDetector
    recognizer: MultilingualRecognizer
    boundary_min_confidence: float = 0.3
    truncation_coverage_threshold: float = 0.9
    multi_pattern_warning_confidence: float = 0.7
    hybrid_boundary_confidence: float = 0.7


@lru_cache(maxsize=256)
def compile_template_regex(regex: str, flags: int) -> re.Pattern[str]:
    """Compiled template regex, cached by source and flags."""
    return re.compile(regex, flags)


def relax_regex(regex: str) -> str:
    """Loosen a template regex.

    Negative lookarounds are removed, positive lookaheads become plain
    non-capturing groups, and lazy quantifiers become greedy.
    """
    return _LAZY_RE.sub(r"\1", _LOOKAHEAD_RE.sub("(?:", _drop_negative_lookarounds(regex)))


def _drop_negative_lookarounds(regex: str) -> str:
    parts: list[str] = []
    position = 0
    while True:
        found = _NEGATIVE_LOOKAROUND_RE.search(regex, position)
        if found is None:
            parts.append(regex[position:])
            return "".join(parts)
        parts.append(regex[position : found.start()])
        position = _group_end(regex, found.start())


def _group_end(regex: str, start: int) -> int:
    """Index just past the group opened at ``start``, or the end of the string."""
    depth = 0
    in_class = False
    index = start
    while index < len(regex):
        char = regex[index]
        if char == "\\":
            index += 2
            continue
        if in_class:
            in_class = char != "]"
        elif char == "[":
            in_class = True
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return index + 1
        index += 1
    return len(regex)


def field_coverage(
    detector: BoundaryDetector, content: str, fields: dict[str, str]
) -> float:
    """Share of ``content`` present in ``fields``, ignoring whitespace and markup."""
    total = len(detector.significant_text(content))
    if total == 0:
        return 1.0
    extracted = len(detector.significant_text("\n".join(fields.values())))
    return min(1.0, extracted / total)


def project_fields(
    question: str, answer: str, template: Template | None
) -> dict[str, str]:
    """Place a structural question/answer into the template's field names."""
    if template is None:
        return {"question": question, "answer": answer}

    fields: dict[str, str] = {}
    for name in template.field_mapping:
        if name in _QUESTION_FIELDS:
            fields[name] = question
        elif name in _ANSWER_FIELDS:
            fields[name] = answer
        else:
            fields[name] = ""
    if not any(name in fields for name in _QUESTION_FIELDS):
        fields["question"] = question
    if not any(name in fields for name in _ANSWER_FIELDS):
        fields["answer"] = answer
    return fields


def _template_match(
    content: str, template: Template, regex: str, flags: int, method: ParseMethod
) -> dict[str, str] | StrategyResult:
    """Mapped fields of the first match, or the failure that prevented one."""
    try:
        compiled = compile_template_regex(regex, flags)
    except re.error as e:
        return StrategyResult.failed(
            method, f"Template regex is invalid: {e}", ErrorKind.INVALID_PATTERN
        )

    for name, index in template.field_mapping.items():
        if index < 0 or index > compiled.groups:
            return StrategyResult.failed(
                method,
                f"Field '{name}' is mapped to group {index}, "
                f"but the template regex has {compiled.groups} group(s)",
                ErrorKind.FIELD_MAPPING_GAP,
            )

    match = compiled.search(content)
    if match is None:
        return StrategyResult.failed(method, "Template regex did not match the content")

    return {
        name: (match.group(index) or "").strip()
        for name, index in template.field_mapping.items()
    }


class ParseStrategy(ABC):
    """A single way of turning content into fields."""

    name: str = ""
    method: ParseMethod = ParseMethod.REGEX

    def __init__(self, context: StrategyContext):
        self.context = context

    @abstractmethod
    def execute(self, content: str, template: Template | None = None) -> StrategyResult:
        """Parse ``content``; never raises for content it cannot handle."""


class StrictRegexStrategy(ParseStrategy):
    """The bound template's own regex, as written."""

    name = "strict_regex"
    method = ParseMethod.REGEX

    def execute(self, content: str, template: Template | None = None) -> StrategyResult:
        if template is None:
            return StrategyResult.failed(self.method, "No template bound")

        fields = _template_match(
            content, template, template.regex, template.compile_flags, self.method
        )
        if isinstance(fields, StrategyResult):
            return fields

        coverage = field_coverage(self.context.detector, content, fields)
        if coverage < self.context.truncation_coverage_threshold:
            return StrategyResult.partial(
                self.method,
                fields,
                coverage,
                [f"Content may be truncated (coverage {coverage:.0%})"],
            )
        return StrategyResult.ok(self.method, fields, coverage)


class MultiPatternStrategy(ParseStrategy):
    """Best-scoring pattern from the registry."""

    name = "multi_pattern"
    method = ParseMethod.REGEX

    def execute(self, content: str, template: Template | None = None) -> StrategyResult:
        best = self.context.matcher.match_best(content)
        if best is None:
            return StrategyResult.failed(self.method, "No registered pattern matched")

        fields = dict(best.fields)
        if template is not None and "question" in fields:
            projected = project_fields(
                fields.get("question", ""), fields.get("answer", ""), template
            )
            fields = {**projected, **{k: v for k, v in fields.items() if k not in projected}}

        warnings: list[str] = []
        if best.confidence < self.context.multi_pattern_warning_confidence:
            warnings.append(f"Low pattern confidence ({best.confidence:.0%})")
        return StrategyResult.ok(
            self.method, fields, best.confidence, warnings, pattern_id=best.pattern_id
        )


class BoundaryDetectionStrategy(ParseStrategy):
    """Structural split by headings, separators and labels."""

    name = "boundary_detection"
    method = ParseMethod.INTELLIGENT

    def execute(self, content: str, template: Template | None = None) -> StrategyResult:
        parsed = self.context.detector.analyze(content)
        if parsed.confidence < self.context.boundary_min_confidence or not parsed.question:
            return StrategyResult.failed(
                self.method,
                "No clear question/answer structure",
                ErrorKind.LOW_CONFIDENCE,
                confidence=parsed.confidence,
                warnings=list(parsed.warnings) or ["No clear question/answer structure"],
            )
        fields = project_fields(parsed.question, parsed.answer, template)
        if parsed.context:
            fields.setdefault("context", parsed.context)
        return StrategyResult.ok(self.method, fields, parsed.confidence, list(parsed.warnings))


class HybridStrategy(ParseStrategy):
    """Boundary detection when it is confident, else a regex result checked for truncation."""

    name = "hybrid"
    method = ParseMethod.HYBRID

    def __init__(self, context: StrategyContext):
        super().__init__(context)
        self._boundary = BoundaryDetectionStrategy(context)
        self._strict = StrictRegexStrategy(context)
        self._multi = MultiPatternStrategy(context)

    def execute(self, content: str, template: Template | None = None) -> StrategyResult:
        structural = self._boundary.execute(content, template)
        if (
            structural.success
            and structural.confidence > self.context.hybrid_boundary_confidence
        ):
            structural.method = self.method
            return structural

        regex_result = (
            self._strict.execute(content, template)
            if template is not None
            else self._multi.execute(content, template)
        )
        regex_result.method = self.method
        if not regex_result.success:
            return regex_result

        fields = regex_result.fields
        completeness = self.context.detector.validate_completeness(
            content,
            ParsedContent(
                question=_first_present(fields, _QUESTION_FIELDS),
                answer=_first_present(fields, _ANSWER_FIELDS),
                confidence=regex_result.confidence,
            ),
        )
        confidence = min(regex_result.confidence, completeness.coverage)
        warnings = list(regex_result.warnings)
        if not completeness.is_complete:
            warnings.append(
                f"Possible truncation: fields cover {completeness.coverage:.0%} of the note"
            )
            return StrategyResult.partial(
                self.method, fields, confidence, warnings, regex_result.pattern_id
            )
        return StrategyResult.ok(
            self.method, fields, confidence, warnings, regex_result.pattern_id
        )


class RelaxedRegexStrategy(ParseStrategy):
    """The template regex without lookarounds or lazy quantifiers, case-insensitive."""

    name = "relaxed_regex"
    method = ParseMethod.REGEX
    confidence = 0.6

    def execute(self, content: str, template: Template | None = None) -> StrategyResult:
        if template is None:
            return StrategyResult.failed(self.method, "No template bound")

        fields = _template_match(
            content,
            template,
            relax_regex(template.regex),
            template.compile_flags | re.IGNORECASE | re.MULTILINE,
            self.method,
        )
        if isinstance(fields, StrategyResult):
            return fields
        return StrategyResult.partial(
            self.method,
            fields,
            self.confidence,
            ["Parsed with a relaxed template regex; check the result"],
        )


class KeywordHeuristicStrategy(ParseStrategy):
    """Question keywords and language cues, with no regex template."""

    name = "keyword_heuristic"
    method = ParseMethod.INTELLIGENT
    confidence = 0.5

    def execute(self, content: str, template: Template | None = None) -> StrategyResult:
        recognizer = self.context.recognizer
        lines = content.split("\n")
        for index, line in enumerate(lines):
            question = self._question_from_line(line.strip())
            if not question:
                continue
            answer = "\n".join(rest for rest in lines[index + 1 :] if rest.strip()).strip()
            answer = recognizer.strip_answer_marker(answer) if answer else content.strip()
            return StrategyResult.partial(
                self.method,
                project_fields(question, answer, template),
                self.confidence,
                ["Parsed from question keywords; check the result"],
            )

        split = recognizer.smart_split(content)
        if not split.question or not split.answer:
            return StrategyResult.failed(self.method, "No question keywords found")
        return StrategyResult.partial(
            self.method,
            project_fields(
                recognizer.strip_question_marker(split.question),
                recognizer.strip_answer_marker(split.answer),
                template,
            ),
            min(split.confidence, self.confidence),
            [f"Split by language cues ({split.language}); check the result"],
        )

    def _question_from_line(self, line: str) -> str:
        heading = _HEADING_QUESTION_RE.match(line)
        if heading:
            return heading.group(1).strip()
        if self.context.recognizer.match_question_marker(line):
            return self.context.recognizer.strip_question_marker(line)
        bold = _BOLD_QUESTION_RE.match(line)
        if bold:
            return bold.group(1).strip()
        return ""


def _first_present(fields: dict[str, str], names: tuple[str, ...]) -> str:
    for name in names:
        if fields.get(name):
            return fields[name]
    return ""


STRATEGY_TYPES: dict[str, type[ParseStrategy]] = {
    cls.name: cls
    for cls in (
        StrictRegexStrategy,
        MultiPatternStrategy,
        BoundaryDetectionStrategy,
        HybridStrategy,
        RelaxedRegexStrategy,
        KeywordHeuristicStrategy,
    )
}


def build_strategies(
    context: StrategyContext, order: tuple[str, ...] | list[str] = DEFAULT_STRATEGY_ORDER
) -> list[ParseStrategy]:
    """Instantiate strategies by name, in the given order."""
    unknown = [name for name in order if name not in STRATEGY_TYPES]
    if unknown:
        msg = f"Unknown strategies: {', '.join(unknown)}"
        raise ValueError(msg)
    return [STRATEGY_TYPES[name](context) for name in order]
