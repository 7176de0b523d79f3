"""Dual-mode parsing: lenient for raw notes, strict for templated ones.

Lenient parsing never fails loudly. When nothing recognizes the content it
returns ``success=False`` with a ``PreservedContent`` record holding the text,
every attempt made, a fallback template and repair suggestions.

Strict parsing is for content already bound to a template. The template regex
must match and every required field must be non-empty; no looser pattern is
substituted.
"""

import re
from dataclasses import dataclass

from ..error_codes import ErrorCode, ErrorKind, get_error_severity
from ..models.data import (
    NOTES_FIELD,
    EnhancedParseResult,
    ParseAttempt,
    ParseMode,
    ParseResult,
    ParseState,
    PreservedContent,
)
from ..models.template import Template
from ..utils.logging import get_logger, preview
from .pipeline import RecognitionPipeline
from .preprocessor import FormatPreprocessor
from .strategies import compile_template_regex

logger = get_logger(__name__)

DIVIDER = "---div---"

_TAGS_LINE_RE = re.compile(r"\n[ \t]*((?:#[^\s#]+[ \t]*)+)\s*\Z")
_CLOZE_RE = re.compile(r"\{\{c\d+::")
_TODO_RE = re.compile(r"\bTODO\b|待完善")

LENIENT_PATTERNS: tuple[tuple[str, re.Pattern[str], float], ...] = (
    (
        "primary",
        re.compile(r"\A\s*([\s\S]+?)\s*\n[ \t]*---div---[ \t]*(?:\n\s*([\s\S]*?))?\s*\Z"),
        0.9,
    ),
    (
        "fallback",
        re.compile(r"\A\s*([^\n]+(?:\n[^\n]*\S[^\n]*)*?)[ \t]*\n[ \t]*\n\s*([\s\S]+?)\s*\Z"),
        0.7,
    ),
    ("simple", re.compile(r"\A\s*([^\n]+?)[ \t]*\n+\s*([\s\S]+?)\s*\Z"), 0.5),
)
_STRICT_DIVIDER_RE = LENIENT_PATTERNS[0][1]

# Long content without structure is most likely a question with a long answer
_LONG_CONTENT = 500


@dataclass
class _StateTracker:
    """Records the Idle -> Parsing -> terminal transitions of one call."""

    mode: ParseMode
    state: ParseState = ParseState.IDLE

    def advance(self, state: ParseState) -> ParseState:
        logger.debug(
            "parse_state_changed",
            mode=self.mode.value,
            from_state=self.state.value,
            to_state=state.value,
        )
        self.state = state
        return state


class DualModeParser:
    """Chooses between lenient and strict parsing for one note."""

    def __init__(
        self,
        pipeline: RecognitionPipeline | None = None,
        preprocessor: FormatPreprocessor | None = None,
    ):
        self.pipeline = pipeline or RecognitionPipeline.default()
        self.preprocessor = preprocessor or self.pipeline.preprocessor

    def parse(
        self,
        content: str,
        mode: ParseMode | str = ParseMode.LENIENT,
        template: Template | None = None,
    ) -> ParseResult:
        """
        Parse content under the given policy.

        Args:
            content: Raw note text
            mode: ``lenient`` for raw or imported notes, ``strict`` for templated ones
            template: Template bound to the note (strict mode, optional in lenient)

        Returns:
            ParseResult in one of the terminal states
        """
        mode = ParseMode(mode)
        if mode is ParseMode.STRICT:
            return self.parse_strict(content, template)
        return self.parse_lenient(content, template)

    def parse_lenient(self, content: str, template: Template | None = None) -> ParseResult:
        tracker = _StateTracker(ParseMode.LENIENT)
        tracker.advance(ParseState.PARSING)

        working = self.preprocessor.quick_normalize(content)
        attempts: list[ParseAttempt] = []

        divider = self._try_pattern(*LENIENT_PATTERNS[0], working, attempts)
        if divider is not None:
            return self._lenient_success(tracker, content, *divider)

        pipeline_result = self.pipeline.parse(content, template) if working else None
        accepted = (
            pipeline_result is not None
            and pipeline_result.success
            and pipeline_result.strategy != "protective"
            and pipeline_result.confidence > self.pipeline.thresholds.acceptance_threshold
        )
        if pipeline_result is not None:
            attempts.append(
                ParseAttempt(
                    strategy=f"lenient-pipeline:{pipeline_result.strategy}",
                    pattern=pipeline_result.pattern_id or pipeline_result.method.value,
                    success=accepted,
                    extracted_fields={
                        k: v for k, v in pipeline_result.fields.items() if k != NOTES_FIELD
                    },
                    error=None if accepted else "Recognition confidence too low",
                )
            )
        if accepted and pipeline_result is not None:
            tracker.advance(ParseState.SUCCEEDED)
            fields = {k: v for k, v in pipeline_result.fields.items() if k != NOTES_FIELD}
            return ParseResult(
                success=True,
                state=tracker.state,
                mode=ParseMode.LENIENT,
                fields={**fields, NOTES_FIELD: content},
                confidence=pipeline_result.confidence,
                matched_pattern=pipeline_result.pattern_id or pipeline_result.strategy,
                warnings=list(pipeline_result.warnings) + self._warnings(fields, content),
                original_content=content,
                pipeline_result=pipeline_result,
            )

        for name, pattern, base in LENIENT_PATTERNS[1:]:
            matched = self._try_pattern(name, pattern, base, working, attempts)
            if matched is not None:
                return self._lenient_success(tracker, content, *matched)

        return self._preserve(tracker, content, attempts, pipeline_result)

    def parse_strict(self, content: str, template: Template | None = None) -> ParseResult:
        tracker = _StateTracker(ParseMode.STRICT)
        tracker.advance(ParseState.PARSING)

        if template is None:
            return self._strict_divider(tracker, content)

        try:
            compiled = compile_template_regex(template.regex, template.compile_flags)
        except re.error as e:
            return self._strict_failure(
                tracker,
                content,
                f"Template '{template.id}' has an invalid regex: {e}",
                ErrorKind.INVALID_PATTERN,
                ErrorCode.PAT_SYNTAX_INVALID,
            )

        for name, index in template.field_mapping.items():
            if index < 0 or index > compiled.groups:
                return self._strict_failure(
                    tracker,
                    content,
                    f"Template '{template.id}' maps field '{name}' to group {index}, "
                    f"but its regex has {compiled.groups} group(s)",
                    ErrorKind.FIELD_MAPPING_GAP,
                    ErrorCode.PAT_MAPPING_GAP,
                    error_field=name,
                )

        match = compiled.search(content)
        if match is None:
            return self._strict_failure(
                tracker,
                content,
                f"Content does not match template '{template.id}'",
                ErrorKind.PATTERN_MISMATCH,
                ErrorCode.REC_TEMPLATE_MISMATCH,
            )

        fields = {
            name: (match.group(index) or "").strip()
            for name, index in template.field_mapping.items()
        }
        for name in template.effective_required_fields():
            if not fields.get(name):
                return self._strict_failure(
                    tracker,
                    content,
                    f"Required field '{name}' is empty",
                    ErrorKind.REQUIRED_FIELD_EMPTY,
                    ErrorCode.REC_REQUIRED_FIELD_EMPTY,
                    error_field=name,
                )

        tracker.advance(ParseState.SUCCEEDED)
        return ParseResult(
            success=True,
            state=tracker.state,
            mode=ParseMode.STRICT,
            fields={**fields, NOTES_FIELD: content},
            confidence=1.0,
            matched_pattern=template.id,
            original_content=content,
        )

    def _strict_divider(self, tracker: _StateTracker, content: str) -> ParseResult:
        match = _STRICT_DIVIDER_RE.match(content)
        if match is None:
            return self._strict_failure(
                tracker,
                content,
                f"Content does not use the '{DIVIDER}' format",
                ErrorKind.PATTERN_MISMATCH,
                ErrorCode.REC_PATTERN_MISMATCH,
            )
        question = (match.group(1) or "").strip()
        answer = (match.group(2) or "").strip()
        for name, value in (("question", question), ("answer", answer)):
            if not value:
                return self._strict_failure(
                    tracker,
                    content,
                    f"Required field '{name}' is empty",
                    ErrorKind.REQUIRED_FIELD_EMPTY,
                    ErrorCode.REC_REQUIRED_FIELD_EMPTY,
                    error_field=name,
                )
        tracker.advance(ParseState.SUCCEEDED)
        return ParseResult(
            success=True,
            state=tracker.state,
            mode=ParseMode.STRICT,
            fields={"question": question, "answer": answer, NOTES_FIELD: content},
            confidence=1.0,
            matched_pattern="strict-divider",
            original_content=content,
        )

    @staticmethod
    def _strict_failure(
        tracker: _StateTracker,
        content: str,
        message: str,
        kind: ErrorKind,
        code: ErrorCode,
        error_field: str | None = None,
    ) -> ParseResult:
        tracker.advance(ParseState.FAILED)
        logger.warning(
            "strict_parse_failed",
            error_code=code.value,
            severity=get_error_severity(code),
            error_kind=kind.value,
            field=error_field,
            reason=message,
        )
        return ParseResult(
            success=False,
            state=tracker.state,
            mode=ParseMode.STRICT,
            fields={NOTES_FIELD: content},
            error=message,
            error_kind=kind,
            error_code=code,
            error_field=error_field,
            original_content=content,
        )

    @staticmethod
    def _try_pattern(
        name: str,
        pattern: re.Pattern[str],
        base: float,
        content: str,
        attempts: list[ParseAttempt],
    ) -> tuple[str, dict[str, str], float] | None:
        match = pattern.match(content) if content else None
        if match is None:
            attempts.append(
                ParseAttempt(
                    strategy=f"lenient-{name}",
                    pattern=pattern.pattern,
                    success=False,
                    error="Pattern did not match",
                )
            )
            return None

        question = (match.group(1) or "").strip()
        answer = (match.group(2) or "").strip()
        fields = {"question": question, "answer": answer}
        tags = _TAGS_LINE_RE.search(answer)
        if tags:
            fields["answer"] = answer[: tags.start()].strip()
            fields["tags"] = " ".join(tag.lstrip("#") for tag in tags.group(1).split())

        attempts.append(
            ParseAttempt(
                strategy=f"lenient-{name}",
                pattern=pattern.pattern,
                success=True,
                extracted_fields=fields,
            )
        )
        return name, fields, base

    def _lenient_success(
        self,
        tracker: _StateTracker,
        content: str,
        name: str,
        fields: dict[str, str],
        base: float,
    ) -> ParseResult:
        tracker.advance(ParseState.SUCCEEDED)
        return ParseResult(
            success=True,
            state=tracker.state,
            mode=ParseMode.LENIENT,
            fields={**fields, NOTES_FIELD: content},
            confidence=self._confidence(base, fields),
            matched_pattern=f"lenient-{name}",
            warnings=self._warnings(fields, content),
            original_content=content,
        )

    @staticmethod
    def _confidence(base: float, fields: dict[str, str]) -> float:
        question = fields.get("question", "")
        answer = fields.get("answer", "")
        confidence = base
        if question and answer:
            confidence += 0.1
        if fields.get("tags"):
            confidence += 0.05
        if len(question) > 5:
            confidence += 0.05
        if len(answer) > 10:
            confidence += 0.05
        return min(1.0, confidence)

    @staticmethod
    def _warnings(fields: dict[str, str], content: str) -> list[str]:
        warnings: list[str] = []
        question = fields.get("question") or fields.get("front") or ""
        answer = fields.get("answer") or fields.get("back") or ""
        if len(question) < 3:
            warnings.append("Question is very short; consider expanding it")
        if len(answer) < 5:
            warnings.append("Answer is very short; consider expanding it")
        if not fields.get("tags"):
            warnings.append("No tags; add a '#tag' line to help organize cards")
        if _TODO_RE.search(content):
            warnings.append("Content contains a TODO marker")
        return warnings

    def _preserve(
        self,
        tracker: _StateTracker,
        content: str,
        attempts: list[ParseAttempt],
        pipeline_result: EnhancedParseResult | None = None,
    ) -> ParseResult:
        tracker.advance(ParseState.PRESERVED_FALLBACK)
        template_id = select_fallback_template(content)
        preserved = PreservedContent(
            original_content=content,
            attempts=attempts,
            fallback_template_id=template_id,
            repair_suggestions=repair_suggestions(content, attempts),
        )
        logger.info(
            "recognition_preserved",
            fallback_template=template_id,
            attempts=len(attempts),
            content=preview(content),
        )
        return ParseResult(
            success=False,
            state=tracker.state,
            mode=ParseMode.LENIENT,
            fields={NOTES_FIELD: content},
            error="Content could not be recognized; the original text has been preserved",
            error_kind=ErrorKind.PATTERN_MISMATCH,
            error_code=(
                ErrorCode.REC_EMPTY_CONTENT
                if not content.strip()
                else ErrorCode.REC_PATTERN_MISMATCH
            ),
            preserved_content=preserved,
            original_content=content,
            pipeline_result=pipeline_result,
        )


def select_fallback_template(content: str) -> str:
    """Template to hold preserved content, chosen from its features."""
    if _CLOZE_RE.search(content):
        return "basic-cloze"
    if len(content) > _LONG_CONTENT:
        return "basic-qa"
    return "emergency-basic"


def repair_suggestions(content: str, attempts: list[ParseAttempt]) -> list[str]:
    """Human-readable hints for rewriting unrecognized content."""
    suggestions: list[str] = []
    if not content.strip():
        suggestions.append("The note is empty; write a question and an answer")
        return suggestions
    if attempts and all(not attempt.success for attempt in attempts):
        suggestions.append(f"Use the standard layout: question, a '{DIVIDER}' line, answer")
    if "\n" in content.strip() and "\n\n" not in content:
        suggestions.append("Put a blank line between the question and the answer")
    if "\n" not in content.strip():
        suggestions.append("Add the answer on a new line below the question")
    if DIVIDER not in content:
        suggestions.append(f"Separate fields with a '{DIVIDER}' line")
    return suggestions
