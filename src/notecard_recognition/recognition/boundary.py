"""Structural boundary detection: split a note into question and answer by layout.

Works line by line instead of by regex. The question is the first heading or
labelled question line, whichever comes first; the answer takes every line
after it up to the next heading of the same or shallower level, a separator,
or a new question label. Nothing in between is dropped, and lines above the
question are kept as ``context``.
"""

import re
from dataclasses import dataclass

from ..models.data import (
    CompletenessReport,
    FixSuggestion,
    ParsedContent,
    Section,
    SectionKind,
)
from ..utils.logging import get_logger
from .languages import MultilingualRecognizer

logger = get_logger(__name__)

_HEADING_RE = re.compile(r"^[ \t]*(#{1,6})[ \t]+(.*?)[ \t#]*$")
_SEPARATOR_RE = re.compile(r"^[ \t]*(?:-{3,}|={3,})[ \t]*$")
_BOLD_LABEL_RE = re.compile(r"^[ \t]*\*\*(.+?)\*\*[ \t]*[:：][ \t]*(.*)$")
_QUESTION_MARK_LINE_RE = re.compile(r"[?？][ \t]*$")
_LEAD_WORD_RE = re.compile(
    r"^(什么|如何|为什么|怎么|哪个|哪些|What|How|Why|Which|Where|When)", re.IGNORECASE
)
_NUMBERED_ITEM_RE = re.compile(r"[1-9]\.")
_MARKUP_RE = re.compile(
    r"^[ \t]*(?:#{1,6}[ \t]+|[-=]{3,}[ \t]*$|[-*+>][ \t]+|\d+[.)][ \t]+)", re.MULTILINE
)
_INSIGNIFICANT_RE = re.compile(r"[\s*:：]+")

# A non-heading question sits below every heading level
_BELOW_ALL_HEADINGS = 7

COMPLETENESS_THRESHOLD = 0.9
LOW_CONFIDENCE_THRESHOLD = 0.7
MANY_HEADINGS = 5


@dataclass
class _QuestionSection:
    index: int
    text: str
    level: int
    answer_prefix: str = ""


class BoundaryDetector:
    """Locates the question/answer boundary from the note's structure."""

    def __init__(
        self,
        recognizer: MultilingualRecognizer | None = None,
        preserve_formatting: bool = True,
        question_heading_levels: tuple[int, ...] | None = None,
        completeness_threshold: float = COMPLETENESS_THRESHOLD,
    ):
        self.recognizer = recognizer or MultilingualRecognizer()
        self.preserve_formatting = preserve_formatting
        self.question_heading_levels = question_heading_levels
        self.completeness_threshold = completeness_threshold

    def analyze(self, content: str) -> ParsedContent:
        """
        Segment content and split it into question and answer.

        Args:
            content: Note text (normalized or raw)

        Returns:
            Parsed content; confidence is 0.1 when no question was found
        """
        sections = self.segment(content)
        language = self.recognizer.detect_language(content) if content.strip() else "en"
        question = self.identify_question(sections, language)

        if question is None:
            return ParsedContent(
                question="",
                answer=content.strip(),
                sections=sections,
                language=language,
                confidence=0.1,
                warnings=["No question section found"],
            )

        boundary_index, reason = self.determine_boundary(sections, question, language)
        answer = self._collect_answer(sections, question, boundary_index, language)
        context = "\n".join(s.raw for s in sections[: question.index]).strip()

        confidence = self._confidence(question.text, answer, sections)
        parsed = ParsedContent(
            question=question.text,
            answer=answer,
            context=context,
            sections=sections,
            question_index=question.index,
            boundary_index=boundary_index,
            boundary_reason=reason,
            language=language,
            confidence=confidence,
            warnings=self._warnings(question.text, answer, sections),
        )

        completeness = self.validate_completeness(content, parsed)
        if not completeness.is_complete:
            parsed.warnings.append(
                f"Possible truncation: question and answer cover "
                f"{completeness.coverage:.0%} of the note"
            )

        logger.debug(
            "boundary_detected",
            question_line=sections[question.index].line,
            boundary_reason=reason,
            has_context=bool(context),
            coverage=round(completeness.coverage, 3),
            confidence=round(confidence, 3),
        )
        return parsed

    def segment(self, content: str) -> list[Section]:
        """One section per line; joining ``raw`` with newlines gives back the input."""
        sections: list[Section] = []
        offset = 0
        for number, line in enumerate(content.split("\n")):
            start, end = offset, offset + len(line)
            offset = end + 1

            heading = _HEADING_RE.match(line)
            if heading:
                sections.append(
                    Section(
                        kind=SectionKind.HEADING,
                        level=len(heading.group(1)),
                        text=heading.group(2).strip(),
                        raw=line,
                        line=number,
                        start=start,
                        end=end,
                    )
                )
            elif _SEPARATOR_RE.match(line):
                sections.append(
                    Section(
                        kind=SectionKind.SEPARATOR,
                        text=line.strip(),
                        raw=line,
                        line=number,
                        start=start,
                        end=end,
                    )
                )
            else:
                sections.append(
                    Section(
                        kind=SectionKind.CONTENT,
                        text=line.strip(),
                        raw=line,
                        line=number,
                        start=start,
                        end=end,
                    )
                )
        return sections

    def identify_question(
        self, sections: list[Section], language: str | None = None
    ) -> _QuestionSection | None:
        """First heading or labelled question line in document order, else first line ending in '?'.

        With ``question_heading_levels`` set, only headings at those levels count.
        """
        for index, section in enumerate(sections):
            if not section.text:
                continue
            if section.kind is SectionKind.HEADING:
                if self.question_heading_levels and section.level not in self.question_heading_levels:
                    continue
                return _QuestionSection(index, section.text, section.level or 1)
            if self.question_heading_levels or section.kind is not SectionKind.CONTENT:
                continue
            labelled = self._labelled_question(index, section, language)
            if labelled is not None:
                return labelled

        if self.question_heading_levels:
            return None

        for index, section in enumerate(sections):
            if section.kind is SectionKind.CONTENT and _QUESTION_MARK_LINE_RE.search(
                section.text
            ):
                return _QuestionSection(index, section.text, _BELOW_ALL_HEADINGS)

        return None

    def determine_boundary(
        self,
        sections: list[Section],
        question: _QuestionSection,
        language: str | None = None,
    ) -> tuple[int, str]:
        """Index of the first section after the answer, and why the answer stopped there."""
        for index in range(question.index + 1, len(sections)):
            section = sections[index]
            if section.kind is SectionKind.HEADING and (section.level or 1) <= question.level:
                return index, "heading"
            if section.kind is SectionKind.SEPARATOR:
                return index, "separator"
            if section.kind is SectionKind.CONTENT and self.recognizer.match_question_marker(
                section.raw, language
            ):
                return index, "question_marker"
        return len(sections), "end_of_document"

    def validate_completeness(
        self, original: str, parsed: ParsedContent
    ) -> CompletenessReport:
        """Whitespace- and markup-insensitive coverage of context, question and answer."""
        original_length = len(self.significant_text(original))
        extracted_length = len(
            self.significant_text(
                f"{parsed.context}\n\n{parsed.question}\n\n{parsed.answer}"
            )
        )

        if original_length == 0:
            coverage = 1.0
        else:
            coverage = min(1.0, extracted_length / original_length)

        return CompletenessReport(
            is_complete=coverage >= self.completeness_threshold,
            coverage=coverage,
            original_length=original_length,
            extracted_length=extracted_length,
            missing_characters=max(0, original_length - extracted_length),
        )

    def _labelled_question(
        self, index: int, section: Section, language: str | None
    ) -> _QuestionSection | None:
        if self.recognizer.match_question_marker(section.raw, language):
            text = self.recognizer.strip_question_marker(section.raw, language)
            if text:
                return _QuestionSection(index, text, _BELOW_ALL_HEADINGS)
        bold = _BOLD_LABEL_RE.match(section.raw)
        if bold and not self.recognizer.match_answer_marker(section.raw, language):
            return _QuestionSection(
                index, bold.group(1).strip(), _BELOW_ALL_HEADINGS, bold.group(2).strip()
            )
        return None

    def _collect_answer(
        self,
        sections: list[Section],
        question: _QuestionSection,
        boundary_index: int,
        language: str | None,
    ) -> str:
        body = sections[question.index + 1 : boundary_index]
        lines: list[str] = []
        if question.answer_prefix:
            lines.append(question.answer_prefix)

        label_stripped = False
        for section in body:
            raw = section.raw
            if not label_stripped and section.text:
                label_stripped = True
                marker = self.recognizer.match_answer_marker(raw, language)
                if marker:
                    raw = raw[marker.end() :]
            if section.kind is SectionKind.HEADING and not self.preserve_formatting:
                raw = section.text
            lines.append(raw)

        return "\n".join(lines).strip()

    def significant_text(self, text: str) -> str:
        """Text without markup prefixes, Q/A labels, emphasis, colons or whitespace."""
        lines = []
        for line in _MARKUP_RE.sub("", text).split("\n"):
            label = self.recognizer.match_question_marker(
                line
            ) or self.recognizer.match_answer_marker(line)
            lines.append(line[label.end() :] if label else line)
        return _INSIGNIFICANT_RE.sub("", "".join(lines))

    @staticmethod
    def _confidence(question: str, answer: str, sections: list[Section]) -> float:
        confidence = 0.3

        if len(question) > 5:
            confidence += 0.15
        if len(question) > 15:
            confidence += 0.1
        if "?" in question or "？" in question:
            confidence += 0.15
        if _LEAD_WORD_RE.match(question):
            confidence += 0.15
        if question.endswith(("。", "！", "？", ".", "!", "?")):
            confidence += 0.1
        if ":" in question or "：" in question:
            confidence += 0.05

        if len(answer) > 10:
            confidence += 0.1
        if len(answer) > 50:
            confidence += 0.1
        if len(answer) > 200:
            confidence += 0.05
        if "\n" in answer:
            confidence += 0.05
        if _NUMBERED_ITEM_RE.search(answer):
            confidence += 0.05
        if "*" in answer:
            confidence += 0.03

        if any(s.kind is SectionKind.HEADING for s in sections):
            confidence += 0.15
        if any(s.kind is SectionKind.SEPARATOR for s in sections):
            confidence += 0.1

        total = len(question) + len(answer)
        if total:
            if 0.1 <= len(question) / total <= 0.5:
                confidence += 0.05
            if 0.5 <= len(answer) / total <= 0.9:
                confidence += 0.05

        return min(confidence, 1.0)

    @staticmethod
    def _warnings(question: str, answer: str, sections: list[Section]) -> list[str]:
        warnings: list[str] = []
        if len(question) < 5:
            warnings.append("Question is very short; recognition may be inaccurate")
        if len(answer) < 10:
            warnings.append("Answer is very short; it may have been truncated")
        if len(answer) > 5000:
            warnings.append("Answer is very long; check that the boundary is correct")
        if sum(1 for s in sections if s.kind is SectionKind.HEADING) > MANY_HEADINGS:
            warnings.append("Content has many headings; the boundary may need adjusting")
        return warnings


def parse_h2_question_answer(content: str) -> ParsedContent:
    """Boundary detection with questions restricted to level-2 headings."""
    return BoundaryDetector(question_heading_levels=(2,)).analyze(content)


def validate_and_suggest_fix(original: str, parsed: ParsedContent) -> FixSuggestion:
    """Collect completeness and confidence issues with suggested fixes."""
    detector = BoundaryDetector()
    completeness = detector.validate_completeness(original, parsed)

    issues: list[str] = []
    suggestions: list[str] = []

    if not completeness.is_complete:
        issues.append(f"Incomplete extraction: coverage is {completeness.coverage:.1%}")
        suggestions.append("Check where the answer ends; add a blank line or '---' between cards")
    if parsed.confidence < LOW_CONFIDENCE_THRESHOLD:
        issues.append(f"Low confidence ({parsed.confidence:.1%})")
        suggestions.append("Check the recognized question and answer by hand")
    issues.extend(parsed.warnings)

    return FixSuggestion(is_valid=not issues, issues=issues, suggestions=suggestions)
