"""Parse-result validation: truncation, missing fields and lost markup."""

import re
from typing import Any

from ..models.data import (
    NOTES_FIELD,
    IssueSeverity,
    IssueType,
    ValidationIssue,
    ValidationReport,
    ValidationStatistics,
)
from ..models.template import BASIC_REQUIRED_FIELDS
from .languages import MultilingualRecognizer

_WHITESPACE_RE = re.compile(r"\s+")

# (description, regex, group holding the text that must survive)
_IMPORTANT_SPANS: tuple[tuple[str, re.Pattern[str], int], ...] = (
    ("code block", re.compile(r"```[\s\S]*?```"), 0),
    ("image", re.compile(r"!\[[^\]\n]*\]\([^)\n]*\)"), 0),
    ("link", re.compile(r"(?<!!)\[[^\]\n]*\]\([^)\n]*\)"), 0),
    ("heading", re.compile(r"^#{1,6}[ \t]+(.+?)[ \t]*$", re.MULTILINE), 1),
    ("bold", re.compile(r"\*\*[^*\n]+?\*\*"), 0),
)

MIN_COVERAGE = 0.85
CRITICAL_COVERAGE = 0.5
MIN_FIELD_LENGTH = 3
MAX_FIELD_LENGTH = 10000
DOMINANT_FIELD_SHARE = 0.8
MAX_REPORTED_LOSSES = 5

_SEVERITY_FACTOR = {
    IssueSeverity.CRITICAL: 0.3,
    IssueSeverity.WARNING: 0.8,
    IssueSeverity.INFO: 0.95,
}


class ParseResultValidator:
    """Checks extracted fields against the original note text.

    The ``notes`` field is ignored throughout: it always holds the whole
    input and would make every parse look complete.
    """

    def __init__(
        self,
        recognizer: MultilingualRecognizer | None = None,
        min_coverage: float = MIN_COVERAGE,
    ):
        self.recognizer = recognizer or MultilingualRecognizer()
        self.min_coverage = min_coverage

    def validate(
        self,
        original: str,
        fields: dict[str, str],
        expected_fields: list[str] | None = None,
    ) -> ValidationReport:
        """
        Validate parsed fields.

        Args:
            original: Text the fields were extracted from
            fields: Extracted fields (``notes`` is skipped)
            expected_fields: Fields the template expects

        Returns:
            Report; ``is_valid`` is False only for critical issues
        """
        extracted = {k: v for k, v in fields.items() if k != NOTES_FIELD}
        statistics = self._statistics(original, extracted)
        issues: list[ValidationIssue] = []

        self._check_coverage(statistics, issues)
        self._check_completeness(extracted, expected_fields, issues)
        self._check_quality(extracted, issues)
        self._check_distribution(statistics, issues)
        self._check_data_loss(original, extracted, issues)

        return ValidationReport(
            issues=issues,
            confidence=self._confidence(statistics, issues),
            suggestions=self._suggestions(issues, statistics),
            statistics=statistics,
        )

    @staticmethod
    def _statistics(original: str, fields: dict[str, str]) -> ValidationStatistics:
        original_length = len(_WHITESPACE_RE.sub("", original))
        parsed_length = len(_WHITESPACE_RE.sub("", "".join(fields.values())))
        non_empty = [v for v in fields.values() if v.strip()]

        if original_length:
            coverage = min(1.0, parsed_length / original_length)
        else:
            coverage = 1.0 if not parsed_length else 0.0

        return ValidationStatistics(
            original_length=original_length,
            parsed_length=parsed_length,
            coverage=coverage,
            field_count=len(fields),
            empty_fields=len(fields) - len(non_empty),
            average_field_length=(
                sum(len(v) for v in non_empty) / len(non_empty) if non_empty else 0.0
            ),
            content_distribution={k: len(v) for k, v in fields.items()},
        )

    def _check_coverage(
        self, statistics: ValidationStatistics, issues: list[ValidationIssue]
    ) -> None:
        if statistics.coverage >= self.min_coverage:
            return
        severity = (
            IssueSeverity.CRITICAL
            if statistics.coverage < CRITICAL_COVERAGE
            else IssueSeverity.WARNING
        )
        issues.append(
            ValidationIssue(
                type=IssueType.TRUNCATION,
                severity=severity,
                message=(
                    f"Fields cover only {statistics.coverage:.1%} of the note; "
                    f"{1 - statistics.coverage:.1%} may have been cut off"
                ),
                details={
                    "coverage": statistics.coverage,
                    "original_length": statistics.original_length,
                    "parsed_length": statistics.parsed_length,
                },
            )
        )

    @staticmethod
    def _check_completeness(
        fields: dict[str, str],
        expected_fields: list[str] | None,
        issues: list[ValidationIssue],
    ) -> None:
        for name in expected_fields or ():
            if fields.get(name, "").strip():
                continue
            critical = name in BASIC_REQUIRED_FIELDS
            issues.append(
                ValidationIssue(
                    type=IssueType.MISSING_FIELD,
                    severity=IssueSeverity.CRITICAL if critical else IssueSeverity.WARNING,
                    message=f"Field '{name}' is missing",
                    field=name,
                )
            )

        empty = [name for name, value in fields.items() if not value.strip()]
        if empty:
            issues.append(
                ValidationIssue(
                    type=IssueType.MISSING_FIELD,
                    severity=IssueSeverity.WARNING,
                    message=f"{len(empty)} empty field(s): {', '.join(empty)}",
                    details={"empty_fields": empty},
                )
            )

    def _check_quality(
        self, fields: dict[str, str], issues: list[ValidationIssue]
    ) -> None:
        for name, value in fields.items():
            text = value.strip()
            if 0 < len(text) < MIN_FIELD_LENGTH:
                issues.append(
                    ValidationIssue(
                        type=IssueType.LOW_QUALITY,
                        severity=IssueSeverity.WARNING,
                        message=f"Field '{name}' is very short ({len(text)} characters)",
                        field=name,
                        details={"length": len(text)},
                    )
                )
            if len(text) > MAX_FIELD_LENGTH:
                issues.append(
                    ValidationIssue(
                        type=IssueType.LOW_QUALITY,
                        severity=IssueSeverity.WARNING,
                        message=(
                            f"Field '{name}' is very long ({len(text)} characters) "
                            "and may contain other fields"
                        ),
                        field=name,
                        details={"length": len(text)},
                    )
                )
            if name == "question" and text and not self._looks_like_question(text):
                issues.append(
                    ValidationIssue(
                        type=IssueType.LOW_QUALITY,
                        severity=IssueSeverity.INFO,
                        message=f"Question may not be phrased as a question: {text[:50]!r}",
                        field=name,
                    )
                )

    def _looks_like_question(self, text: str) -> bool:
        # Headings and terms make fine card fronts even without a question mark
        if len(text) <= 100 and "\n" not in text:
            return True
        return self.recognizer.looks_like_question(text.split("\n", 1)[0])

    @staticmethod
    def _check_distribution(
        statistics: ValidationStatistics, issues: list[ValidationIssue]
    ) -> None:
        distribution = statistics.content_distribution
        total = sum(distribution.values())
        if total == 0 or len(distribution) < 2:
            return
        for name, length in distribution.items():
            share = length / total
            if share > DOMINANT_FIELD_SHARE and name not in ("answer", "back"):
                issues.append(
                    ValidationIssue(
                        type=IssueType.FORMAT_MISMATCH,
                        severity=IssueSeverity.WARNING,
                        message=(
                            f"Field '{name}' holds {share:.1%} of the content; "
                            "the field boundary may be wrong"
                        ),
                        field=name,
                        details={"share": share, "length": length},
                    )
                )

    @staticmethod
    def _check_data_loss(
        original: str, fields: dict[str, str], issues: list[ValidationIssue]
    ) -> None:
        parsed = "\n".join(fields.values())
        lost: list[dict[str, Any]] = []
        seen: set[str] = set()
        for kind, pattern, group in _IMPORTANT_SPANS:
            for match in pattern.finditer(original):
                text = match.group(group)
                if text in seen:
                    continue
                seen.add(text)
                if text not in parsed:
                    lost.append({"kind": kind, "text": text})

        if lost:
            issues.append(
                ValidationIssue(
                    type=IssueType.DATA_LOSS,
                    severity=IssueSeverity.WARNING,
                    message=(
                        f"{len(lost)} important span(s) (code, images, links, headings, "
                        "bold) are missing from the fields"
                    ),
                    details={"lost": lost[:MAX_REPORTED_LOSSES]},
                )
            )

    @staticmethod
    def _confidence(
        statistics: ValidationStatistics, issues: list[ValidationIssue]
    ) -> float:
        confidence = statistics.coverage
        for issue in issues:
            confidence *= _SEVERITY_FACTOR[issue.severity]
        if statistics.field_count and statistics.empty_fields:
            confidence *= 1 - (statistics.empty_fields / statistics.field_count) * 0.5
        return max(0.0, min(1.0, confidence))

    @staticmethod
    def _suggestions(
        issues: list[ValidationIssue], statistics: ValidationStatistics
    ) -> list[str]:
        kinds = {issue.type for issue in issues}
        suggestions: list[str] = []

        if IssueType.TRUNCATION in kinds:
            suggestions.append("Make the answer group greedy or stop it at the next heading only")
            suggestions.append("Check the template's field mapping")
        if IssueType.MISSING_FIELD in kinds:
            suggestions.append("Check that the note contains every required field")
            suggestions.append("Check the capture groups of the regex")
        if IssueType.FORMAT_MISMATCH in kinds:
            suggestions.append("Check that the note follows the template layout")
        if IssueType.DATA_LOSS in kinds:
            suggestions.append("Check how code blocks and links are split between fields")
        if statistics.coverage < CRITICAL_COVERAGE:
            suggestions.append("Coverage is very low; parse with the boundary detector instead")

        return suggestions


def validate_parse_result(
    original: str,
    fields: dict[str, str],
    expected_fields: list[str] | None = None,
) -> ValidationReport:
    """Validate with default settings."""
    return ParseResultValidator().validate(original, fields, expected_fields)
