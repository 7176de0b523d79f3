"""User-defined patterns: create, update, delete, test, import and export.

Records are kept here in their serializable form; enabled records are also
registered with a ``PatternRegistry`` so the matcher picks them up. Every
record passes the registry's safety screen, including imported ones.
"""

import json
import re
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ..error_codes import ErrorCode
from ..exceptions import InvalidPatternError, PatternImportError, PatternNotFoundError
from ..models.patterns import CustomPatternRecord, PatternTestCase, regex_flags
from ..utils.logging import get_logger
from .pattern_safety import PatternSafetyReport, validate_pattern
from .patterns import PatternRegistration, PatternRegistry

logger = get_logger(__name__)

_SLUG_RE = re.compile(r"[^a-z0-9]+")
# Patterns with this many groups are usually easier to maintain split in two
_MANY_GROUPS = 10


@dataclass
class RecordValidation:
    """Findings for one custom pattern record."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    report: PatternSafetyReport | None = None


@dataclass
class TestCaseResult:
    __test__ = False

    name: str
    passed: bool
    actual_fields: dict[str, str] = field(default_factory=dict)
    elapsed_ms: float = 0.0
    error: str | None = None


@dataclass
class TestRunSummary:
    """Outcome of running a pattern's stored test cases."""

    __test__ = False

    pattern_id: str
    results: list[TestCaseResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def failed(self) -> int:
        return self.total - self.passed

    @property
    def average_ms(self) -> float:
        if not self.results:
            return 0.0
        return sum(r.elapsed_ms for r in self.results) / len(self.results)

    @property
    def success(self) -> bool:
        return self.failed == 0


@dataclass
class ImportReport:
    """Per-record outcome of a batch import."""

    imported: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.imported)


def generate_pattern_id(name: str) -> str:
    """``custom_<slug>_<hex>`` identifier for a new pattern."""
    slug = _SLUG_RE.sub("_", name.lower()).strip("_") or "pattern"
    return f"custom_{slug}_{uuid.uuid4().hex[:8]}"


class CustomPatternManager:
    """CRUD over custom patterns, backed by a shared registry."""

    def __init__(self, registry: PatternRegistry):
        self.registry = registry
        self._records: dict[str, CustomPatternRecord] = {}

    def validate(self, record: CustomPatternRecord) -> RecordValidation:
        """
        Check a record without registering it.

        Errors block registration; warnings and suggestions do not.
        """
        result = RecordValidation(is_valid=True)

        report = validate_pattern(
            record.regex, regex_flags(record.flags), self.registry.safety_options
        )
        result.report = report
        result.warnings.extend(report.warnings)
        if not report.is_valid:
            result.errors.append(report.error or "pattern rejected by the safety screen")
            result.errors.extend(report.critical_issues)
            result.suggestions.extend(report.suggestions)

        if not record.field_mappings:
            result.errors.append("Field mappings are empty")
        else:
            indices = list(record.field_mappings.values())
            duplicates = sorted({i for i in indices if indices.count(i) > 1})
            if duplicates:
                result.errors.append(
                    "Field mappings reuse capture group(s): "
                    + ", ".join(str(i) for i in duplicates)
                )
            if report.is_valid:
                groups = re.compile(record.regex, regex_flags(record.flags)).groups
                for name, index in record.field_mappings.items():
                    if 0 <= index <= groups:
                        continue
                    result.errors.append(
                        f"Field '{name}' is mapped to group {index}, "
                        f"but the regex has {groups} group(s)"
                    )
                if groups >= _MANY_GROUPS:
                    result.warnings.append(
                        f"Regex declares {groups} capture groups; check the field mapping"
                    )

        if not 0 <= record.priority <= 100:
            result.warnings.append("Priority is usually kept between 0 and 100")
        if not any(case.should_match for case in record.test_cases):
            result.suggestions.append("Add an example input so the pattern can be tried out")
        if not record.test_cases:
            result.suggestions.append("Add test cases to check the pattern keeps working")

        result.is_valid = not result.errors
        return result

    def create(self, record: CustomPatternRecord) -> PatternRegistration:
        """Validate, assign an id if missing, store and register a record."""
        pattern_id = record.id or generate_pattern_id(record.name)
        record = record.model_copy(update={"id": pattern_id})
        return self._store(record, replace=False)

    def update(self, pattern_id: str, **changes: Any) -> PatternRegistration:
        """Apply field changes to a stored record and re-register it."""
        current = self._records.get(pattern_id)
        if current is None:
            return PatternRegistration(
                ok=False,
                pattern_id=pattern_id,
                error=PatternNotFoundError(
                    f"custom pattern '{pattern_id}' does not exist",
                    error_code=ErrorCode.PAT_NOT_FOUND.value,
                    context={"pattern_id": pattern_id},
                ),
            )
        try:
            record = CustomPatternRecord.model_validate(
                {**current.model_dump(), **changes, "id": pattern_id}
            )
        except ValidationError as e:
            return self._invalid(pattern_id, str(e))
        return self._store(record, replace=True)

    def delete(self, pattern_id: str) -> bool:
        """Remove a record and its registry entry. Returns False if unknown."""
        if self._records.pop(pattern_id, None) is None:
            return False
        self.registry.remove(pattern_id)
        logger.info("custom_pattern_deleted", pattern_id=pattern_id)
        return True

    def get(self, pattern_id: str) -> CustomPatternRecord | None:
        return self._records.get(pattern_id)

    def all(self) -> list[CustomPatternRecord]:
        return list(self._records.values())

    def run_test_cases(self, pattern_id: str) -> TestRunSummary:
        """
        Run a record's stored test cases against its regex.

        Expected fields are compared after trimming, as the matcher trims
        field values. Fields absent from ``expected_fields`` are not checked.

        Raises:
            PatternNotFoundError: If no record has this id
        """
        record = self._records.get(pattern_id)
        if record is None:
            raise PatternNotFoundError(
                f"custom pattern '{pattern_id}' does not exist",
                error_code=ErrorCode.PAT_NOT_FOUND.value,
                context={"pattern_id": pattern_id},
            )

        compiled = re.compile(record.regex, regex_flags(record.flags))
        summary = TestRunSummary(pattern_id=pattern_id)
        for case in record.test_cases:
            summary.results.append(self._run_case(compiled, record, case))

        logger.info(
            "pattern_tests_run",
            pattern_id=pattern_id,
            total=summary.total,
            passed=summary.passed,
            failed=summary.failed,
        )
        return summary

    @staticmethod
    def _run_case(
        compiled: re.Pattern[str], record: CustomPatternRecord, case: PatternTestCase
    ) -> TestCaseResult:
        started = time.perf_counter()
        match = compiled.search(case.input)
        elapsed_ms = (time.perf_counter() - started) * 1000

        if match is None:
            return TestCaseResult(
                name=case.name,
                passed=not case.should_match,
                elapsed_ms=elapsed_ms,
                error="Expected a match but the regex did not match" if case.should_match else None,
            )
        if not case.should_match:
            return TestCaseResult(
                name=case.name,
                passed=False,
                elapsed_ms=elapsed_ms,
                error="Expected no match but the regex matched",
            )

        actual = {
            name: (match.group(index) or "").strip()
            for name, index in record.field_mappings.items()
        }
        mismatched = [
            name
            for name, expected in case.expected_fields.items()
            if actual.get(name, "") != expected.strip()
        ]
        return TestCaseResult(
            name=case.name,
            passed=not mismatched,
            actual_fields=actual,
            elapsed_ms=elapsed_ms,
            error=f"Unexpected value for: {', '.join(mismatched)}" if mismatched else None,
        )

    def export_json(self) -> str:
        """Every stored record as a JSON array."""
        payload = [
            record.model_dump(mode="json", by_alias=True) for record in self._records.values()
        ]
        return json.dumps(payload, indent=2, ensure_ascii=False)

    def export_file(self, path: Path) -> int:
        """Write the JSON export to a file and return the record count."""
        path.write_text(self.export_json() + "\n", encoding="utf-8")
        logger.info("patterns_exported", path=str(path), count=len(self._records))
        return len(self._records)

    def import_json(self, data: str) -> ImportReport:
        """
        Import a JSON array of records.

        Each record is validated on its own; a bad record is reported in
        ``errors`` and the rest of the batch still imports. Records without an
        id get a generated one; records with a known id replace it.

        Raises:
            PatternImportError: If the data is not JSON or not an array
        """
        try:
            payload = json.loads(data)
        except json.JSONDecodeError as e:
            raise PatternImportError(
                f"custom pattern data is not valid JSON: {e}",
                error_code=ErrorCode.IMP_DECODE_FAILED.value,
            ) from e
        if not isinstance(payload, list):
            raise PatternImportError(
                "custom pattern data must be a JSON array of records",
                suggestion="Wrap the records in [ ... ]",
                error_code=ErrorCode.IMP_NOT_ARRAY.value,
            )

        report = ImportReport()
        for position, raw in enumerate(payload):
            label = raw.get("name") if isinstance(raw, dict) else None
            label = f"'{label}'" if label else f"#{position + 1}"
            try:
                record = CustomPatternRecord.model_validate(raw)
            except ValidationError as e:
                report.errors.append(f"Pattern {label}: {_first_error(e)}")
                continue

            pattern_id = record.id or generate_pattern_id(record.name)
            registration = self._store(
                record.model_copy(update={"id": pattern_id}),
                replace=pattern_id in self._records,
            )
            if registration.ok:
                report.imported.append(pattern_id)
            elif registration.error is not None:
                report.errors.append(f"Pattern {label}: {registration.error.message}")

        logger.info(
            "patterns_imported",
            imported=len(report.imported),
            rejected=len(report.errors),
            error_code=ErrorCode.IMP_RECORD_INVALID.value if report.errors else None,
        )
        return report

    def import_file(self, path: Path) -> ImportReport:
        try:
            data = path.read_text(encoding="utf-8")
        except OSError as e:
            raise PatternImportError(
                f"cannot read custom pattern file {path}: {e}",
                error_code=ErrorCode.IMP_DECODE_FAILED.value,
                context={"path": str(path)},
            ) from e
        return self.import_json(data)

    def _store(self, record: CustomPatternRecord, *, replace: bool) -> PatternRegistration:
        pattern_id = record.id or ""
        validation = self.validate(record)
        if not validation.is_valid:
            return self._invalid(pattern_id, "; ".join(validation.errors), validation)

        if pattern_id in self._records and not replace:
            return self._invalid(pattern_id, f"custom pattern '{pattern_id}' already exists")

        existing = self.registry.get(pattern_id)
        if existing is not None and existing.builtin:
            return self._invalid(
                pattern_id,
                f"'{pattern_id}' is the id of a built-in pattern; choose another id",
            )

        if record.enabled:
            # Already screened by validate() with the registry's own options
            registration = self.registry.register(
                record.to_content_pattern(),
                trusted=True,
                replace=replace or pattern_id in self.registry,
            )
            if not registration.ok:
                return registration
            logger.info(
                "pattern_registered",
                pattern_id=pattern_id,
                priority=record.priority,
                replaced=replace,
            )
        else:
            self.registry.remove(pattern_id)
            registration = PatternRegistration(ok=True, pattern_id=pattern_id)

        self._records[pattern_id] = record
        registration.warnings.extend(validation.warnings)
        registration.warnings.extend(validation.suggestions)
        return registration

    @staticmethod
    def _invalid(
        pattern_id: str, message: str, validation: RecordValidation | None = None
    ) -> PatternRegistration:
        report = validation.report if validation else None
        code = (
            report.error_code
            if report is not None and report.error_code is not None
            else ErrorCode.IMP_RECORD_INVALID
        )
        logger.warning("pattern_rejected", pattern_id=pattern_id, reason=message)
        return PatternRegistration(
            ok=False,
            pattern_id=pattern_id,
            error=InvalidPatternError(
                message,
                pattern_id=pattern_id,
                critical_issues=report.critical_issues if report else None,
                suggestion="; ".join(validation.suggestions) if validation else None,
                error_code=code.value,
            ),
            report=report,
        )


def _first_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "record"
    return f"{location}: {first.get('msg', 'invalid value')}"
