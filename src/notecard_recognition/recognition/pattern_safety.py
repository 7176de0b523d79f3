"""Safety screen for user-supplied regular expressions.

Custom patterns run against every note, so a regex with catastrophic
backtracking would hang recognition. Before registration a pattern goes
through three gates:

1. Static checks: length, syntax, disallowed features and a complexity score.
2. A structural scan for quantified groups that themselves contain an
   unbounded quantifier (``(a+)+``, ``(\\w*\\s?)*``), the shape behind
   exponential backtracking.
3. A timed probe against adversarial strings. Python's ``re`` cannot be
   interrupted, so the probe runs in a child process that is terminated
   once a string exceeds its time budget.
"""

import multiprocessing
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from multiprocessing.connection import Connection
from typing import Any

from ..error_codes import ErrorCode
from ..utils.logging import get_logger

logger = get_logger(__name__)


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ComplexityLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    DANGEROUS = "dangerous"


_RISK_ORDER = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL]

# Strings that drive backtracking-prone patterns into their worst case
ADVERSARIAL_INPUTS: tuple[tuple[str, str], ...] = (
    ("short", "abc123"),
    ("medium", "a" * 50 + "b" * 50),
    ("long", "x" * 1000),
    ("repeated", "abcabc" * 100),
    ("partial_match", "a" * 100 + "X"),
    ("no_match", "z" * 100),
    ("empty", ""),
    ("special_characters", "!@#$%^&*()[]{}|\\:\";'<>?,./"),
    ("mixed_run", "a" * 50 + "b" * 50 + "X"),
    ("alternating", "ab" * 50 + "X"),
    ("nested_runs", "a" * 30 + "b" * 30 + "c" * 30 + "X"),
    ("whitespace_run", "Q: " + " " * 3000 + "!"),
    ("long_heading", "## " + "a" * 5000 + "\n"),
    ("long_lines", ("word " * 40 + "\n") * 50),
)

# Seconds allowed for the probe process to start and compile the pattern
_PROBE_STARTUP_SECONDS = 10.0

_BRACE_QUANTIFIER_RE = re.compile(r"\{(\d*)(,(\d*))?\}")


@dataclass
class SafetyOptions:
    """Limits for user-supplied patterns."""

    max_length: int = 1000
    max_complexity: int = 100
    allow_lookahead: bool = True
    allow_lookbehind: bool = True
    allow_backreferences: bool = False
    timeout_seconds: float = 1.0
    run_probe: bool = True


@dataclass
class ProbeReport:
    """Timings from running a pattern against the adversarial strings."""

    passed: bool
    max_seconds: float = 0.0
    average_seconds: float = 0.0
    failed_tests: list[str] = field(default_factory=list)


@dataclass
class PatternSafetyReport:
    """Outcome of the safety screen for one pattern."""

    is_valid: bool
    error: str | None = None
    error_code: ErrorCode | None = None
    warnings: list[str] = field(default_factory=list)
    critical_issues: list[str] = field(default_factory=list)
    complexity: int = 0
    complexity_level: ComplexityLevel = ComplexityLevel.LOW
    risk_level: RiskLevel = RiskLevel.LOW
    probe: ProbeReport | None = None
    suggestions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "error": self.error,
            "error_code": self.error_code.value if self.error_code else None,
            "warnings": list(self.warnings),
            "critical_issues": list(self.critical_issues),
            "complexity": self.complexity,
            "complexity_level": self.complexity_level.value,
            "risk_level": self.risk_level.value,
            "probe": (
                {
                    "passed": self.probe.passed,
                    "max_seconds": self.probe.max_seconds,
                    "average_seconds": self.probe.average_seconds,
                    "failed_tests": list(self.probe.failed_tests),
                }
                if self.probe
                else None
            ),
            "suggestions": list(self.suggestions),
        }


@dataclass
class _Frame:
    start: int
    repeats_inside: bool = False
    has_alternation: bool = False
    depth: int = 0


@dataclass
class StructureScan:
    """Constructs found by walking the pattern token by token."""

    nested_quantifiers: list[str] = field(default_factory=list)
    quantified_alternations: list[str] = field(default_factory=list)
    lookaheads: int = 0
    lookbehinds: int = 0
    backreferences: int = 0
    large_quantifiers: int = 0
    max_group_depth: int = 0


def _skip_class(pattern: str, i: int) -> int:
    """Return the index just past the character class starting at ``i``."""
    j = i + 1
    if j < len(pattern) and pattern[j] == "^":
        j += 1
    if j < len(pattern) and pattern[j] == "]":
        j += 1
    while j < len(pattern) and pattern[j] != "]":
        j += 2 if pattern[j] == "\\" else 1
    return j + 1


def _read_quantifier(pattern: str, i: int) -> tuple[int | None, bool, bool]:
    """Parse a quantifier at ``i``.

    Returns:
        (end index or None, whether it repeats more than once, whether its bound is large)
    """
    if i >= len(pattern):
        return None, False, False
    ch = pattern[i]
    large = False
    if ch in "*+":
        end, repeats = i + 1, True
    elif ch == "?":
        end, repeats = i + 1, False
    elif ch == "{":
        match = _BRACE_QUANTIFIER_RE.match(pattern, i)
        if not match or (not match.group(1) and not match.group(2)):
            return None, False, False
        low = int(match.group(1) or 0)
        if match.group(2) is None:
            repeats = low > 1
            high = low
        else:
            high_text = match.group(3)
            high = int(high_text) if high_text else None
            repeats = high is None or high > 1
        large = low > 100 or (high is not None and high > 1000)
        end = match.end()
    else:
        return None, False, False
    # Lazy or possessive modifier
    if end < len(pattern) and pattern[end] in "?+":
        end += 1
    return end, repeats, large


def scan_structure(pattern: str) -> StructureScan:
    """Walk the pattern and record backtracking-relevant constructs."""
    scan = StructureScan()
    stack = [_Frame(0)]
    i = 0
    n = len(pattern)

    while i < n:
        ch = pattern[i]

        if ch == "\\":
            if i + 1 < n and pattern[i + 1] in "123456789":
                scan.backreferences += 1
            i += 2
            continue

        if ch == "[":
            i = _skip_class(pattern, i)
            continue

        if ch == "(":
            frame = _Frame(i, depth=len(stack))
            scan.max_group_depth = max(scan.max_group_depth, frame.depth)
            stack.append(frame)
            i += 1
            if pattern.startswith("?", i):
                rest = pattern[i + 1 :]
                if rest.startswith(("=", "!")):
                    scan.lookaheads += 1
                    i += 2
                elif rest.startswith(("<=", "<!")):
                    scan.lookbehinds += 1
                    i += 3
                elif rest.startswith("P<"):
                    close = pattern.find(">", i)
                    i = close + 1 if close != -1 else n
                elif rest.startswith("P="):
                    scan.backreferences += 1
                    i += 2
                elif rest.startswith((":", ">")):
                    i += 2
                else:
                    # Inline flags such as (?i) or (?i:...)
                    i += 1
                    while i < n and (pattern[i].isalpha() or pattern[i] == "-"):
                        i += 1
                    if i < n and pattern[i] == ":":
                        i += 1
            continue

        if ch == ")":
            closed = stack.pop() if len(stack) > 1 else None
            i += 1
            end, repeats, large = _read_quantifier(pattern, i)
            if end is not None:
                if large:
                    scan.large_quantifiers += 1
                if closed is not None and repeats:
                    snippet = pattern[closed.start : end]
                    if closed.repeats_inside:
                        scan.nested_quantifiers.append(snippet)
                    elif closed.has_alternation:
                        scan.quantified_alternations.append(snippet)
                if repeats:
                    stack[-1].repeats_inside = True
                i = end
            if closed is not None and closed.repeats_inside:
                stack[-1].repeats_inside = True
            continue

        if ch == "|":
            stack[-1].has_alternation = True
            i += 1
            continue

        end, repeats, large = _read_quantifier(pattern, i)
        if end is not None:
            if large:
                scan.large_quantifiers += 1
            if repeats:
                stack[-1].repeats_inside = True
            i = end
            continue

        i += 1

    return scan


def calculate_complexity(pattern: str) -> int:
    """Weighted count of the constructs that make a regex expensive."""
    complexity = len(pattern) * 0.1
    complexity += len(re.findall(r"\*|\+|\?|\{[^}]*\}", pattern)) * 5
    complexity += len(re.findall(r"\([^)]*\)", pattern)) * 3
    complexity += len(re.findall(r"\[[^\]]*\]", pattern)) * 2
    complexity += pattern.count("|") * 4
    complexity += len(re.findall(r"\(\?[=!<]", pattern)) * 10
    complexity += len(re.findall(r"\\[1-9]", pattern)) * 8
    return round(complexity)


def complexity_level(complexity: int) -> ComplexityLevel:
    if complexity < 20:
        return ComplexityLevel.LOW
    if complexity < 50:
        return ComplexityLevel.MEDIUM
    if complexity < 80:
        return ComplexityLevel.HIGH
    return ComplexityLevel.DANGEROUS


def detect_dangerous_constructs(
    pattern: str, scan: StructureScan | None = None
) -> tuple[list[str], list[str], RiskLevel]:
    """Classify risky constructs.

    Returns:
        Tuple of (warnings, critical_issues, risk_level)
    """
    scan = scan or scan_structure(pattern)
    warnings: list[str] = []
    critical: list[str] = []
    risk = RiskLevel.LOW

    def raise_risk(level: RiskLevel) -> None:
        nonlocal risk
        if _RISK_ORDER.index(level) > _RISK_ORDER.index(risk):
            risk = level

    for snippet in scan.nested_quantifiers:
        critical.append(
            f"nested quantifier {snippet!r} allows catastrophic backtracking"
        )
        raise_risk(RiskLevel.CRITICAL)

    for snippet in scan.quantified_alternations:
        warnings.append(f"quantified alternation {snippet!r} may backtrack heavily")
        raise_risk(RiskLevel.HIGH)

    if scan.lookaheads or scan.lookbehinds:
        count = scan.lookaheads + scan.lookbehinds
        warnings.append(f"uses {count} lookaround assertion(s), which may slow matching")
        raise_risk(RiskLevel.MEDIUM)

    if scan.backreferences:
        warnings.append(
            f"uses {scan.backreferences} backreference(s), which can slow matching considerably"
        )
        raise_risk(RiskLevel.MEDIUM)

    if scan.max_group_depth > 3:
        warnings.append(f"groups nested {scan.max_group_depth} levels deep")
        raise_risk(RiskLevel.MEDIUM)

    if scan.large_quantifiers:
        warnings.append(
            f"{scan.large_quantifiers} quantifier(s) with very large bounds"
        )
        raise_risk(RiskLevel.MEDIUM)

    if re.search(r"\.\*.*\.\*", pattern):
        warnings.append("several greedy '.*' wildcards in one pattern")
        raise_risk(RiskLevel.MEDIUM)

    if re.search(r"\[[^\]]{20,}\]", pattern):
        warnings.append("very long character class; consider simplifying it")

    return warnings, critical, risk


def get_security_advice(pattern: str) -> list[str]:
    """Rewrite suggestions for a risky pattern."""
    scan = scan_structure(pattern)
    advice: list[str] = []
    if scan.nested_quantifiers:
        advice.append(
            "Avoid quantifying a group that already contains a quantifier, "
            "e.g. write (a+)+ as a+"
        )
    if scan.quantified_alternations:
        advice.append("Make the branches of a repeated alternation mutually exclusive")
    if calculate_complexity(pattern) > 50:
        advice.append("Split the expression into several simpler patterns")
    if scan.lookaheads or scan.lookbehinds:
        advice.append("Lookaround assertions cost time on every position; use them sparingly")
    if scan.backreferences:
        advice.append("Backreferences can be slow; match the repeated text explicitly")
    if re.search(r"\.\*.*\.\*", pattern):
        advice.append("Replace '.*' with a negated class such as [^\\n]* or a lazy '.*?'")
    return advice


def _probe_worker(
    pattern: str, flags: int, inputs: list[str], conn: Connection
) -> None:
    """Child-process body: time each adversarial search and report back."""
    compiled = re.compile(pattern, flags)
    conn.send(("ready", 0.0))
    for text in inputs:
        started = time.perf_counter()
        compiled.search(text)
        conn.send(("done", time.perf_counter() - started))
    conn.close()


def probe_pattern(
    pattern: str,
    flags: int = 0,
    timeout_seconds: float = 1.0,
    inputs: tuple[tuple[str, str], ...] = ADVERSARIAL_INPUTS,
) -> ProbeReport:
    """Run the pattern against adversarial strings with a hard per-string budget.

    The search runs in a separate process; when a string is not finished
    within ``timeout_seconds`` the process is terminated and the probe fails.
    """
    context = multiprocessing.get_context()
    receiver, sender = context.Pipe(duplex=False)
    process = context.Process(
        target=_probe_worker,
        args=(pattern, flags, [text for _, text in inputs], sender),
        daemon=True,
    )
    timings: list[float] = []
    failed: list[str] = []

    process.start()
    sender.close()
    try:
        if not receiver.poll(_PROBE_STARTUP_SECONDS):
            failed.append("probe process did not start")
        else:
            receiver.recv()
            for name, _ in inputs:
                if not receiver.poll(timeout_seconds):
                    failed.append(f"{name} (exceeded {timeout_seconds:.2f}s)")
                    timings.append(timeout_seconds)
                    break
                _, elapsed = receiver.recv()
                timings.append(elapsed)
                if elapsed >= timeout_seconds:
                    failed.append(f"{name} ({elapsed:.3f}s)")
    except EOFError:
        failed.append("probe process exited unexpectedly")
    finally:
        if process.is_alive():
            process.terminate()
        process.join(timeout=_PROBE_STARTUP_SECONDS)
        receiver.close()

    max_seconds = max(timings, default=0.0)
    average = sum(timings) / len(timings) if timings else 0.0
    return ProbeReport(
        passed=not failed,
        max_seconds=max_seconds,
        average_seconds=average,
        failed_tests=failed,
    )


def validate_pattern(
    pattern: str, flags: int = 0, options: SafetyOptions | None = None
) -> PatternSafetyReport:
    """Screen a user-supplied regex before it is registered.

    Args:
        pattern: Regex source
        flags: ``re`` flag bits the pattern will be compiled with
        options: Limits to apply (defaults to ``SafetyOptions()``)

    Returns:
        Report whose ``is_valid`` is False when the pattern must be rejected
    """
    opts = options or SafetyOptions()

    def reject(message: str, code: ErrorCode, **extra: Any) -> PatternSafetyReport:
        report = PatternSafetyReport(
            is_valid=False, error=message, error_code=code, **extra
        )
        logger.debug("pattern_screen_rejected", error=message, error_code=code.value)
        return report

    if not pattern:
        return reject("pattern is empty", ErrorCode.PAT_SYNTAX_INVALID)

    if len(pattern) > opts.max_length:
        return reject(
            f"pattern is {len(pattern)} characters long (limit {opts.max_length})",
            ErrorCode.PAT_TOO_COMPLEX,
            suggestions=["Shorten the pattern or split it into several patterns"],
        )

    try:
        re.compile(pattern, flags)
    except re.error as e:
        return reject(f"invalid regex: {e}", ErrorCode.PAT_SYNTAX_INVALID)

    scan = scan_structure(pattern)

    if scan.lookaheads and not opts.allow_lookahead:
        return reject("lookahead assertions are not allowed", ErrorCode.PAT_FEATURE_DISALLOWED)
    if scan.lookbehinds and not opts.allow_lookbehind:
        return reject("lookbehind assertions are not allowed", ErrorCode.PAT_FEATURE_DISALLOWED)
    if scan.backreferences and not opts.allow_backreferences:
        return reject(
            "backreferences are not allowed",
            ErrorCode.PAT_FEATURE_DISALLOWED,
            suggestions=["Match the repeated text explicitly instead of using \\1"],
        )

    complexity = calculate_complexity(pattern)
    level = complexity_level(complexity)
    if complexity > opts.max_complexity:
        return reject(
            f"complexity {complexity} exceeds the limit of {opts.max_complexity}",
            ErrorCode.PAT_TOO_COMPLEX,
            complexity=complexity,
            complexity_level=level,
            suggestions=get_security_advice(pattern),
        )

    warnings, critical, risk = detect_dangerous_constructs(pattern, scan)
    if critical:
        return reject(
            "pattern allows catastrophic backtracking",
            ErrorCode.PAT_REDOS_NESTED,
            warnings=warnings,
            critical_issues=critical,
            complexity=complexity,
            complexity_level=level,
            risk_level=RiskLevel.CRITICAL,
            suggestions=get_security_advice(pattern),
        )

    probe: ProbeReport | None = None
    if opts.run_probe:
        probe = probe_pattern(pattern, flags, opts.timeout_seconds)
        too_slow_for_risk = (
            risk is RiskLevel.HIGH and probe.max_seconds > opts.timeout_seconds * 0.5
        )
        if not probe.passed or too_slow_for_risk:
            return reject(
                "pattern is too slow on adversarial input",
                ErrorCode.PAT_REDOS_TIMEOUT,
                warnings=warnings,
                critical_issues=[*critical, *probe.failed_tests],
                complexity=complexity,
                complexity_level=level,
                risk_level=RiskLevel.CRITICAL,
                probe=probe,
                suggestions=get_security_advice(pattern),
            )

    return PatternSafetyReport(
        is_valid=True,
        warnings=warnings,
        complexity=complexity,
        complexity_level=level,
        risk_level=risk,
        probe=probe,
        suggestions=get_security_advice(pattern) if warnings else [],
    )
