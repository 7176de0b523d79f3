"""Multiple-choice parsing: option lines, correct-answer strings, inline markers."""

import re
from dataclasses import dataclass, field

from ..error_codes import ErrorCode
from ..models.data import (
    ChoiceOption,
    ChoiceParseResult,
    CorrectAnswerResult,
    MarkedChoiceQuestion,
)
from ..utils.logging import get_logger

logger = get_logger(__name__)

# Tried in order; the first that matches a line wins
_OPTION_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^[(（]([A-Za-z]|\d+)[)）][ \t]*(.*)$"),
    re.compile(r"^([A-Z]|\d+)[ \t]*([.．、])[ \t]*(.*)$"),
    re.compile(r"^([A-Z]|\d+)[ \t]*([)）])[ \t]*(.*)$"),
    re.compile(r"^([A-Z])[ \t]*([:：])[ \t]*(.*)$"),
    re.compile(r"^([A-Z])[ \t]+(.+)$"),
)
_CHECKBOX_RE = re.compile(r"^[-*+][ \t]*\[([ xX])\][ \t]*(.*)$")
_ANSWER_PART_RE = re.compile(r"^[(（]?([A-Za-z]|\d+)[)）]?[ \t]*[.．、:：]?$")
_ANSWER_SPLIT_RE = re.compile(r"[,，;；、/\s]+")
_COMPACT_LETTERS_RE = re.compile(r"^[A-Za-z]{2,}$")

_CORRECT_MARKER_RE = re.compile(r"[ \t]*\{(?:✓|✔|correct|\*)\}[ \t]*", re.IGNORECASE)
_QUESTION_LABEL_RE = re.compile(r"^[ \t]*(?:Q|问题)[ \t]*[:：][ \t]*", re.IGNORECASE)
_EXPLANATION_DIVIDER = "---div---"
_MARKED_OPTION_RE = re.compile(r"^[ \t]*([A-H])[)）.．、][ \t]*(.*)$")

_LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"


@dataclass
class OptionsParse:
    options: list[ChoiceOption] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error: str | None = None


def _parse_option_line(line: str) -> tuple[ChoiceOption | None, str | None]:
    for pattern in _OPTION_PATTERNS:
        match = pattern.match(line)
        if not match:
            continue
        label = match.group(1).upper()
        content = match.group(match.lastindex or 1).strip()
        if not content:
            return None, f"Option {label} has no content"
        written = line[: match.start(match.lastindex or 1)].strip() or label
        return ChoiceOption(id=label, label=written, content=content), None
    return None, f"Could not parse option line: {line!r}"


def parse_options(text: str) -> OptionsParse:
    """
    Parse option lines such as ``A. Paris``, ``B) London``, ``1、Berlin``.

    Checkbox lists (``- [x] Paris``) are accepted too; they are labelled A, B, C
    in order and ``[x]`` marks the option correct.

    Returns:
        Options in document order, warnings for unusable lines and gaps
    """
    lines = [line.strip() for line in text.split("\n") if line.strip()]
    if not lines:
        return OptionsParse(error="Options text is empty")

    if any(_CHECKBOX_RE.match(line) for line in lines):
        return _parse_checkbox_options(lines)

    result = OptionsParse()
    for line in lines:
        option, warning = _parse_option_line(line)
        if option is not None:
            result.options.append(option)
        elif warning:
            result.warnings.append(warning)

    if not result.options:
        result.error = "No option lines found"
        return result

    sequence_warnings = check_option_sequence(result.options)
    if sequence_warnings:
        logger.debug(
            "option_sequence_irregular",
            error_code=ErrorCode.CHO_SEQUENCE_GAP.value,
            warnings=sequence_warnings,
        )
    result.warnings.extend(sequence_warnings)
    return result


def _parse_checkbox_options(lines: list[str]) -> OptionsParse:
    result = OptionsParse()
    for line in lines:
        match = _CHECKBOX_RE.match(line)
        if not match:
            result.warnings.append(f"Could not parse option line: {line!r}")
            continue
        label = _LETTERS[len(result.options) % len(_LETTERS)]
        content = match.group(2).strip()
        if not content:
            result.warnings.append(f"Option {label} has no content")
            continue
        result.options.append(
            ChoiceOption(
                id=label,
                label=label,
                content=content,
                is_correct=match.group(1).lower() == "x",
            )
        )
    if not result.options:
        result.error = "No option lines found"
    return result


def check_option_sequence(options: list[ChoiceOption]) -> list[str]:
    """Warnings for gaps, duplicates or mixed letter/number labels."""
    ids = [option.id for option in options]
    warnings: list[str] = []

    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        warnings.append(f"Duplicate option labels: {', '.join(duplicates)}")

    if all(i.isalpha() for i in ids):
        expected = list(_LETTERS[: len(set(ids))])
        actual = sorted(set(ids))
        if actual != expected:
            warnings.append(
                f"Option labels are not contiguous: expected {', '.join(expected)}, "
                f"got {', '.join(actual)}"
            )
    elif all(i.isdigit() for i in ids):
        numbers = sorted({int(i) for i in ids})
        expected_numbers = list(range(1, len(numbers) + 1))
        if numbers != expected_numbers:
            warnings.append(
                "Option numbers are not contiguous: expected "
                f"{', '.join(map(str, expected_numbers))}, "
                f"got {', '.join(map(str, numbers))}"
            )
    else:
        warnings.append("Option labels mix letters and numbers; use A, B, C or 1, 2, 3")

    return warnings


def parse_correct_answer(text: str, options: list[ChoiceOption]) -> CorrectAnswerResult:
    """
    Resolve a correct-answer string against the available options.

    Accepts a single label, a list separated by commas, semicolons, slashes or
    whitespace (full-width forms included), or run-together letters like ``AC``.
    Unknown labels fail the parse and are listed in ``errors``.
    """
    content = text.strip()
    if not content:
        return CorrectAnswerResult(success=False, errors=["Correct answer is empty"])

    available = {option.id for option in options}
    parts = [part for part in _ANSWER_SPLIT_RE.split(content) if part]
    if (
        len(parts) == 1
        and _COMPACT_LETTERS_RE.match(parts[0])
        and all(letter in available for letter in parts[0].upper())
    ):
        parts = list(parts[0])

    correct_ids: list[str] = []
    errors: list[str] = []
    for part in parts:
        match = _ANSWER_PART_RE.match(part)
        if not match:
            errors.append(f"Could not parse answer part: {part!r}")
            continue
        label = match.group(1).upper()
        if label not in available:
            errors.append(f"Option {label} does not exist")
        elif label not in correct_ids:
            correct_ids.append(label)

    if errors:
        logger.debug("correct_answer_rejected", answer=content, errors=errors)
    return CorrectAnswerResult(
        success=bool(correct_ids) and not errors,
        correct_ids=correct_ids,
        is_multiple=len(correct_ids) > 1,
        errors=errors,
    )


def mark_correct(options: list[ChoiceOption], correct_ids: list[str]) -> list[ChoiceOption]:
    return [
        option.model_copy(update={"is_correct": option.id in correct_ids})
        for option in options
    ]


def parse_choice_question(options_text: str, correct_answer_text: str) -> ChoiceParseResult:
    """Parse options and the correct answer, and mark the correct options."""
    parsed = parse_options(options_text)
    if parsed.error is not None:
        return ChoiceParseResult(
            success=False,
            error=parsed.error,
            error_code=ErrorCode.CHO_NO_OPTIONS,
            warnings=parsed.warnings,
        )

    answer = parse_correct_answer(correct_answer_text, parsed.options)
    if not answer.success:
        code = (
            ErrorCode.CHO_EMPTY_ANSWER
            if not correct_answer_text.strip()
            else ErrorCode.CHO_UNKNOWN_LABEL
        )
        return ChoiceParseResult(
            success=False,
            options=parsed.options,
            correct_answers=answer.correct_ids,
            is_multiple=answer.is_multiple,
            error=answer.error,
            error_code=code,
            warnings=parsed.warnings,
        )

    return ChoiceParseResult(
        success=True,
        options=mark_correct(parsed.options, answer.correct_ids),
        correct_answers=answer.correct_ids,
        is_multiple=answer.is_multiple,
        warnings=parsed.warnings,
    )


def parse_marked_choice_question(content: str) -> MarkedChoiceQuestion | None:
    """
    Parse the inline-marker format::

        Q: Which are prime?
        A) 2 {✓}
        B) 4
        C) 5 {✓}
        ---div---
        Explanation

    Returns None when there is no question label or no option lines.
    """
    body, _, explanation = content.partition(_EXPLANATION_DIVIDER)
    lines = body.strip().split("\n")

    question_lines: list[str] = []
    options: list[ChoiceOption] = []
    found_question = False
    for line in lines:
        if not found_question:
            label = _QUESTION_LABEL_RE.match(line)
            if label:
                found_question = True
                question_lines.append(line[label.end() :].strip())
            continue
        option = _MARKED_OPTION_RE.match(line)
        if option:
            text = option.group(2)
            is_correct = bool(_CORRECT_MARKER_RE.search(text))
            options.append(
                ChoiceOption(
                    id=option.group(1),
                    label=line.strip()[:2],
                    content=_CORRECT_MARKER_RE.sub(" ", text).strip(),
                    is_correct=is_correct,
                )
            )
        elif not options and line.strip():
            question_lines.append(line.strip())

    if not found_question or not options:
        return None

    return MarkedChoiceQuestion(
        question="\n".join(q for q in question_lines if q).strip(),
        options=options,
        explanation=explanation.strip(),
        is_multiple=sum(1 for o in options if o.is_correct) > 1,
    )


def is_choice_question(content: str) -> bool:
    """At least two option lines under a question label."""
    parsed = parse_marked_choice_question(content)
    return parsed is not None and len(parsed.options) >= 2


def validate_choice_question(question: MarkedChoiceQuestion) -> list[str]:
    """Problems that make a marked choice question unusable as a card."""
    problems: list[str] = []
    if not question.question:
        problems.append("Question text is empty")
    if len(question.options) < 2:
        problems.append("A choice question needs at least two options")
    if not any(option.is_correct for option in question.options):
        problems.append("No option is marked correct; add {✓} after the right one")
    if any(not option.content for option in question.options):
        problems.append("Some options have no content")
    problems.extend(check_option_sequence(question.options))
    return problems
