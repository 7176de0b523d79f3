"""Language-specific question/answer markers and language detection.

Each supported language contributes the labels that introduce a question or
an answer ("Q:", "问题：", "質問:"), the words a question tends to start with,
and the punctuation it uses. Longer prose is identified with langdetect; short
notes are scored against every table and get the best-scoring language.
"""

import re
from dataclasses import dataclass, field
from functools import cached_property

from langdetect import DetectorFactory, detect
from langdetect.lang_detect_exception import LangDetectException

# Make detection deterministic
DetectorFactory.seed = 0

SUPPORTED_LANGUAGES: tuple[str, ...] = ("zh", "en", "ja", "ko", "ru")
FALLBACK_LANGUAGE = "en"

# Below this many characters of prose langdetect guesses unreliably
MIN_STATISTICAL_LENGTH = 50

# langdetect codes folded into a supported language
_DETECTED_VARIANTS: dict[str, str] = {"zh-cn": "zh", "zh-tw": "zh", "uk": "ru", "be": "ru"}

_CODE_BLOCK_RE = re.compile(r"```.*?```", re.DOTALL)
_LINK_RE = re.compile(r"\[\[.*?\]\]|https?://\S+")
_MARKUP_CHARS_RE = re.compile(r"[#*>`_\-=|]+")

_SEPARATOR_LINE = r"(?:-{3,}|={3,}|\*{3,}|_{3,}|—{2,})"


def _prose_for_detection(content: str) -> str:
    """Content without code, links and markdown punctuation."""
    text = _LINK_RE.sub(" ", _CODE_BLOCK_RE.sub(" ", content))
    return " ".join(_MARKUP_CHARS_RE.sub(" ", text).split())


@dataclass(frozen=True)
class LanguagePatterns:
    """Marker tables for one language. Markers are regex fragments."""

    code: str
    name: str
    question_markers: tuple[str, ...]
    answer_markers: tuple[str, ...]
    question_words: tuple[str, ...]
    instruction_words: tuple[str, ...]
    punctuation: tuple[str, ...]
    script: str | None = None
    word_boundaries: bool = True
    separators: tuple[str, ...] = field(default=(_SEPARATOR_LINE,))

    @cached_property
    def question_marker_re(self) -> re.Pattern[str]:
        return _label_regex(self.question_markers)

    @cached_property
    def answer_marker_re(self) -> re.Pattern[str]:
        return _label_regex(self.answer_markers)

    @cached_property
    def question_word_re(self) -> re.Pattern[str]:
        return self._word_regex(self.question_words)

    @cached_property
    def instruction_word_re(self) -> re.Pattern[str]:
        return self._word_regex(self.instruction_words)

    @cached_property
    def leading_question_word_re(self) -> re.Pattern[str]:
        words = "|".join(re.escape(word) for word in self.question_words)
        suffix = r"\b" if self.word_boundaries else ""
        return re.compile(rf"^\W*(?:{words}){suffix}", re.IGNORECASE)

    @cached_property
    def separator_re(self) -> re.Pattern[str]:
        alternatives = "|".join(self.separators)
        return re.compile(rf"^[ \t]*(?:{alternatives})[ \t]*$", re.MULTILINE)

    @cached_property
    def script_re(self) -> re.Pattern[str] | None:
        return re.compile(self.script) if self.script else None

    def _word_regex(self, words: tuple[str, ...]) -> re.Pattern[str]:
        alternatives = "|".join(re.escape(word) for word in words)
        if self.word_boundaries:
            return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)
        return re.compile(f"(?:{alternatives})", re.IGNORECASE)


def _label_regex(labels: tuple[str, ...]) -> re.Pattern[str]:
    # Label at line start, optionally bold, followed by a colon
    alternatives = "|".join(labels)
    return re.compile(
        rf"^[ \t]*(?:\*\*)?(?:{alternatives})[ \t]*(?:\*\*)?[ \t]*[:：][ \t]*(?:\*\*)?[ \t]*",
        re.IGNORECASE,
    )


LANGUAGE_PATTERNS: dict[str, LanguagePatterns] = {
    "zh": LanguagePatterns(
        code="zh",
        name="Chinese",
        question_markers=(r"问题?", r"题目", r"Q"),
        answer_markers=(r"答案?", r"解答", r"回答", r"解释", r"说明", r"A"),
        question_words=(
            "什么",
            "如何",
            "为什么",
            "怎么",
            "哪个",
            "哪些",
            "是否",
            "能否",
            "谁",
            "何时",
            "何地",
            "多少",
            "几个",
        ),
        instruction_words=("解释", "说明", "描述", "列举", "比较", "简述", "阐述"),
        punctuation=("？", "。", "！", "：", "；", "，"),
        script=r"[\u4e00-\u9fff]",
        word_boundaries=False,
        separators=(_SEPARATOR_LINE, r"答案", r"解答"),
    ),
    "en": LanguagePatterns(
        code="en",
        name="English",
        question_markers=(r"Question", r"Q", r"Ask", r"Problem"),
        answer_markers=(
            r"Answer",
            r"A",
            r"Solution",
            r"Response",
            r"Reply",
            r"Explanation",
        ),
        question_words=(
            "what",
            "how",
            "why",
            "when",
            "where",
            "who",
            "which",
            "whose",
            "whom",
            "can",
            "could",
            "should",
            "would",
            "will",
            "do",
            "does",
            "did",
            "is",
            "are",
        ),
        instruction_words=(
            "explain",
            "describe",
            "define",
            "list",
            "compare",
            "name",
            "give",
            "summarize",
        ),
        punctuation=("?", ".", "!", ":", ";", ","),
        separators=(_SEPARATOR_LINE, r"Answer", r"Solution"),
    ),
    "ja": LanguagePatterns(
        code="ja",
        name="Japanese",
        question_markers=(r"質問", r"問題", r"問", r"Q"),
        answer_markers=(r"答え", r"回答", r"解答", r"説明", r"A"),
        question_words=("何", "どう", "なぜ", "いつ", "どこ", "誰", "どの", "どれ", "いくつ"),
        instruction_words=("説明", "述べ", "答えよ", "比較"),
        punctuation=("？", "。", "！", "：", "；", "、"),
        script=r"[\u3040-\u30ff]",
        word_boundaries=False,
        separators=(_SEPARATOR_LINE, r"答え", r"回答"),
    ),
    "ko": LanguagePatterns(
        code="ko",
        name="Korean",
        question_markers=(r"질문", r"문제", r"물음", r"Q"),
        answer_markers=(r"답변", r"답", r"해답", r"설명", r"A"),
        question_words=("무엇", "어떻게", "왜", "언제", "어디", "누구", "어느", "몇", "얼마"),
        instruction_words=("설명", "서술", "비교"),
        punctuation=("?", ".", "!", ":", ";", ","),
        script=r"[\uac00-\ud7af]",
        word_boundaries=False,
        separators=(_SEPARATOR_LINE, r"답변"),
    ),
    "ru": LanguagePatterns(
        code="ru",
        name="Russian",
        question_markers=(r"Вопрос", r"В", r"Q"),
        answer_markers=(r"Ответ", r"О", r"Решение", r"A"),
        question_words=(
            "что",
            "как",
            "почему",
            "зачем",
            "когда",
            "где",
            "кто",
            "какой",
            "какая",
            "какие",
            "сколько",
            "чем",
        ),
        instruction_words=("объясните", "опишите", "перечислите", "сравните", "назовите"),
        punctuation=("?", ".", "!", ":", ";", ","),
        script=r"[\u0400-\u04ff]",
        separators=(_SEPARATOR_LINE, r"Ответ"),
    ),
}


@dataclass
class SeparatorMatch:
    index: int
    separator: str


@dataclass
class SplitResult:
    """Question/answer split produced without any registered pattern."""

    question: str
    answer: str
    confidence: float
    language: str


class MultilingualRecognizer:
    """Language detection and marker lookup across the supported languages."""

    def __init__(
        self,
        language: str = "auto",
        supported_languages: tuple[str, ...] = SUPPORTED_LANGUAGES,
        fallback_language: str = FALLBACK_LANGUAGE,
    ):
        self.language = language
        self.supported_languages = tuple(
            code for code in supported_languages if code in LANGUAGE_PATTERNS
        )
        self.fallback_language = fallback_language

    def detect_language(self, content: str) -> str:
        """Language of ``content`` among the supported ones.

        Prose long enough for a statistical guess goes to langdetect. Short
        notes, and text langdetect places outside the supported languages,
        are scored against the marker tables instead.
        """
        if self.language != "auto":
            return self.language

        detected = self._detect_statistically(content)
        if detected is not None:
            return detected
        return self._detect_by_markers(content)

    def _detect_statistically(self, content: str) -> str | None:
        prose = _prose_for_detection(content)
        if len(prose) <= MIN_STATISTICAL_LENGTH:
            return None
        try:
            detected = detect(prose)
        except LangDetectException:
            return None
        code = _DETECTED_VARIANTS.get(detected, detected.split("-")[0])
        return code if code in self.supported_languages else None

    def _detect_by_markers(self, content: str) -> str:
        best_language = self.fallback_language
        best_score = 0.0
        for code in self.supported_languages:
            score = self._score(content, LANGUAGE_PATTERNS[code])
            if score > best_score:
                best_language, best_score = code, score
        return best_language

    def get_patterns(self, language: str | None = None) -> LanguagePatterns:
        code = language or (self.language if self.language != "auto" else None)
        if code is None:
            code = self.fallback_language
        return LANGUAGE_PATTERNS.get(code, LANGUAGE_PATTERNS[self.fallback_language])

    def _tables(self, language: str | None) -> list[LanguagePatterns]:
        if language:
            return [self.get_patterns(language)]
        return [LANGUAGE_PATTERNS[code] for code in self.supported_languages]

    def looks_like_question(self, text: str, language: str | None = None) -> bool:
        """Ends in a question mark, opens with a marker or question word, or asks for something.

        Without a language, every supported language is consulted.
        """
        stripped = text.strip()
        if not stripped:
            return False
        if stripped.endswith(("?", "？")):
            return True
        for table in self._tables(language):
            if table.question_marker_re.match(stripped):
                return True
            if table.word_boundaries:
                if table.leading_question_word_re.match(stripped):
                    return True
            elif table.question_word_re.search(stripped):
                return True
            if table.instruction_word_re.search(stripped):
                return True
        return False

    def match_question_marker(
        self, line: str, language: str | None = None
    ) -> re.Match[str] | None:
        """Match a question label ("Q:", "问题：") at the start of a line."""
        for table in self._tables(language):
            match = table.question_marker_re.match(line)
            if match:
                return match
        return None

    def match_answer_marker(
        self, line: str, language: str | None = None
    ) -> re.Match[str] | None:
        """Match an answer label ("A:", "答案：") at the start of a line."""
        for table in self._tables(language):
            match = table.answer_marker_re.match(line)
            if match:
                return match
        return None

    def strip_question_marker(self, line: str, language: str | None = None) -> str:
        match = self.match_question_marker(line, language)
        return line[match.end() :].strip() if match else line.strip()

    def strip_answer_marker(self, text: str, language: str | None = None) -> str:
        match = self.match_answer_marker(text, language)
        return text[match.end() :].strip() if match else text.strip()

    def find_separators(
        self, content: str, language: str | None = None
    ) -> list[SeparatorMatch]:
        """Separator lines and answer labels, in document order."""
        table = self.get_patterns(language or self.detect_language(content))
        found = [
            SeparatorMatch(m.start(), m.group(0))
            for m in table.separator_re.finditer(content)
        ]
        for line_match in re.finditer(r"^.*$", content, re.MULTILINE):
            label = table.answer_marker_re.match(line_match.group(0))
            if label:
                found.append(
                    SeparatorMatch(line_match.start(), label.group(0).rstrip())
                )
        found.sort(key=lambda sep: sep.index)
        return found

    def smart_split(self, content: str) -> SplitResult:
        """Split content into question and answer using only language cues."""
        language = self.detect_language(content)

        separators = self.find_separators(content, language)
        if separators:
            first = separators[0]
            question = content[: first.index].strip()
            answer = content[first.index + len(first.separator) :].strip()
            if question and answer:
                return SplitResult(question, answer, 0.8, language)

        lines = [line for line in content.split("\n") if line.strip()]
        for index, line in enumerate(lines[:-1]):
            if self.looks_like_question(line, language):
                return SplitResult(
                    "\n".join(lines[: index + 1]).strip(),
                    "\n".join(lines[index + 1 :]).strip(),
                    0.6,
                    language,
                )

        if len(lines) >= 2:
            return SplitResult(lines[0].strip(), "\n".join(lines[1:]).strip(), 0.4, language)

        return SplitResult(content.strip(), "", 0.2, language)

    def _score(self, content: str, table: LanguagePatterns) -> float:
        score = 0.0
        for line in content.split("\n"):
            if table.question_marker_re.match(line) or table.answer_marker_re.match(line):
                score += 2
        score += len(table.question_word_re.findall(content))
        score += 0.5 * sum(content.count(mark) for mark in table.punctuation)
        if table.script_re is not None:
            score += 0.5 * len(table.script_re.findall(content))
        return score
