"""Format preprocessing for note content before recognition.

Normalizes the variations that make the same card look different to a regex:
heading spacing, full-width punctuation, typographic quotes, exotic whitespace
and line endings. Code, links, images, URLs and math are swapped for
placeholders first and restored verbatim afterwards, so nothing inside them
is ever rewritten.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..models.data import PreprocessingDiagnosis, PreprocessResult, PreservedSpan
from ..utils.logging import get_logger

logger = get_logger(__name__)

# Private-use code points never produced by the normalization passes
_PLACEHOLDER_OPEN = "\uE000"
_PLACEHOLDER_CLOSE = "\uE001"
_PLACEHOLDER_RE = re.compile(f"{_PLACEHOLDER_OPEN}[A-Z_]+\\d+{_PLACEHOLDER_CLOSE}")

# (kind, option attribute, regex), applied in order
_PROTECTED_SPANS: Tuple[Tuple[str, str, re.Pattern[str]], ...] = (
    ("code_block", "preserve_code_blocks", re.compile(r"(```|~~~)[\s\S]*?(?:\1|\Z)")),
    ("inline_code", "preserve_code_blocks", re.compile(r"`[^`\n]+`")),
    ("math_block", "preserve_math", re.compile(r"\$\$[\s\S]+?\$\$")),
    (
        "math",
        "preserve_math",
        re.compile(r"(?<![\\$])\$(?=\S)[^$\n]+?(?<=\S)\$(?!\d)"),
    ),
    ("image", "preserve_links", re.compile(r"!\[[^\]\n]*\]\([^)\n]+\)")),
    ("wikilink", "preserve_links", re.compile(r"!?\[\[[^\]\n]+\]\]")),
    ("link", "preserve_links", re.compile(r"\[[^\]\n]+\]\([^)\n]+\)")),
    ("url", "preserve_links", re.compile(r"<https?://[^>\s]+>|https?://[^\s<>()\[\]]+")),
)

_HEADING_RE = re.compile(r"^(#{1,6})(?!#)[ \t]*(\S.*?)[ \t]*$", re.MULTILINE)
# "#flashcard" or "#tag1 #tag2" is an Obsidian tag line, not a heading
_TAG_LINE_RE = re.compile(
    r"^(?:#[A-Za-z0-9_/-]+|#[^\s#]+(?:[ \t]+#[^\s#]+)+)[ \t]*$"
)

_PUNCTUATION_TABLE = str.maketrans(
    {
        "：": ":",
        "；": ";",
        "，": ",",
        "（": "(",
        "）": ")",
        "．": ".",
        "【": "[",
        "】": "]",
        **{chr(0xFF10 + i): str(i) for i in range(10)},
        **{chr(0xFF21 + i): chr(ord("A") + i) for i in range(26)},
        **{chr(0xFF41 + i): chr(ord("a") + i) for i in range(26)},
    }
)
_TERMINAL_PUNCTUATION_TABLE = str.maketrans({"？": "?", "！": "!", "。": "."})

_QUOTE_TABLE = str.maketrans(
    {
        "“": '"',
        "”": '"',
        "„": '"',
        "＂": '"',
        "‘": "'",
        "’": "'",
        "‚": "'",
        "＇": "'",
    }
)

_EXOTIC_SPACE_RE = re.compile("[\u00A0\u1680\u2000-\u200A\u202F\u205F\u3000]")
_ZERO_WIDTH_RE = re.compile("[\u200B\uFEFF]")
_BLANK_RUN_RE = re.compile(r"\n{4,}")
_INNER_SPACE_RUN_RE = re.compile(r"(?<=\S) {2,}")


@dataclass
class PreprocessingOptions:
    """Which normalization passes run."""

    normalize_headings: bool = True
    normalize_punctuation: bool = True
    normalize_terminal_punctuation: bool = False
    standardize_quotes: bool = True
    normalize_whitespace: bool = True
    normalize_line_breaks: bool = True
    remove_extra_spaces: bool = True
    preserve_code_blocks: bool = True
    preserve_links: bool = True
    preserve_math: bool = True


class FormatPreprocessor:
    """Normalizes note content. Holds no per-call state."""

    def __init__(self, options: Optional[PreprocessingOptions] = None):
        self.options = options or PreprocessingOptions()

    def normalize(
        self, text: str, options: Optional[PreprocessingOptions] = None
    ) -> PreprocessResult:
        """
        Normalize content while keeping protected spans byte-identical.

        Args:
            text: Raw note content
            options: Per-call override of the instance options

        Returns:
            Result with the processed text, applied passes and preserved spans
        """
        opts = options or self.options
        protected, replacements, spans = self._protect(text, opts)

        passes = (
            ("headings", opts.normalize_headings, self._normalize_headings),
            ("punctuation", opts.normalize_punctuation, self._normalize_punctuation),
            (
                "terminal_punctuation",
                opts.normalize_terminal_punctuation,
                self._normalize_terminal_punctuation,
            ),
            ("quotes", opts.standardize_quotes, self._standardize_quotes),
            ("whitespace", opts.normalize_whitespace, self._normalize_whitespace),
            ("line_breaks", opts.normalize_line_breaks, self._normalize_line_breaks),
            ("extra_spaces", opts.remove_extra_spaces, self._remove_extra_spaces),
        )

        transformations: List[str] = []
        current = protected
        for name, enabled, transform in passes:
            if not enabled:
                continue
            updated = transform(current)
            if updated != current:
                transformations.append(name)
                current = updated

        processed = self.restore(current, replacements)

        if transformations:
            logger.debug(
                "content_preprocessed",
                transformations=transformations,
                preserved=len(spans),
                length_delta=len(processed) - len(text),
            )

        return PreprocessResult(
            processed=processed,
            original=text,
            transformations=transformations,
            preserved_spans=spans,
        )

    def restore(self, text: str, replacements: List[Tuple[str, str]]) -> str:
        """Put protected spans back, innermost last."""
        for placeholder, original in reversed(replacements):
            text = text.replace(placeholder, original)
        return text

    def needs_preprocessing(self, text: str) -> PreprocessingDiagnosis:
        """Report which passes would change the text, without running them."""
        reasons: List[str] = []
        recommendations: List[str] = []
        if re.search(r"^#{1,6}(?![#\s])", text, re.MULTILINE) and not all(
            _TAG_LINE_RE.match(line)
            for line in re.findall(r"^#{1,6}(?![#\s]).*$", text, re.MULTILINE)
        ):
            reasons.append("headings without a space after '#'")
            recommendations.append("Write headings as '## Question'")
        if text.translate(_PUNCTUATION_TABLE) != text:
            reasons.append("full-width punctuation or digits")
            recommendations.append("Use ASCII ':' after Q/A labels")
        if text.translate(_QUOTE_TABLE) != text:
            reasons.append("typographic quotes")
        if _EXOTIC_SPACE_RE.search(text) or _ZERO_WIDTH_RE.search(text) or "\t" in text:
            reasons.append("non-standard whitespace")
        if "\r" in text or _BLANK_RUN_RE.search(text):
            reasons.append("irregular line breaks")
            recommendations.append("Keep at most two blank lines between blocks")
        if re.search(r"[ \t]+$", text, re.MULTILINE) or re.search(r"\S {2,}", text):
            reasons.append("repeated or trailing spaces")
        return PreprocessingDiagnosis(
            needs_preprocessing=bool(reasons),
            reasons=reasons,
            recommendations=recommendations,
        )

    def quick_normalize(self, text: str) -> str:
        """Minimal profile: headings, punctuation, line breaks and extra spaces."""
        minimal = PreprocessingOptions(
            standardize_quotes=False,
            normalize_whitespace=False,
            preserve_code_blocks=self.options.preserve_code_blocks,
            preserve_links=self.options.preserve_links,
            preserve_math=self.options.preserve_math,
        )
        return self.normalize(text, minimal).processed.strip()

    def _protect(
        self, text: str, opts: PreprocessingOptions
    ) -> Tuple[str, List[Tuple[str, str]], List[PreservedSpan]]:
        replacements: List[Tuple[str, str]] = []
        spans: List[PreservedSpan] = []

        for kind, option_name, pattern in _PROTECTED_SPANS:
            if not getattr(opts, option_name):
                continue

            def stash(match: re.Match[str], kind: str = kind) -> str:
                placeholder = (
                    f"{_PLACEHOLDER_OPEN}{kind.upper()}{len(replacements)}"
                    f"{_PLACEHOLDER_CLOSE}"
                )
                raw = match.group(0)
                spans.append(
                    PreservedSpan(
                        kind=kind,
                        original=self.restore(raw, replacements),
                        placeholder=placeholder,
                    )
                )
                replacements.append((placeholder, raw))
                return placeholder

            text = pattern.sub(stash, text)

        return text, replacements, spans

    def _normalize_headings(self, content: str) -> str:
        def fix(match: re.Match[str]) -> str:
            if _TAG_LINE_RE.match(match.group(0)):
                return match.group(0)
            return f"{match.group(1)} {match.group(2)}"

        return _HEADING_RE.sub(fix, content)

    def _normalize_punctuation(self, content: str) -> str:
        return content.translate(_PUNCTUATION_TABLE)

    def _normalize_terminal_punctuation(self, content: str) -> str:
        return content.translate(_TERMINAL_PUNCTUATION_TABLE)

    def _standardize_quotes(self, content: str) -> str:
        return content.translate(_QUOTE_TABLE)

    def _normalize_whitespace(self, content: str) -> str:
        content = _ZERO_WIDTH_RE.sub("", content)
        content = _EXOTIC_SPACE_RE.sub(" ", content)
        return content.replace("\t", "    ")

    def _normalize_line_breaks(self, content: str) -> str:
        content = content.replace("\r\n", "\n").replace("\r", "\n")
        return _BLANK_RUN_RE.sub("\n\n\n", content)

    def _remove_extra_spaces(self, content: str) -> str:
        # Leading indentation carries list nesting and is kept
        lines = [
            _INNER_SPACE_RUN_RE.sub(" ", line.rstrip()) for line in content.split("\n")
        ]
        return _BLANK_RUN_RE.sub("\n\n\n", "\n".join(lines))


def contains_placeholder(text: str) -> bool:
    """Check for a leftover protection placeholder."""
    return bool(_PLACEHOLDER_RE.search(text))
