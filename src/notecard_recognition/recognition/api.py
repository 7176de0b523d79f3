"""Public entry points.

``RecognitionService`` wires one registry into every component that reads
patterns, so custom patterns registered through it are seen by the matcher,
the pipeline and the dual-mode parser alike. The module-level functions build
a fresh default service per call; hold a service to reuse a registry.
"""

from ..config_models import PatternSafetySettings
from ..config_settings import Config
from ..models.data import (
    ChoiceParseResult,
    EnhancedParseResult,
    MatchCandidate,
    ParsedContent,
    ParseMode,
    ParseResult,
    PreprocessResult,
)
from ..models.patterns import ContentPattern
from ..models.template import Template
from ..utils.logging import get_logger
from .boundary import BoundaryDetector
from .choice import parse_choice_question as _parse_choice_question
from .custom_patterns import CustomPatternManager
from .dual_mode import DualModeParser
from .languages import MultilingualRecognizer
from .matcher import PatternMatcher
from .pattern_safety import SafetyOptions
from .patterns import PatternRegistration, PatternRegistry, create_default_registry
from .pipeline import RecognitionPipeline
from .preprocessor import PreprocessingOptions

logger = get_logger(__name__)


def safety_options_from_settings(settings: PatternSafetySettings) -> SafetyOptions:
    return SafetyOptions(
        max_length=settings.max_length,
        max_complexity=settings.max_complexity,
        allow_lookahead=settings.allow_lookahead,
        allow_lookbehind=settings.allow_lookbehind,
        allow_backreferences=settings.allow_backreferences,
        timeout_seconds=settings.timeout_seconds,
        run_probe=settings.run_probe,
    )


class RecognitionService:
    """All recognition components sharing one pattern registry."""

    def __init__(self, config: Config | None = None, registry: PatternRegistry | None = None):
        self.config = config or Config()
        self.registry = registry or create_default_registry(
            safety_options_from_settings(self.config.pattern_safety)
        )
        self.recognizer = MultilingualRecognizer(language=self.config.language)
        self.matcher = PatternMatcher(self.registry, self.recognizer)
        self.detector = BoundaryDetector(
            self.recognizer,
            preserve_formatting=self.config.preserve_formatting,
            completeness_threshold=self.config.truncation_coverage_threshold,
        )
        self.pipeline = RecognitionPipeline.from_config(self.config, self.registry)
        self.preprocessor = self.pipeline.preprocessor
        self.dual_mode = DualModeParser(self.pipeline)
        self.custom_patterns = CustomPatternManager(self.registry)

        if self.config.custom_patterns_path is not None:
            report = self.custom_patterns.import_file(self.config.custom_patterns_path)
            logger.debug(
                "custom_patterns_loaded",
                path=str(self.config.custom_patterns_path),
                imported=len(report.imported),
                errors=len(report.errors),
            )

    def normalize(
        self, text: str, options: PreprocessingOptions | None = None
    ) -> PreprocessResult:
        return self.preprocessor.normalize(text, options)

    def register_pattern(self, pattern: ContentPattern) -> PatternRegistration:
        """Screen and register a pattern; rejections come back in the result."""
        return self.registry.register(pattern)

    def match_best(self, content: str) -> MatchCandidate | None:
        return self.matcher.match_best(content)

    def detect_boundaries(self, content: str) -> ParsedContent:
        return self.detector.analyze(content)

    def parse(
        self,
        content: str,
        mode: ParseMode | str = ParseMode.LENIENT,
        template: Template | None = None,
    ) -> ParseResult:
        return self.dual_mode.parse(content, mode, template)

    def parse_with_pipeline(
        self, content: str, template: Template | None = None
    ) -> EnhancedParseResult:
        return self.pipeline.parse(content, template)

    @staticmethod
    def parse_choice_question(
        options_text: str, correct_answer_text: str
    ) -> ChoiceParseResult:
        return _parse_choice_question(options_text, correct_answer_text)


def normalize(text: str, options: PreprocessingOptions | None = None) -> PreprocessResult:
    """Normalize note text with the default preprocessor."""
    return RecognitionService().normalize(text, options)


def register_pattern(
    pattern: ContentPattern, registry: PatternRegistry | None = None
) -> PatternRegistration:
    """Register a pattern with ``registry`` (a fresh default one if omitted)."""
    return (registry or create_default_registry()).register(pattern)


def match_best(content: str, registry: PatternRegistry | None = None) -> MatchCandidate | None:
    return PatternMatcher(registry or create_default_registry()).match_best(content)


def detect_boundaries(content: str) -> ParsedContent:
    return BoundaryDetector().analyze(content)


def parse(
    content: str,
    mode: ParseMode | str = ParseMode.LENIENT,
    template: Template | None = None,
    config: Config | None = None,
) -> ParseResult:
    """Dual-mode parse. Lenient never raises; strict reports errors in the result."""
    return RecognitionService(config).parse(content, mode, template)


def parse_with_pipeline(
    content: str,
    template: Template | None = None,
    config: Config | None = None,
) -> EnhancedParseResult:
    """Run the recognition pipeline. Never raises for bad content."""
    return RecognitionService(config).parse_with_pipeline(content, template)


def parse_choice_question(options_text: str, correct_answer_text: str) -> ChoiceParseResult:
    return _parse_choice_question(options_text, correct_answer_text)
