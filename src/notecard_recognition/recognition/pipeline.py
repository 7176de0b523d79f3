"""Recognition pipeline: run strategies in order and keep the best result.

The pipeline is a total function. Whatever the strategies do, ``parse``
returns an ``EnhancedParseResult`` whose ``notes`` field holds the original
text.
"""

import time
from dataclasses import dataclass

from ..config_settings import Config
from ..error_codes import ErrorCode
from ..models.data import NOTES_FIELD, EnhancedParseResult, ParseMethod
from ..models.template import Template
from ..utils.logging import get_logger, preview
from .boundary import BoundaryDetector
from .languages import MultilingualRecognizer
from .matcher import PatternMatcher
from .patterns import PatternRegistry, create_default_registry
from .preprocessor import FormatPreprocessor, PreprocessingOptions
from .strategies import (
    ParseStrategy,
    StrategyContext,
    StrategyResult,
    build_strategies,
    field_coverage,
)

logger = get_logger(__name__)

# Warnings strategies already raise for low coverage
_TRUNCATION_WARNINGS = ("Possible truncation", "Content may be truncated")


@dataclass
class PipelineThresholds:
    """Tunable cut-offs for accepting and falling back."""

    acceptance_threshold: float = 0.5
    protective_confidence: float = 0.3
    truncation_coverage_threshold: float = 0.9


class RecognitionPipeline:
    """Ordered chain of parse strategies with a protective fallback."""

    def __init__(
        self,
        strategies: list[ParseStrategy],
        preprocessor: FormatPreprocessor | None = None,
        thresholds: PipelineThresholds | None = None,
        preprocess: bool = True,
        detector: BoundaryDetector | None = None,
    ):
        self.strategies = strategies
        self.preprocessor = preprocessor or FormatPreprocessor()
        self.thresholds = thresholds or PipelineThresholds()
        self.preprocess = preprocess
        self.detector = detector or BoundaryDetector()

    @classmethod
    def from_config(
        cls, config: Config, registry: PatternRegistry | None = None
    ) -> "RecognitionPipeline":
        """Wire a pipeline from configuration."""
        recognizer = MultilingualRecognizer(language=config.language)
        context = StrategyContext(
            matcher=PatternMatcher(registry or create_default_registry(), recognizer),
            detector=BoundaryDetector(
                recognizer,
                preserve_formatting=config.preserve_formatting,
                completeness_threshold=config.truncation_coverage_threshold,
            ),
            recognizer=recognizer,
            boundary_min_confidence=config.boundary_min_confidence,
            truncation_coverage_threshold=config.truncation_coverage_threshold,
            multi_pattern_warning_confidence=config.multi_pattern_warning_confidence,
            hybrid_boundary_confidence=config.hybrid_boundary_confidence,
        )
        prep = config.preprocessing
        preprocessor = FormatPreprocessor(
            PreprocessingOptions(
                normalize_headings=prep.normalize_headings,
                normalize_punctuation=prep.normalize_punctuation,
                normalize_terminal_punctuation=prep.normalize_terminal_punctuation,
                standardize_quotes=prep.standardize_quotes,
                normalize_whitespace=prep.normalize_whitespace,
                normalize_line_breaks=prep.normalize_line_breaks,
                remove_extra_spaces=prep.remove_extra_spaces,
                preserve_code_blocks=prep.preserve_code_blocks,
                preserve_links=prep.preserve_links,
                preserve_math=prep.preserve_math,
            )
        )
        return cls(
            strategies=build_strategies(context, config.strategy_order),
            preprocessor=preprocessor,
            thresholds=PipelineThresholds(
                acceptance_threshold=config.acceptance_threshold,
                protective_confidence=config.protective_confidence,
                truncation_coverage_threshold=config.truncation_coverage_threshold,
            ),
            preprocess=prep.enabled,
            detector=context.detector,
        )

    @classmethod
    def default(cls, registry: PatternRegistry | None = None) -> "RecognitionPipeline":
        return cls.from_config(Config(), registry)

    def parse(self, content: str, template: Template | None = None) -> EnhancedParseResult:
        """
        Run every strategy until one is accepted.

        Args:
            content: Raw note text
            template: Template bound to the note, if any

        Returns:
            The first accepted result, else the best successful one, else a
            protective first-line/rest split. Never raises for bad content.
            Strategy results whose fields cover too little of the note carry
            a truncation warning.
        """
        started = time.perf_counter()
        working = (
            self.preprocessor.normalize(content).processed if self.preprocess else content
        )

        best: EnhancedParseResult | None = None
        for strategy in self.strategies:
            outcome = self._run(strategy, working, template)
            result = outcome.to_parse_result(content, strategy.name)

            logger.debug(
                "strategy_attempted",
                strategy=strategy.name,
                status=outcome.status.value,
                confidence=round(result.confidence, 3),
            )

            if result.success and result.confidence > self.thresholds.acceptance_threshold:
                self._check_truncation(result, working)
                self._log_completed(result, started)
                return result
            if result.success and (best is None or result.confidence > best.confidence):
                best = result

        if best is not None:
            self._check_truncation(best, working)
            final = best
        else:
            final = self._protective_result(content, working)
        self._log_completed(final, started)
        return final

    def _check_truncation(self, result: EnhancedParseResult, working: str) -> None:
        if any(warning.startswith(_TRUNCATION_WARNINGS) for warning in result.warnings):
            return
        fields = {name: value for name, value in result.fields.items() if name != NOTES_FIELD}
        coverage = field_coverage(self.detector, working, fields)
        if coverage < self.thresholds.truncation_coverage_threshold:
            result.warnings.append(
                f"Possible truncation: fields cover {coverage:.0%} of the note"
            )
            logger.warning(
                "truncation_risk",
                strategy=result.strategy,
                pattern_id=result.pattern_id,
                coverage=round(coverage, 3),
                error_code=ErrorCode.REC_TRUNCATION_RISK.value,
            )

    def _run(
        self, strategy: ParseStrategy, content: str, template: Template | None
    ) -> StrategyResult:
        try:
            return strategy.execute(content, template)
        except Exception as e:
            # Strategies report failures as results; anything else is a bug in one
            logger.error(
                "strategy_error",
                strategy=strategy.name,
                error=str(e),
                error_type=type(e).__name__,
                error_code=ErrorCode.REC_STRATEGY_FAILED.value,
            )
            return StrategyResult.failed(
                strategy.method, f"{strategy.name} raised {type(e).__name__}: {e}"
            )

    def _protective_result(self, original: str, working: str) -> EnhancedParseResult:
        lines = [line for line in working.split("\n") if line.strip()]
        fields: dict[str, str] = {}
        if lines:
            fields["question"] = lines[0].strip()
            fields["answer"] = "\n".join(lines[1:]).strip()

        return EnhancedParseResult(
            success=bool(lines),
            fields=fields,
            confidence=self.thresholds.protective_confidence if lines else 0.0,
            method=ParseMethod.INTELLIGENT,
            strategy="protective",
            warnings=[
                "No strategy recognized the content; split into first line and rest",
                "Check the field assignment by hand",
            ],
            original_content=original,
        )

    @staticmethod
    def _log_completed(result: EnhancedParseResult, started: float) -> None:
        logger.info(
            "recognition_completed",
            strategy=result.strategy,
            pattern_id=result.pattern_id,
            success=result.success,
            confidence=round(result.confidence, 3),
            question=preview(result.question),
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
