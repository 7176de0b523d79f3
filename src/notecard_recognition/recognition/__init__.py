"""Content recognition: patterns, boundary detection and parse orchestration."""

from .api import (
    RecognitionService,
    detect_boundaries,
    match_best,
    normalize,
    parse,
    parse_choice_question,
    parse_with_pipeline,
    register_pattern,
)
from .boundary import BoundaryDetector, parse_h2_question_answer, validate_and_suggest_fix
from .choice import (
    is_choice_question,
    parse_correct_answer,
    parse_marked_choice_question,
    parse_options,
    validate_choice_question,
)
from .custom_patterns import CustomPatternManager, ImportReport, TestRunSummary
from .dual_mode import DualModeParser
from .languages import MultilingualRecognizer
from .matcher import PatternMatcher
from .pattern_safety import PatternSafetyReport, SafetyOptions, validate_pattern
from .patterns import (
    BUILTIN_PATTERNS,
    PatternRegistration,
    PatternRegistry,
    create_default_registry,
)
from .pipeline import PipelineThresholds, RecognitionPipeline
from .preprocessor import FormatPreprocessor, PreprocessingOptions
from .strategies import ParseStrategy, StrategyContext, StrategyResult, build_strategies
from .validation import ParseResultValidator, validate_parse_result

__all__ = [
    # Entry points
    "RecognitionService",
    "detect_boundaries",
    "match_best",
    "normalize",
    "parse",
    "parse_choice_question",
    "parse_with_pipeline",
    "register_pattern",
    # Patterns
    "BUILTIN_PATTERNS",
    "CustomPatternManager",
    "ImportReport",
    "PatternMatcher",
    "PatternRegistration",
    "PatternRegistry",
    "PatternSafetyReport",
    "SafetyOptions",
    "TestRunSummary",
    "create_default_registry",
    "validate_pattern",
    # Recognition
    "BoundaryDetector",
    "DualModeParser",
    "FormatPreprocessor",
    "MultilingualRecognizer",
    "ParseResultValidator",
    "ParseStrategy",
    "PipelineThresholds",
    "PreprocessingOptions",
    "RecognitionPipeline",
    "StrategyContext",
    "StrategyResult",
    "build_strategies",
    "parse_h2_question_answer",
    "validate_and_suggest_fix",
    "validate_parse_result",
    # Choice questions
    "is_choice_question",
    "parse_correct_answer",
    "parse_marked_choice_question",
    "parse_options",
    "validate_choice_question",
]
