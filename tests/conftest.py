"""Pytest configuration and fixtures for the test suite."""

import pytest

from notecard_recognition.config import Config, reset_config
from notecard_recognition.recognition.boundary import BoundaryDetector
from notecard_recognition.recognition.dual_mode import DualModeParser
from notecard_recognition.recognition.languages import MultilingualRecognizer
from notecard_recognition.recognition.matcher import PatternMatcher
from notecard_recognition.recognition.pattern_safety import SafetyOptions
from notecard_recognition.recognition.patterns import PatternRegistry
from notecard_recognition.recognition.pipeline import RecognitionPipeline
from notecard_recognition.recognition.preprocessor import FormatPreprocessor


@pytest.fixture
def safety_options():
    """Safety limits without the subprocess probe, to keep tests fast."""
    return SafetyOptions(run_probe=False)


@pytest.fixture
def registry(safety_options):
    """Registry with the built-in patterns."""
    return PatternRegistry(safety_options=safety_options)


@pytest.fixture
def recognizer():
    return MultilingualRecognizer()


@pytest.fixture
def matcher(registry, recognizer):
    return PatternMatcher(registry, recognizer)


@pytest.fixture
def detector(recognizer):
    return BoundaryDetector(recognizer)


@pytest.fixture
def preprocessor():
    return FormatPreprocessor()


@pytest.fixture
def config():
    """Default configuration with the safety probe disabled."""
    return Config(pattern_safety={"run_probe": False})


@pytest.fixture
def pipeline(config, registry):
    return RecognitionPipeline.from_config(config, registry)


@pytest.fixture
def dual_mode(pipeline):
    return DualModeParser(pipeline)


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch, tmp_path):
    """Keep tests away from the developer's config.yaml and NOTECARD_ variables."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("NOTECARD_RECOGNITION_CONFIG", raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def sample_notes():
    """Notes in the layouts the recognizer is expected to handle."""
    return {
        "h2": "## What is X?\n\nX is Y.",
        "qa": "Q: What is Y?\nA: Y is Z.",
        "chinese": "问题：什么是递归？\n答案：函数调用自身。",
        "divider": "What is a closure?\n---div---\nA function bundled with its environment.",
        "cloze": "The capital of France is {{c1::Paris}}.",
        "choice": "Capital of France?\nA. Paris\nB. London\nC. Berlin\nAnswer: A",
    }
