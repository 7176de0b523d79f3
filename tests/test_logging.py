"""Tests for logging helpers and console filters."""

import logging

import pytest
import structlog

from notecard_recognition.utils.logging import (
    ConsoleNoiseFilter,
    ConsoleNoiseFilterProcessor,
    HighVolumeEventPolicy,
    UserFacingConsoleFilter,
    UserFriendlyConsoleRenderer,
    configure_logging,
    get_logger,
    preview,
)


def make_record(msg, level=logging.INFO):
    return logging.LogRecord("test", level, __file__, 1, msg, None, None)


class TestPreview:
    """Test content excerpts for log lines."""

    def test_short_text_is_flattened(self):
        """Test that whitespace runs collapse to single spaces."""
        assert preview("a\n\n b\tc") == "a b c"

    def test_long_text_is_truncated(self):
        """Test that long text ends with an ellipsis within the limit."""
        result = preview("x" * 100, limit=10)

        assert result == "xxxxxxx..."
        assert len(result) == 10


class TestConsoleNoiseFilter:
    """Test module level overrides and rate limiting."""

    def test_drops_events_below_module_minimum(self):
        """Test that a debug event from an overridden module is dropped."""
        processor = ConsoleNoiseFilterProcessor(level_overrides={"pkg.noisy": "INFO"})

        with pytest.raises(structlog.DropEvent):
            processor(None, "debug", {"logger": "pkg.noisy.sub", "level": "debug", "event": "x"})

    def test_passes_other_modules(self):
        """Test that unrelated loggers are not affected."""
        processor = ConsoleNoiseFilterProcessor(level_overrides={"pkg.noisy": "INFO"})
        event = {"logger": "pkg.quiet", "level": "debug", "event": "x"}

        assert processor(None, "debug", event) is event

    def test_rate_limits_within_window(self):
        """Test that events past the budget are dropped until the window slides."""
        now = [0.0]
        processor = ConsoleNoiseFilterProcessor(
            high_volume_policies={"pattern_matched": HighVolumeEventPolicy(2, 10.0)},
            time_func=lambda: now[0],
        )
        event = {"logger": "pkg", "level": "info", "event": "pattern_matched"}

        processor(None, "info", dict(event))
        processor(None, "info", dict(event))
        with pytest.raises(structlog.DropEvent):
            processor(None, "info", dict(event))

        now[0] = 11.0
        assert processor(None, "info", dict(event))["event"] == "pattern_matched"

    def test_filter_drops_structlog_and_stdlib_records(self):
        """Test that the handler filter applies the processor to both record kinds."""
        console_filter = ConsoleNoiseFilter(
            ConsoleNoiseFilterProcessor(
                level_overrides={"test": "INFO"},
                high_volume_policies={"pattern_matched": HighVolumeEventPolicy(1, 10.0)},
            )
        )

        assert console_filter.filter(make_record({"event": "pattern_matched"})) is True
        assert console_filter.filter(make_record({"event": "pattern_matched"})) is False
        assert console_filter.filter(make_record("plain stdlib", level=logging.DEBUG)) is False
        assert console_filter.filter(make_record("plain stdlib")) is True


class TestUserFacingFilter:
    """Test the console filter for non-verbose runs."""

    def test_user_facing_event_passes(self):
        """Test that listed events reach the console."""
        record = make_record({"event": "recognition_completed"})

        assert UserFacingConsoleFilter().filter(record) is True

    def test_internal_event_is_hidden(self):
        """Test that internal events are hidden."""
        record = make_record({"event": "pattern_matched"})

        assert UserFacingConsoleFilter().filter(record) is False

    def test_errors_always_pass(self):
        """Test that ERROR records pass regardless of event."""
        record = make_record({"event": "pattern_matched"}, level=logging.ERROR)

        assert UserFacingConsoleFilter().filter(record) is True

    def test_verbose_passes_everything(self):
        """Test that verbose mode disables filtering."""
        record = make_record({"event": "pattern_matched"})

        assert UserFacingConsoleFilter(verbose=True).filter(record) is True


class TestUserFriendlyRenderer:
    """Test the short console messages."""

    def test_recognition_completed(self):
        """Test the summary line for a recognized note."""
        rendered = UserFriendlyConsoleRenderer()(
            None,
            "info",
            {
                "event": "recognition_completed",
                "strategy": "strict_regex",
                "pattern_id": "h2-qa",
                "confidence": 0.9,
            },
        )

        assert rendered == "Recognized via strict_regex (h2-qa), confidence 0.90"

    def test_patterns_imported_with_rejections(self):
        """Test the import summary."""
        rendered = UserFriendlyConsoleRenderer()(
            None, "info", {"event": "patterns_imported", "imported": 3, "rejected": 1}
        )

        assert rendered == "Imported 3 custom patterns | 1 rejected"

    def test_pattern_rejected(self):
        """Test the rejection warning."""
        rendered = UserFriendlyConsoleRenderer()(
            None,
            "warning",
            {"event": "pattern_rejected", "pattern_id": "evil", "reason": "nested quantifier"},
        )

        assert rendered == "WARNING: pattern evil rejected: nested quantifier"

    def test_error_level(self):
        """Test that errors render their message."""
        rendered = UserFriendlyConsoleRenderer()(
            None, "error", {"event": "boom", "level": "error", "error": "bad thing"}
        )

        assert rendered == "ERROR: bad thing"


class TestConfigureLogging:
    """Test handler setup."""

    def test_writes_json_log_file(self, tmp_path):
        """Test that a log file is created when a directory is given."""
        configure_logging(log_level="DEBUG", log_dir=tmp_path)

        get_logger("notecard_recognition.tests").info("logging_test_event", value=1)
        for handler in logging.getLogger().handlers:
            handler.flush()

        log_file = tmp_path / "notecard-recognition.log"
        assert log_file.exists()
        assert "logging_test_event" in log_file.read_text(encoding="utf-8")

    def test_reconfigure_replaces_handlers(self):
        """Test that configuring twice does not stack console handlers."""
        configure_logging()
        count = len(logging.getLogger().handlers)

        configure_logging()

        assert len(logging.getLogger().handlers) == count

    def test_console_noise_filter_covers_structlog_events(self, tmp_path, capsys):
        """Test that structlog events are rate-limited on the console but not in the file."""
        configure_logging(log_level="DEBUG", log_dir=tmp_path, verbose=True)
        logger = get_logger("notecard_recognition.tests")
        try:
            for index in range(30):
                logger.debug("pattern_matched", pattern_id=f"p{index}")
            for handler in logging.getLogger().handlers:
                handler.flush()

            console = capsys.readouterr().err
            log_text = (tmp_path / "notecard-recognition.log").read_text(encoding="utf-8")
        finally:
            configure_logging()

        assert console.count("pattern_matched") == 10
        assert log_text.count("pattern_matched") == 30
