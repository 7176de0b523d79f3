"""Structured logging for the recognition engine.

structlog is bridged onto the standard library so that host applications can
attach their own handlers. The console shows a short line per recognized or
preserved note; everything else (per-pattern attempts, strategy timings) goes
to the optional JSON log file, or to the console with ``verbose=True``.
"""

import logging
import sys
import threading
import time
from collections import deque
from collections.abc import Callable, Mapping, MutableMapping
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog
from structlog.dev import ConsoleRenderer
from structlog.processors import JSONRenderer
from structlog.stdlib import LoggerFactory, ProcessorFormatter, add_log_level, add_logger_name

# Events printed on the terminal without --verbose (ERROR and above always are)
USER_FACING_EVENTS: frozenset[str] = frozenset(
    {
        "recognition_completed",
        "recognition_preserved",
        "pattern_registered",
        "pattern_rejected",
        "patterns_imported",
    }
)

# Longest content excerpt attached to a log event
PREVIEW_LENGTH = 80

LOG_FILE_NAME = "notecard-recognition.log"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def _level_number(level: Any) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        number = logging.getLevelName(level.upper())
        if isinstance(number, int):
            return number
    return logging.INFO


def preview(text: str, limit: int = PREVIEW_LENGTH) -> str:
    """Shorten note content for a log line."""
    flattened = " ".join(text.split())
    if len(flattened) <= limit:
        return flattened
    return flattened[: limit - 3] + "..."


@dataclass(slots=True)
class HighVolumeEventPolicy:
    """At most ``max_occurrences`` of one event per ``window_seconds``."""

    max_occurrences: int
    window_seconds: float


class ConsoleNoiseFilterProcessor:
    """Structlog processor that keeps matcher chatter off the console.

    Every note is tried against every registered pattern, so a single
    ``parse`` emits one ``pattern_matched``/``pattern_not_matched`` pair per
    pattern. Module prefixes can be held to a minimum level, and named events
    are rate-limited in a sliding window. Dropped events raise
    ``structlog.DropEvent``; ``ConsoleNoiseFilter`` applies it to the console
    handler.
    """

    def __init__(
        self,
        level_overrides: Mapping[str, str] | None = None,
        high_volume_policies: Mapping[str, HighVolumeEventPolicy] | None = None,
        time_func: Callable[[], float] | None = None,
    ) -> None:
        self.minimum_levels = {
            prefix: _level_number(name)
            for prefix, name in (level_overrides or {}).items()
            if name
        }
        self.policies = dict(high_volume_policies or {})
        self._seen: dict[str, deque[float]] = {}
        self._lock = threading.Lock()
        self._clock = time_func or time.monotonic

    def _below_minimum(self, logger_name: str, level: int) -> bool:
        return any(
            logger_name.startswith(prefix) and level < minimum
            for prefix, minimum in self.minimum_levels.items()
        )

    def _over_budget(self, event: str) -> bool:
        policy = self.policies.get(event)
        if policy is None:
            return False
        now = self._clock()
        with self._lock:
            seen = self._seen.setdefault(event, deque())
            while seen and now - seen[0] > policy.window_seconds:
                seen.popleft()
            if len(seen) >= policy.max_occurrences:
                return True
            seen.append(now)
        return False

    def __call__(
        self, logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
    ) -> MutableMapping[str, Any]:
        logger_name = event_dict.get("logger") or ""
        level = _level_number(event_dict.get("level", logging.INFO))
        if self._below_minimum(logger_name, level):
            raise structlog.DropEvent

        event = event_dict.get("event")
        if isinstance(event, str) and self._over_budget(event):
            raise structlog.DropEvent
        return event_dict


class ConsoleNoiseFilter(logging.Filter):
    """Runs a ``ConsoleNoiseFilterProcessor`` on every console record.

    Sitting on the handler, it sees structlog events (whose event dict is the
    record message) and plain stdlib records alike, and leaves other handlers
    such as the JSON file untouched.
    """

    def __init__(self, processor: ConsoleNoiseFilterProcessor) -> None:
        super().__init__()
        self.processor = processor

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, dict):
            event_dict = dict(record.msg)
        else:
            event_dict = {"event": record.getMessage()}
        event_dict.setdefault("logger", record.name)
        event_dict.setdefault("level", record.levelname.lower())
        try:
            self.processor(None, str(event_dict["level"]), event_dict)
        except structlog.DropEvent:
            return False
        return True


class UserFacingConsoleFilter(logging.Filter):
    """Pass only lifecycle events and errors to the console, unless verbose."""

    def __init__(self, verbose: bool = False) -> None:
        super().__init__()
        self.verbose = verbose

    def filter(self, record: logging.LogRecord) -> bool:
        if self.verbose or record.levelno >= logging.ERROR:
            return True
        # structlog hands the whole event dict over as the record message
        if isinstance(record.msg, dict):
            event = record.msg.get("event")
        else:
            event = record.getMessage()
        return event in USER_FACING_EVENTS


def _recognized_message(event_dict: Mapping[str, Any]) -> str:
    strategy = event_dict.get("strategy") or "protective"
    pattern_id = event_dict.get("pattern_id")
    via = f"{strategy} ({pattern_id})" if pattern_id else strategy
    return f"Recognized via {via}, confidence {event_dict.get('confidence', 0.0):.2f}"


def _preserved_message(event_dict: Mapping[str, Any]) -> str:
    return (
        f"No pattern matched after {event_dict.get('attempts', 0)} attempts; "
        f"content preserved with template {event_dict.get('fallback_template', '')}"
    )


def _imported_message(event_dict: Mapping[str, Any]) -> str:
    message = f"Imported {event_dict.get('imported', 0)} custom patterns"
    rejected = event_dict.get("rejected", 0)
    return f"{message} | {rejected} rejected" if rejected else message


_USER_MESSAGES: dict[str, Callable[[Mapping[str, Any]], str]] = {
    "recognition_completed": _recognized_message,
    "recognition_preserved": _preserved_message,
    "patterns_imported": _imported_message,
    "pattern_registered": lambda e: f"Registered pattern {e.get('pattern_id', '')}",
    "pattern_rejected": lambda e: (
        f"WARNING: pattern {e.get('pattern_id', '')} rejected: {e.get('reason', '')}"
    ),
}


class UserFriendlyConsoleRenderer:
    """One short line per lifecycle event; other events use the dev renderer."""

    def __init__(self) -> None:
        self._fallback = _console_renderer()

    def __call__(
        self, logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
    ) -> str:
        event = event_dict.get("event", "")
        message = _USER_MESSAGES.get(event)
        if message is not None:
            return message(event_dict)

        level = str(event_dict.get("level", method_name)).upper()
        if level in ("ERROR", "CRITICAL"):
            return f"ERROR: {event_dict.get('error', event)}"
        return str(self._fallback(logger, method_name, event_dict))


# Per-pattern attempts are debug detail; keep the matcher quiet on console
DEFAULT_CONSOLE_LEVEL_OVERRIDES: dict[str, str] = {
    "notecard_recognition.recognition.matcher": "INFO",
}

DEFAULT_HIGH_VOLUME_EVENTS: dict[str, HighVolumeEventPolicy] = {
    "pattern_matched": HighVolumeEventPolicy(10, 10.0),
    "pattern_not_matched": HighVolumeEventPolicy(10, 10.0),
    "strategy_attempted": HighVolumeEventPolicy(20, 10.0),
}

_configured = False
_handlers: list[logging.Handler] = []


def _console_renderer() -> ConsoleRenderer:
    return ConsoleRenderer(colors=True, exception_formatter=structlog.dev.plain_traceback)


def _shared_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        add_log_level,
        add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _console_handler(level: int, verbose: bool, filter_noise: bool) -> logging.Handler:
    renderer: Any = _console_renderer() if verbose else UserFriendlyConsoleRenderer()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(UserFacingConsoleFilter(verbose=verbose))
    if filter_noise:
        handler.addFilter(
            ConsoleNoiseFilter(
                ConsoleNoiseFilterProcessor(
                    level_overrides=DEFAULT_CONSOLE_LEVEL_OVERRIDES,
                    high_volume_policies=DEFAULT_HIGH_VOLUME_EVENTS,
                )
            )
        )
    handler.setFormatter(
        ProcessorFormatter(processor=renderer, foreign_pre_chain=_shared_processors())
    )
    return handler


def _file_handler(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(
        ProcessorFormatter(processor=JSONRenderer(), foreign_pre_chain=_shared_processors())
    )
    return handler


def configure_logging(
    log_level: str = "INFO",
    log_dir: Path | None = None,
    log_file: Path | None = None,
    verbose: bool = False,
    enable_console_noise_filter: bool = True,
) -> None:
    """Configure structlog with a console handler and an optional JSON file.

    The engine is usually embedded in a host application, so no file is
    written unless ``log_dir`` or ``log_file`` is given. Calling this again
    replaces the handlers installed by the previous call.

    Args:
        log_level: Minimum console level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for ``notecard-recognition.log``
        log_file: Explicit log file path (wins over log_dir)
        verbose: Show every event on the console, not only lifecycle events
        enable_console_noise_filter: Rate-limit per-pattern events on the console
    """
    global _configured

    structlog.configure(
        processors=[*_shared_processors(), ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in _handlers:
        root.removeHandler(handler)
        handler.close()
    _handlers.clear()

    _handlers.append(
        _console_handler(_level_number(log_level), verbose, enable_console_noise_filter)
    )
    log_path = log_file or (log_dir / LOG_FILE_NAME if log_dir else None)
    if log_path is not None:
        _handlers.append(_file_handler(log_path))
    for handler in _handlers:
        root.addHandler(handler)

    _configured = True
    get_logger(__name__).debug(
        "logging_configured",
        console_level=log_level,
        log_file=str(log_path) if log_path else None,
        verbose=verbose,
        console_noise_filter=enable_console_noise_filter,
    )


def get_logger(name: str) -> Any:
    """Structlog logger for ``name``, configuring defaults on first use."""
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)
