r"""
Logging configuration for the EventSub chat bot.

Provides a configurable logging setup using the colorlog library together
with structured error logging and aggregation.
"""

from __future__ import annotations

import atexit
import logging
import os
import sys
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import colorlog


class FseventsFilter(logging.Filter):
    """Filter to suppress noisy fsevents messages emitted by the config watcher."""

    def filter(self, record):
        return "fsevents" not in record.getMessage().lower()


@dataclass
class ErrorStats:
    """Counters for one error category."""

    total: int = 0
    recent: deque[float] = field(default_factory=deque)
    last_message: str = ""
    last_context: dict[str, Any] = field(default_factory=dict)

    def count_since(self, since: float) -> int:
        return sum(1 for ts in self.recent if ts >= since)


class ErrorAggregator:
    """Counts structured errors per category.

    Only the newest ``max_per_type`` timestamps are kept per category, which
    bounds the hourly rate used for alerting.
    """

    def __init__(self, max_per_type: int = 1000, clock: Callable[[], float] = time.time):
        self._max_per_type = max_per_type
        self._clock = clock
        self._lock = threading.Lock()
        self._stats: dict[str, ErrorStats] = {}

    def record_error(
        self, error_type: str, message: str, context: dict[str, Any] | None = None
    ) -> None:
        with self._lock:
            stats = self._stats.get(error_type)
            if stats is None:
                stats = self._stats[error_type] = ErrorStats(
                    recent=deque(maxlen=self._max_per_type)
                )
            stats.total += 1
            stats.recent.append(self._clock())
            stats.last_message = message
            stats.last_context = dict(context or {})

    def summary(self) -> dict[str, ErrorStats]:
        with self._lock:
            return dict(self._stats)

    def hourly_count(self, error_type: str) -> int:
        with self._lock:
            stats = self._stats.get(error_type)
            if stats is None:
                return 0
            return stats.count_since(self._clock() - 3600)

    def should_alert(self, error_type: str, threshold_per_hour: int = 10) -> bool:
        """Check if the category crossed the hourly alert threshold."""
        return self.hourly_count(error_type) > threshold_per_hour

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()

    def log_summary_report(self) -> None:
        summary = self.summary()
        if not summary:
            logging.info("No errors recorded in current session")
            return
        logging.warning("🚨 Error summary")
        for error_type, stats in sorted(summary.items()):
            logging.warning(
                f"  {error_type}: {stats.total} total, "
                f"{self.hourly_count(error_type)} in last hour, last: {stats.last_message}"
            )


error_aggregator = ErrorAggregator()


def log_structured_error(
    error_type: str,
    message: str,
    exception: BaseException | None = None,
    context: dict[str, Any] | None = None,
    level: int = logging.ERROR,
) -> None:
    """Log one error line and count it in the aggregator.

    The line reads ``[TYPE] message | Exception: Name: text | Context: k=v``;
    the exception and context parts are omitted when absent.

    Args:
        error_type: Category such as 'eventsub', 'command' or 'announcer'.
        message: What failed.
        exception: The exception that caused it, if any.
        context: Extra key/value pairs for debugging.
        level: Logging level (default: ERROR).
    """
    parts = [f"[{error_type.upper()}] {message}"]
    if exception is not None:
        parts.append(f"Exception: {type(exception).__name__}: {exception}")
    if context:
        parts.append("Context: " + " | ".join(f"{k}={v}" for k, v in context.items()))
    logging.log(level, " | ".join(parts))

    error_aggregator.record_error(error_type, message, context)
    if error_aggregator.should_alert(error_type):
        logging.critical(
            f"🚨 High error rate: {error_type} seen "
            f"{error_aggregator.hourly_count(error_type)} times in the last hour"
        )


_LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "magenta",
}


class LoggerConfigurator:
    """Configures the root logger with colorlog console output.

    Environment:
        DEBUG: 'true', '1' or 'yes' selects DEBUG, anything else INFO.
        EVENTBOT_LOG_FILE: optional path of a plain-text log file.
    """

    def __init__(self, config: dict[str, Any] | None = None):
        self.config = config or {}

    @staticmethod
    def _level() -> int:
        if os.environ.get("DEBUG", "").lower() in ("true", "1", "yes"):
            return logging.DEBUG
        return logging.INFO

    @staticmethod
    def _console_handler() -> logging.Handler:
        handler = colorlog.StreamHandler(sys.stderr)
        handler.setFormatter(
            colorlog.ColoredFormatter(
                "%(asctime)s %(log_color)s%(levelname)-8s%(reset)s %(message_log_color)s%(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
                log_colors=_LOG_COLORS,
                secondary_log_colors={"message": {"ERROR": "red", "CRITICAL": "magenta"}},
                reset=True,
            )
        )
        handler.addFilter(FseventsFilter())
        return handler

    def configure(self) -> None:
        level = self._level()
        handlers = [self._console_handler()]
        log_file = self.config.get("log_file") or os.environ.get("EVENTBOT_LOG_FILE")
        if log_file:
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
            )
            handlers.append(file_handler)

        logging.basicConfig(level=level, handlers=handlers, force=True)
        logging.getLogger().setLevel(level)
        for noisy in ("websockets", "watchdog", "aiohttp.access"):
            logging.getLogger(noisy).setLevel(max(level, logging.INFO))

        atexit.register(self._log_final_error_summary)

    @staticmethod
    def _log_final_error_summary() -> None:
        logging.info("📊 Final error summary before shutdown:")
        error_aggregator.log_summary_report()
