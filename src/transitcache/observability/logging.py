"""Structured logging for the cache layer.

Every record emitted while a cache key or dataset is being resolved carries
that context, so one fetch can be followed through the engine, the store
and the facade.

Usage:
    from transitcache.observability.logging import configure_logging

    configure_logging(json_format=False, level="DEBUG")

    logger = logging.getLogger(__name__)
    with LogContext(dataset="live_buses", cache_key="live_buses"):
        logger.info("Refreshing")  # Includes dataset and cache_key
"""

from __future__ import annotations

import contextvars
import logging
import sys
from datetime import datetime, timezone
from typing import Any

import orjson

cache_key_var: contextvars.ContextVar[str] = contextvars.ContextVar("cache_key", default="")
dataset_var: contextvars.ContextVar[str] = contextvars.ContextVar("dataset", default="")

# Order here is the order fields appear in console output
_CONTEXT_VARS: dict[str, contextvars.ContextVar[str]] = {
    "dataset": dataset_var,
    "cache_key": cache_key_var,
}
_CONSOLE_LABELS = {"dataset": "dataset", "cache_key": "key"}

# Attributes every LogRecord has; anything else was passed via ``extra``
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


def current_context() -> dict[str, str]:
    """Cache context values set in the current task."""
    return {name: value for name, var in _CONTEXT_VARS.items() if (value := var.get())}


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Output format:
    {"timestamp": "2026-01-10T12:34:56.789000+00:00", "level": "INFO",
     "logger": "transitcache.cache.engine", "message": "Fetched live_buses",
     "module": "engine", "function": "_execute_fetch", "line": 42,
     "dataset": "live_buses", "cache_key": "live_buses"}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            **current_context(),
        }

        if record.exc_info and record.exc_info[0] is not None:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                log_data[key] = value

        return orjson.dumps(log_data, default=str).decode("utf-8")


class ConsoleFormatter(logging.Formatter):
    """Single-line human format for development.

    2026-01-10 12:34:56 | INFO     | transitcache.cache.engine | Fetched | key=live_buses
    """

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        level = f"{record.levelname:8}"
        if self.use_colors:
            level = f"{self.LEVEL_COLORS.get(record.levelno, '')}{level}{self.RESET}"

        parts = [timestamp, level, record.name, record.getMessage()]
        context = " ".join(
            f"{_CONSOLE_LABELS[name]}={value}" for name, value in current_context().items()
        )
        if context:
            parts.append(context)

        line = " | ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(
    json_format: bool = True,
    level: str = "INFO",
    use_colors: bool = True,
) -> None:
    """Install a single stderr handler on the root logger.

    Args:
        json_format: Emit JSON lines instead of the console format
        level: Root log level name
        use_colors: Color level names in console format when attached to a TTY
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else ConsoleFormatter(use_colors))

    root_logger = logging.getLogger()
    root_logger.handlers[:] = [handler]
    root_logger.setLevel(level.upper())

    # redis logs every connection at DEBUG
    for noisy in ("redis", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


class LogContext:
    """Attach cache context to every log record inside the block.

    Usage:
        with LogContext(dataset="bus_schedule", cache_key="bus_schedule_12"):
            logger.info("Loading schedule")

    Names other than ``dataset`` and ``cache_key`` are ignored.
    """

    def __init__(self, **kwargs: str) -> None:
        self.values = {name: value for name, value in kwargs.items() if name in _CONTEXT_VARS}
        self._tokens: list[tuple[contextvars.ContextVar[str], contextvars.Token[str]]] = []

    def __enter__(self) -> "LogContext":
        for name, value in self.values.items():
            var = _CONTEXT_VARS[name]
            self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, *args: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
