"""Logging configuration for the Mirako CLI.

Log records go to stderr (or a file), never stdout: stdout carries command
output and the in-place progress line.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any, TextIO

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")

# Attributes every LogRecord has; anything else came from ``extra=``
_STANDARD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)


class StructuredJSONFormatter(logging.Formatter):
    """Format records as one JSON object per line.

    Shape::

        {"level": "DEBUG", "message": "HTTP request",
         "timestamp": "2026-01-29T12:00:00+00:00",
         "context": {"logger_name": "...", "line": 42, "method": "GET", ...}}

    Fields passed through ``extra=`` (the HTTP layer logs method, url,
    status_code and elapsed_ms this way) are merged into ``context``.
    """

    def format(self, record: logging.LogRecord) -> str:
        context: dict[str, Any] = {
            "logger_name": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            context["error_type"] = exc_type.__name__ if exc_type else None
            context["error_message"] = str(exc_value) if exc_value else None
            context["stack_trace"] = record.exc_text or self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                context[key] = value

        log_entry = {
            "level": record.levelname,
            "message": record.getMessage(),
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "context": context,
        }
        return json.dumps(log_entry, default=str)


def _suppress_noisy_loggers() -> None:
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.ERROR)


def configure_logging(
    level: str = "WARNING",
    format_string: str | None = None,
    filename: str | None = None,
    structured: bool = False,
    stream: TextIO | None = None,
) -> None:
    """Configure application-wide logging.

    Safe to call more than once; each call replaces the previous handlers.

    Args:
        level: Logging level name (case-insensitive)
        format_string: Text format; ignored when ``structured`` is True
        filename: Log to this file instead of a stream
        structured: Emit JSON lines via StructuredJSONFormatter
        stream: Stream for console logging (defaults to stderr)

    Examples:
        >>> configure_logging()                      # CLI default
        >>> configure_logging(level="DEBUG")         # --debug
        >>> configure_logging(level="DEBUG", structured=True, filename="mirako.jsonl")
    """
    handler: logging.Handler
    if filename:
        handler = logging.FileHandler(filename)
    else:
        handler = logging.StreamHandler(stream if stream is not None else sys.stderr)

    formatter: logging.Formatter
    if structured:
        formatter = StructuredJSONFormatter()
    else:
        formatter = logging.Formatter(format_string or DEFAULT_FORMAT)
    handler.setFormatter(formatter)

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        handlers=[handler],
        force=True,
    )
    _suppress_noisy_loggers()


def get_logger(name: str, **kwargs: Any) -> logging.Logger | logging.LoggerAdapter:
    """Return a logger, wrapped in a LoggerAdapter when context kwargs are given.

    Example:
        >>> log = get_logger(__name__, task_id="t_123")
        >>> log.info("polling")   # record carries task_id
    """
    logger = logging.getLogger(name)
    if kwargs:
        return logging.LoggerAdapter(logger, kwargs)
    return logger
