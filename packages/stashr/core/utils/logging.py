"""Logging setup for programs that call stashr.

The library itself only creates module loggers; configuring handlers is left
to the calling program, which can use ``configure_logging`` to get the
runner-friendly defaults: level from ``RUNNER_DEBUG``, optional JSON lines,
and credential redaction.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from stashr.core.logging.sanitize import sanitize_string

# Attributes every LogRecord carries; anything else arrived through ``extra=``
_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

_TRANSPORT_LOGGERS = ("httpx", "httpcore", "azure", "asyncio")

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class StructuredJSONFormatter(logging.Formatter):
    """Formatter that outputs one JSON object per record.

    Format:
    {
        "level": "INFO",
        "message": "Cache restored successfully",
        "timestamp": "2026-01-29T12:00:00+00:00",
        "context": {"logger_name": "stashr.core.cache.cache", "line": 42, ...extra fields...}
    }

    The message, exception text and stack trace pass through
    ``sanitize_string``; bearer tokens and SAS signatures never reach the output.
    """

    def format(self, record: logging.LogRecord) -> str:
        context: dict[str, Any] = {
            "logger_name": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            error_type, error, _ = record.exc_info
            context["error_type"] = error_type.__name__ if error_type else None
            context["error_message"] = sanitize_string(str(error)) if error else None
            context["stack_trace"] = sanitize_string(
                record.exc_text or self.formatException(record.exc_info)
            )

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                context[key] = value

        log_entry = {
            "level": record.levelname,
            "message": sanitize_string(record.getMessage()),
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "context": context,
        }
        return json.dumps(log_entry, default=str)


def runner_log_level(environ: Mapping[str, str] | None = None) -> str:
    """Return ``DEBUG`` when the runner's step debugging is on, ``INFO`` otherwise."""
    env = os.environ if environ is None else environ
    return "DEBUG" if env.get("RUNNER_DEBUG") == "1" else "INFO"


def configure_logging(
    level: str | None = None,
    format_string: str | None = None,
    filename: str | None = None,
    structured: bool = False,
) -> None:
    """Configure root logging for a program using stashr.

    Can be called again to reconfigure (uses ``force=True``). HTTP and blob
    SDK loggers are held at ERROR; request traces come from stashr's own
    debug logging, which redacts credentials.

    Args:
        level: Level name, case-insensitive (default: from ``RUNNER_DEBUG``)
        format_string: Text format (ignored when ``structured``)
        filename: Log file path (stdout if None)
        structured: Emit JSON lines via ``StructuredJSONFormatter``

    Examples:
        >>> configure_logging()
        >>> configure_logging(level="DEBUG", structured=True, filename="cache.jsonl")
    """
    handler: logging.Handler
    if filename:
        handler = logging.FileHandler(filename)
    else:
        handler = logging.StreamHandler(sys.stdout)

    if structured:
        handler.setFormatter(StructuredJSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT))

    logging.basicConfig(
        level=getattr(logging, (level or runner_log_level()).upper()),
        handlers=[handler],
        force=True,
    )

    for name in _TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(logging.ERROR)
