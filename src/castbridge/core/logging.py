"""
CastBridge Logging — console lines tagged with cast context, or JSON lines.

Most log calls concern one source, stream, or store, and pass it through
extra={...}. Both formatters surface those fields: the console formatter as
a dim "source=12 stream=ab12" suffix, the JSON formatter as top-level keys.

    logger.info("Registered session", extra={"source_id": 12, "stream_id": "ab12"})

Env vars (read by setup_logging when no argument overrides them):
    CASTBRIDGE_LOG_LEVEL  — DEBUG / INFO / WARNING / ERROR (default: INFO)
    CASTBRIDGE_LOG_COLOR  — true / false / auto (default: auto, TTY detection)
    CASTBRIDGE_LOG_FORMAT — text / json (default: text)
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import IO

# Structured extras, in display order, with their short console labels
CONTEXT_FIELDS = {
    "source_id": "source",
    "stream_id": "stream",
    "store": "store",
    "peer_url": "peer",
    "state": "state",
}

_LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[1;31m",
}
_DIM = "\033[2m"
_RESET = "\033[0m"

# Loggers that flood the console during discovery scans and storage writes
NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "httpcore.http11",
    "httpcore.connection",
    "aiosqlite",
    "uvicorn.access",
)


def context_fields(record: logging.LogRecord) -> dict[str, object]:
    """The structured extras present on a record, in CONTEXT_FIELDS order."""
    return {
        key: getattr(record, key)
        for key in CONTEXT_FIELDS
        if getattr(record, key, None) is not None
    }


class ColorFormatter(logging.Formatter):
    """Console formatter: time, logger, level, message, cast context."""

    def __init__(self, use_color: bool = True):
        super().__init__(datefmt="%H:%M:%S")
        self.use_color = use_color

    def _paint(self, text: str, color: str) -> str:
        return f"{color}{text}{_RESET}" if self.use_color else text

    def format(self, record: logging.LogRecord) -> str:
        level = self._paint(record.levelname, _LEVEL_COLORS.get(record.levelname, ""))
        name = self._paint(record.name, _DIM)
        line = (
            f"{self.formatTime(record, self.datefmt)} [{name}] {level}: "
            f"{record.getMessage()}"
        )

        fields = context_fields(record)
        if fields:
            suffix = " ".join(
                f"{CONTEXT_FIELDS[key]}={value}" for key, value in fields.items()
            )
            line = f"{line} {self._paint(suffix, _DIM)}"

        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class StructuredFormatter(logging.Formatter):
    """One JSON object per line; context fields at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update(context_fields(record))
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _use_color(setting: str, stream: IO[str]) -> bool:
    if setting == "true":
        return True
    if setting == "false":
        return False
    return hasattr(stream, "isatty") and stream.isatty()


def setup_logging(
    level: str | None = None,
    log_format: str | None = None,
    color: str | None = None,
    stream: IO[str] | None = None,
) -> logging.Handler:
    """Configure the root logger for the whole process. Call once at startup.

    Arguments override the matching CASTBRIDGE_LOG_* env vars. Returns the
    installed handler.
    """
    level_name = (level or os.getenv("CASTBRIDGE_LOG_LEVEL", "INFO")).upper()
    numeric_level = getattr(logging, level_name, logging.INFO)
    log_format = (log_format or os.getenv("CASTBRIDGE_LOG_FORMAT", "text")).lower()
    color = (color or os.getenv("CASTBRIDGE_LOG_COLOR", "auto")).lower()
    stream = stream or sys.stdout

    if log_format == "json":
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = ColorFormatter(use_color=_use_color(color, stream))

    handler = logging.StreamHandler(stream)
    handler.setLevel(numeric_level)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()
    root.addHandler(handler)

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(numeric_level)

    logging.getLogger("castbridge").debug(
        "Logging configured (level=%s, format=%s)", level_name, log_format
    )
    return handler
