"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Structured logging for unillm.

The library only creates loggers under the `unillm` namespace and never
configures handlers on import. Applications opt in with `setup_logging()`.

Usage:
    from unillm.logging import get_logger
    logger = get_logger("clients.openai")
    logger.info("Completion finished", extra={"provider": "openai", "attempt": 0})
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone

ROOT_LOGGER = "unillm"

# Attributes present on every LogRecord; anything else came in through `extra=`.
_RESERVED = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    """Formats log records as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, val in record.__dict__.items():
            if key in _RESERVED or key.startswith("_") or val is None:
                continue
            entry[key] = val

        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable format for development."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def setup_logging(level: str | None = None, fmt: str | None = None) -> logging.Logger:
    """Configure the `unillm` logger. Call once at app startup."""
    level = (level or os.getenv("UNILLM_LOG_LEVEL", "INFO")).upper()
    fmt = (fmt or os.getenv("UNILLM_LOG_FORMAT", "json")).lower()

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(getattr(logging, level, logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root.addHandler(handler)
    root.propagate = False

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return root


def get_logger(name: str) -> logging.Logger:
    """Get a named logger under the unillm namespace."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
