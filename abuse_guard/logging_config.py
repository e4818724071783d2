"""Logging setup for abuse-guard.

``setup_logging()`` is called once by ``create_app()`` and by the CLI. Library
modules never configure handlers themselves; they only do::

    import logging
    LOG = logging.getLogger(__name__)

so an embedding application that already owns the root logger can skip
``setup_logging()`` entirely and still receive block/unblock events.
"""
from __future__ import annotations

import json
import logging
import os
import sys
from typing import Optional

TEXT_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


class JsonFormatter(logging.Formatter):
    """One JSON object per line; the message is escaped by ``json.dumps``."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Configure the root logger.

    Args:
        level: Level name; falls back to the ``LOG_LEVEL`` env var (default INFO).
        log_format: ``json`` (default) for one JSON object per record, or
            ``text`` for local development. Falls back to ``LOG_FORMAT``.
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    resolved_level = getattr(logging, level_name, logging.INFO)

    fmt_name = (log_format or os.getenv("LOG_FORMAT", "json")).lower()
    if fmt_name == "text":
        formatter = logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT)
    else:
        formatter = JsonFormatter(datefmt=DATE_FORMAT)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    # Remove any existing handlers to avoid duplicates on reload
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(resolved_level)

    # The driver logs every heartbeat at DEBUG/INFO
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
