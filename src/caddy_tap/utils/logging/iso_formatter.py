"""JSONL formatter for system.jsonl."""

from __future__ import annotations

__all__ = ["ISO8601Formatter"]

import json
import logging
from datetime import datetime, timezone
from typing import Any


def _utc_timestamp(created: float) -> str:
    """Millisecond UTC timestamp with a ``Z`` suffix, e.g. 2026-03-04T10:48:37.123Z."""
    moment = datetime.fromtimestamp(created, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ISO8601Formatter(logging.Formatter):
    """One JSON object per line, led by ``time`` and ``level``.

    Structured (dict) messages are merged in as-is; plain string messages
    become ``{"message": ...}``. A logged exception's traceback is kept
    under ``exception``. Values json can't encode (paths, exceptions) are
    written as their str().
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {"time": _utc_timestamp(record.created), "level": record.levelname}

        if isinstance(record.msg, dict):
            entry.update(record.msg)
        else:
            entry["message"] = record.getMessage()

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)
