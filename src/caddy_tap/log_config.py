"""Logging configuration for caddy-tap.

Owns the handlers for the ``caddy-tap`` logger. Modules get their own
child logger via:
    _logger = logging.getLogger(f"{APP_NAME}.mitm.registry")

Child loggers propagate to ``caddy-tap``, so configuring it once covers
the whole package. Until configure_logging() runs, records go to stderr.
"""

from __future__ import annotations

__all__ = [
    "SystemEvent",
    "configure_logging",
    "log_event",
]

import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from caddy_tap.config import AppConfig, get_system_log_path
from caddy_tap.constants import APP_NAME
from caddy_tap.utils.file_helpers import set_secure_permissions
from caddy_tap.utils.logging.iso_formatter import ISO8601Formatter

_logger = logging.getLogger(APP_NAME)
_logger.setLevel(logging.INFO)
_logger.propagate = False

_configured: bool = False


class SystemEvent(BaseModel):
    """One system log entry (<log_dir>/caddy-tap/system.jsonl).

    Note: 'time' is None when created, populated by ISO8601Formatter during logging.
    """

    time: Optional[str] = Field(None, description="ISO 8601 timestamp (UTC), added by formatter")
    event: Optional[str] = Field(None, description="Machine-friendly event name, e.g. 'mitmweb_started'")
    message: str = Field(description="Human-readable log message")

    service_id: Optional[str] = None
    proxy_name: Optional[str] = None
    pid: Optional[int] = None

    error_type: Optional[str] = None
    error_message: Optional[str] = None

    details: Optional[dict[str, Any]] = None

    model_config = {"extra": "allow"}


class _ConsoleFormatter(logging.Formatter):
    """One line per record: ``LEVEL: message`` (falls back to the event name)."""

    def format(self, record: logging.LogRecord) -> str:
        text = record.getMessage()
        if isinstance(record.msg, dict):
            text = record.msg.get("message") or record.msg.get("event", "")
        return f"{record.levelname}: {text}"


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(_ConsoleFormatter())
    return handler


def _jsonl_handler(log_path: Path) -> logging.Handler:
    log_path.parent.mkdir(parents=True, exist_ok=True)
    set_secure_permissions(log_path.parent, is_directory=True)
    handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    handler.setLevel(logging.WARNING)
    handler.setFormatter(ISO8601Formatter())
    return handler


if not _logger.handlers:
    _logger.addHandler(_console_handler(logging.WARNING))


def configure_logging(config: AppConfig, *, verbose: bool = False) -> None:
    """Replace the default stderr handler with the configured pair.

    - stderr: INFO+ when ``verbose`` (long-running ``serve``), WARNING+ otherwise
    - <log_dir>/caddy-tap/system.jsonl: WARNING+ only

    Only the first successful call takes effect. If the log file can not
    be opened, stderr logging still works and a later call retries.

    Args:
        config: App configuration with log directory.
        verbose: Show INFO records on stderr.
    """
    global _configured

    if _configured:
        return

    for handler in _logger.handlers:
        handler.close()
    _logger.handlers.clear()
    _logger.addHandler(_console_handler(logging.INFO if verbose else logging.WARNING))

    log_path = get_system_log_path(config)
    try:
        _logger.addHandler(_jsonl_handler(log_path))
    except OSError as e:
        log_event(
            logging.WARNING,
            SystemEvent(
                event="file_logging_failed",
                message=f"Logging to stderr only, cannot open {log_path}",
                error_type=type(e).__name__,
                error_message=str(e),
                details={"log_path": str(log_path)},
            ),
        )
        return

    _configured = True


def log_event(level: int, event: SystemEvent, logger: logging.Logger | None = None) -> None:
    """Emit ``event`` as a dict message, leaving out unset fields.

    ``time`` stays unset here; ISO8601Formatter stamps it on the way out.

    Args:
        level: Logging level, e.g. logging.WARNING.
        event: The event to log.
        logger: Child logger to emit on (default: the ``caddy-tap`` logger).
    """
    (logger or _logger).log(level, event.model_dump(exclude_none=True))
