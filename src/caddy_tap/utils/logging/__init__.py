"""Logging utilities."""

from caddy_tap.utils.logging.iso_formatter import ISO8601Formatter

__all__ = ["ISO8601Formatter"]
