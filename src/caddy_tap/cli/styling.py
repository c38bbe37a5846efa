"""CLI output styling.

Visual language:
- Cyan bold for section headers and labels
- Green for success (checkmark) and intercepted services
- Red for errors (cross)
- Yellow for warnings
- Dim for neutral/empty state
"""

from __future__ import annotations

__all__ = [
    "style_dim",
    "style_error",
    "style_header",
    "style_label",
    "style_mode",
    "style_success",
    "style_warning",
]

import click


def style_header(title: str) -> str:
    """Return "--- Title ---" in cyan bold."""
    return click.style(f"--- {title} ---", fg="cyan", bold=True)


def style_label(label: str) -> str:
    return click.style(f"{label}:", fg="cyan", bold=True)


def style_success(message: str) -> str:
    return click.style(f"✓ {message}", fg="green")


def style_error(message: str) -> str:
    return click.style(f"✗ {message}", fg="red")


def style_warning(message: str) -> str:
    return click.style(f"Warning: {message}", fg="yellow", bold=True)


def style_dim(message: str) -> str:
    return click.style(message, dim=True)


_MODE_COLORS = {
    "intercepted": "green",
    "direct": "blue",
    "absent": None,
    "unknown": "yellow",
}


def style_mode(mode: str, width: int = 0) -> str:
    """Color a route mode (intercepted/direct/absent/unknown), padded to ``width``."""
    color = _MODE_COLORS.get(mode)
    if color is None:
        return click.style(mode.ljust(width), dim=True)
    return click.style(mode.ljust(width), fg=color)
