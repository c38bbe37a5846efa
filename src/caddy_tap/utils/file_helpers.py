"""Shared file utilities for caddy-tap.

- get_app_dir: OS-appropriate application directory
- set_secure_permissions: Owner-only file/directory permissions
- read_pid_file / write_pid_file: PID files for supervised processes
"""

from __future__ import annotations

__all__ = [
    "get_app_dir",
    "read_pid_file",
    "set_secure_permissions",
    "write_pid_file",
]

import sys
from pathlib import Path

import click

from caddy_tap.constants import APP_NAME


def get_app_dir() -> Path:
    """Get the OS-appropriate application directory.

    Uses click.get_app_dir() which returns:
    - macOS: ~/Library/Application Support/caddy-tap
    - Linux: ~/.config/caddy-tap (XDG compliant)
    - Windows: C:\\Users\\<user>\\AppData\\Roaming\\caddy-tap

    Returns:
        Path to the application directory.
    """
    return Path(click.get_app_dir(APP_NAME))


def set_secure_permissions(path: Path, *, is_directory: bool = False) -> None:
    """Restrict a file (0o600) or directory (0o700) to its owner.

    Does nothing on Windows. Permission errors are ignored since some
    filesystems don't support chmod.
    """
    if sys.platform == "win32":
        return

    try:
        path.chmod(0o700 if is_directory else 0o600)
    except OSError:
        pass


def read_pid_file(path: Path) -> int | None:
    """Read a PID from ``path``.

    Returns:
        The PID, or None if the file is missing or does not hold an integer.
    """
    try:
        return int(path.read_text(encoding="utf-8").strip())
    except (FileNotFoundError, ValueError):
        return None


def write_pid_file(path: Path, pid: int) -> None:
    """Write ``pid`` to ``path``, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(str(pid), encoding="utf-8")
