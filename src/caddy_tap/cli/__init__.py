"""Command-line interface for caddy-tap.

Provides commands for toggling interception, serving the control API,
managing configuration, and running a local mitmweb.
"""

from .main import cli, main

__all__ = ["cli", "main"]
