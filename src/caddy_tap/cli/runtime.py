"""Shared plumbing for CLI commands.

Each invocation builds a fresh registry from the config file, so CLI
toggles register the configured services and then push the route.
Caddy's route list, not the in-memory registry, is the durable record.
"""

from __future__ import annotations

__all__ = [
    "load_cli_config",
    "run_async",
    "with_registry",
]

import asyncio
import sys
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, TypeVar

import click

from caddy_tap.api.server import build_registry
from caddy_tap.caddy.client import AdminApiClient
from caddy_tap.config import AppConfig, load_config_strict
from caddy_tap.exceptions import CaddyTapError
from caddy_tap.log_config import configure_logging
from caddy_tap.mitm.registry import InterceptionRegistry

from .styling import style_error

T = TypeVar("T")


def load_cli_config(*, verbose: bool = False) -> AppConfig:
    """Load config strictly and configure logging, exiting 1 on error."""
    try:
        config = load_config_strict()
    except CaddyTapError as e:
        click.echo(style_error(str(e)), err=True)
        sys.exit(1)
    configure_logging(config, verbose=verbose)
    return config


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine, turning caddy-tap errors into exit code 1."""
    try:
        return asyncio.run(coro)
    except CaddyTapError as e:
        click.echo(style_error(str(e)), err=True)
        sys.exit(1)


async def with_registry(
    config: AppConfig,
    action: Callable[[InterceptionRegistry], Awaitable[T]],
) -> T:
    """Run ``action`` against a registry built from ``config``."""
    async with AdminApiClient(config.admin.url, config.admin.timeout_seconds) as client:
        registry = build_registry(config, client)
        return await action(registry)
