"""Interception toggle commands.

- status: Show how Caddy currently routes each configured service
- enable / disable: Toggle one service
- enable-all / disable-all: Toggle every configured service
"""

from __future__ import annotations

__all__ = [
    "disable",
    "disable_all",
    "enable",
    "enable_all",
    "status",
]

import json
import sys

import click

from caddy_tap.caddy.client import AdminApiClient
from caddy_tap.config import AppConfig
from caddy_tap.exceptions import CaddyTapError
from caddy_tap.mitm.inspect import RemoteRouteState, inspect_services
from caddy_tap.mitm.pool import DEFAULT_PROXY_NAME, ProxyPool
from caddy_tap.mitm.registry import InterceptionRegistry

from ..runtime import load_cli_config, run_async, with_registry
from ..styling import style_dim, style_error, style_header, style_mode, style_success, style_warning


async def _inspect(config: AppConfig) -> list[RemoteRouteState]:
    async with AdminApiClient(config.admin.url, config.admin.timeout_seconds) as client:
        return await inspect_services(client, ProxyPool(config.proxies), config.services)


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def status(as_json: bool) -> None:
    """Show how Caddy currently routes each configured service."""
    config = load_cli_config()
    states = run_async(_inspect(config))

    if as_json:
        click.echo(json.dumps([s.model_dump(mode="json") for s in states], indent=2))
        return

    if not states:
        click.echo(style_dim("No services configured."))
        return

    click.echo(style_header("Services"))
    by_id = {s.id: s for s in config.services}
    for state in states:
        registration = by_id[state.service_id]
        selector = f"host {registration.host}" if registration.is_host_based else f"path {registration.path_prefix}"
        line = f"  {state.service_id:<20} {style_mode(state.mode, 12)} {selector}"
        if state.mode == "intercepted":
            line += f"  via {state.proxy_name} ({state.dial})"
        elif state.mode == "unknown" and state.dial:
            line += f"  dials {state.dial}"
        click.echo(line)


@click.command()
@click.argument("service_id")
@click.option("--proxy", "-p", default=None, help=f"Proxy name from config (default: {DEFAULT_PROXY_NAME})")
def enable(service_id: str, proxy: str | None) -> None:
    """Route SERVICE_ID through a mitmproxy instance."""
    config = load_cli_config()
    proxy_name = DEFAULT_PROXY_NAME if proxy is None else proxy

    async def action(registry: InterceptionRegistry) -> str:
        await registry.enable(service_id, proxy_name)
        return registry.pool.get(proxy_name).dial

    dial = run_async(with_registry(config, action))
    click.echo(style_success(f"Interception enabled for {service_id} via {proxy_name} ({dial})"))


@click.command()
@click.argument("service_id")
def disable(service_id: str) -> None:
    """Restore direct routing for SERVICE_ID."""
    config = load_cli_config()

    async def action(registry: InterceptionRegistry) -> None:
        await registry.disable(service_id)

    run_async(with_registry(config, action))
    click.echo(style_success(f"Interception disabled for {service_id}"))


def _report_batch(verb: str, total: int, failures: dict[str, CaddyTapError]) -> None:
    for service_id, error in failures.items():
        click.echo(style_error(f"{service_id}: {error}"), err=True)

    succeeded = total - len(failures)
    if failures:
        click.echo(style_warning(f"{verb} {succeeded} of {total} services"))
        sys.exit(1)
    click.echo(style_success(f"{verb} {total} services"))


@click.command("enable-all")
@click.option("--proxy", "-p", default=None, help=f"Proxy name from config (default: {DEFAULT_PROXY_NAME})")
def enable_all(proxy: str | None) -> None:
    """Route every configured service through a mitmproxy instance."""
    config = load_cli_config()

    async def action(registry: InterceptionRegistry) -> dict[str, CaddyTapError]:
        return await registry.enable_all(proxy)

    failures = run_async(with_registry(config, action))
    _report_batch("Enabled interception for", len(config.services), failures)


@click.command("disable-all")
def disable_all() -> None:
    """Restore direct routing for every configured service."""
    config = load_cli_config()

    async def action(registry: InterceptionRegistry) -> dict[str, CaddyTapError]:
        return await registry.disable_all()

    failures = run_async(with_registry(config, action))
    _report_batch("Disabled interception for", len(config.services), failures)
