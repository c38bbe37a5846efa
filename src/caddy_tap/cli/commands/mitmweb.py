"""mitmweb command group: start, stop, status, install, flows, clear."""

from __future__ import annotations

__all__ = ["mitmweb"]

import json
import sys
from typing import Any

import click

from caddy_tap.config import load_config
from caddy_tap.log_config import configure_logging
from caddy_tap.mitm.flows import MitmwebClient
from caddy_tap.mitm.supervisor import (
    MitmwebSupervisor,
    auto_install_mitmproxy,
    get_mitmproxy_version,
    is_mitmproxy_installed,
)

from ..runtime import run_async
from ..styling import style_dim, style_error, style_label, style_success, style_warning


def _supervisor(open_browser: bool = False) -> MitmwebSupervisor:
    config = load_config()
    configure_logging(config)
    options = config.mitmweb
    if open_browser:
        options = options.model_copy(update={"open_browser": True})
    return MitmwebSupervisor(options)


@click.group()
def mitmweb() -> None:
    """Run a local mitmweb for inspecting intercepted traffic."""


@mitmweb.command("start")
@click.option("--open-browser", is_flag=True, help="Open the web UI once ready")
def start(open_browser: bool) -> None:
    """Start mitmweb in the background."""
    supervisor = _supervisor(open_browser)
    status = run_async(supervisor.start())
    click.echo(style_success(f"mitmweb started (pid: {status.pid})"))
    click.echo(f"  Web UI: {status.web_url}")
    click.echo(f"  Proxy:  {status.proxy_url}")


@mitmweb.command("stop")
def stop() -> None:
    """Stop the mitmweb started by 'mitmweb start'."""
    if run_async(_supervisor().stop()):
        click.echo(style_success("mitmweb stopped"))
    else:
        click.echo(style_dim("mitmweb is not running."))


@mitmweb.command("status")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def status(as_json: bool) -> None:
    """Show whether mitmweb is running."""
    current = _supervisor().status()
    if as_json:
        click.echo(json.dumps(current.model_dump(mode="json"), indent=2))
        return

    if not current.running:
        click.echo(style_dim("mitmweb is not running."))
        return
    click.echo(style_label("mitmweb") + f" running (pid: {current.pid})")
    click.echo(f"  Web UI: {current.web_url}")
    click.echo(f"  Proxy:  {current.proxy_url}")


@mitmweb.command("install")
def install() -> None:
    """Install mitmproxy with pipx (or pip --user)."""
    if is_mitmproxy_installed():
        version = get_mitmproxy_version() or "unknown version"
        click.echo(style_success(f"mitmproxy already installed ({version})"))
        return

    click.echo("Installing mitmproxy...")
    if not auto_install_mitmproxy():
        click.echo(style_error("Failed to install mitmproxy"), err=True)
        sys.exit(1)
    click.echo(style_success("mitmproxy installed"))
    if not is_mitmproxy_installed():
        click.echo(style_warning("mitmweb is not on PATH yet; you may need to restart your shell"))


@mitmweb.command("flows")
@click.option("--path", default=None, help="Only flows with this exact request path")
@click.option("--host", default=None, help="Only flows for this request host")
@click.option("--json", "as_json", is_flag=True, help="Output raw flows as JSON")
def flows(path: str | None, host: str | None, as_json: bool) -> None:
    """List flows captured by mitmweb."""
    options = load_config().mitmweb

    async def fetch() -> list[dict[str, Any]]:
        async with MitmwebClient(options.web_url) as client:
            return await client.find_flows(path, host=host)

    captured = run_async(fetch())
    if as_json:
        click.echo(json.dumps(captured, indent=2))
        return

    if not captured:
        click.echo(style_dim("No matching flows."))
        return
    for flow in captured:
        request = flow.get("request") or {}
        response = flow.get("response") or {}
        code = response.get("status_code", "-")
        click.echo(f"  {request.get('method', '?'):<7} {code!s:<4} {request.get('host', '')}{request.get('path', '')}")


@mitmweb.command("clear")
def clear() -> None:
    """Delete all flows captured by mitmweb."""
    options = load_config().mitmweb

    async def do_clear() -> None:
        async with MitmwebClient(options.web_url) as client:
            await client.clear_flows()

    run_async(do_clear())
    click.echo(style_success("Flows cleared"))
