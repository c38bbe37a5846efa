"""Serve command: run the HTTP control API in the foreground."""

from __future__ import annotations

__all__ = ["serve"]

import click

from caddy_tap.api.server import run_api_server
from caddy_tap.constants import DEFAULT_API_PORT

from ..runtime import load_cli_config, run_async
from ..styling import style_dim, style_label


@click.command()
@click.option(
    "--port",
    "-p",
    type=click.IntRange(1024, 65535),
    default=None,
    help=f"HTTP port (default: {DEFAULT_API_PORT} or config value)",
)
def serve(port: int | None) -> None:
    """Serve the control API on 127.0.0.1.

    Services from the config file are registered at startup with
    interception disabled. Press Ctrl+C to stop.
    """
    config = load_cli_config(verbose=True)
    effective_port = port if port is not None else config.api_port

    click.echo(style_label("Control API") + f" http://127.0.0.1:{effective_port}/api/services")
    click.echo(style_dim(f"Caddy admin API: {config.admin.url}"))

    try:
        run_async(run_api_server(config, effective_port))
    except KeyboardInterrupt:
        click.echo()
