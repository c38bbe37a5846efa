"""Main CLI entry point for caddy-tap.

Defines the CLI group and registers all subcommands.

Commands:
    status       - Show how Caddy routes each configured service
    enable       - Route a service through mitmproxy
    disable      - Restore direct routing for a service
    enable-all   - Route every configured service through mitmproxy
    disable-all  - Restore direct routing for every configured service
    serve        - Serve the HTTP control API
    config       - Configuration management (path, show, init)
    mitmweb      - Local mitmweb management (start, stop, status, install, flows, clear)

Subcommand help:
    caddy-tap COMMAND -h         Show help for a specific command
"""

from __future__ import annotations

__all__ = ["cli"]

import sys

import click

from caddy_tap import __version__

from .commands.config import config
from .commands.mitmweb import mitmweb
from .commands.serve import serve
from .commands.services import disable, disable_all, enable, enable_all, status


class ReorderedGroup(click.Group):
    """Group that shows a quick start after the commands section."""

    def format_epilog(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        formatter.write(
            """
Quick Start:
  caddy-tap config init            Write a default config, then add services
  caddy-tap mitmweb start          Start a local mitmweb
  caddy-tap enable <service>       Send the service's traffic through mitmproxy
  caddy-tap mitmweb flows          Inspect what was captured
  caddy-tap disable <service>      Back to direct routing
"""
        )


@click.group(
    cls=ReorderedGroup,
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """caddy-tap: Toggle mitmproxy interception of Caddy routes."""
    if version:
        click.echo(f"caddy-tap {__version__}")
        sys.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


cli.add_command(status)
cli.add_command(enable)
cli.add_command(disable)
cli.add_command(enable_all)
cli.add_command(disable_all)
cli.add_command(serve)
cli.add_command(config)
cli.add_command(mitmweb)


def main() -> None:
    """CLI entry point."""
    cli()
