"""Config command group: path, show, init."""

from __future__ import annotations

__all__ = ["config"]

import json
import sys

import click

from caddy_tap.config import (
    AppConfig,
    get_config_path,
    get_system_log_path,
    load_config,
    save_config,
)
from caddy_tap.constants import CONFIG_PATH_ENV_VAR

from ..styling import style_dim, style_error, style_header, style_success


@click.group()
def config() -> None:
    """Configuration management commands.

    \b
    The config file location can be overridden with $CADDY_TAP_CONFIG.
    """


@config.command("path")
def config_path() -> None:
    """Print the config file path."""
    click.echo(str(get_config_path()))


@config.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
def config_init(force: bool) -> None:
    """Write a default config file to edit."""
    path = get_config_path()
    if path.exists() and not force:
        click.echo(style_error(f"Config already exists: {path} (use --force to overwrite)"), err=True)
        sys.exit(1)

    try:
        written = save_config(AppConfig())
    except OSError as e:
        click.echo(style_error(f"Failed to write {path}: {e}"), err=True)
        sys.exit(1)
    click.echo(style_success(f"Config written to {written}"))


@config.command("show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def config_show(as_json: bool) -> None:
    """Display the effective configuration (defaults where the file is silent)."""
    path = get_config_path()
    loaded = load_config()

    if as_json:
        data = loaded.model_dump(mode="json")
        data["_computed"] = {
            "config_file": str(path),
            "system_log": str(get_system_log_path(loaded)),
        }
        click.echo(json.dumps(data, indent=2))
        return

    source = str(path) if path.exists() else f"{path} (not found, using defaults)"
    click.echo(f"\nConfig: {source}")
    click.echo(style_dim(f"Override with ${CONFIG_PATH_ENV_VAR}"))
    click.echo()

    click.echo(style_header("Caddy"))
    click.echo(f"  admin url: {loaded.admin.url}")
    click.echo(f"  timeout: {loaded.admin.timeout_seconds}s")
    click.echo()

    click.echo(style_header("Proxies"))
    for name, instance in loaded.proxies.items():
        web = f", web {instance.web_url}" if instance.web_url else ""
        click.echo(f"  {name}: {instance.dial}{web}")
    click.echo()

    click.echo(style_header("Services"))
    if not loaded.services:
        click.echo(style_dim("  No services configured."))
    for service in loaded.services:
        selector = f"host {service.host}" if service.is_host_based else f"path {service.path_prefix}"
        click.echo(f"  {service.id}: {selector} -> {service.backend.dial} (server {service.server_id})")
    click.echo()

    click.echo(style_header("Other"))
    click.echo(f"  api_port: {loaded.api_port}")
    click.echo(f"  system log: {get_system_log_path(loaded)}")
