"""HTTP control API over the interception registry."""

from caddy_tap.api.server import build_registry, create_api_app, run_api_server

__all__ = [
    "build_registry",
    "create_api_app",
    "run_api_server",
]
