"""FastAPI application and server runner for the control API.

The API is a thin front end over one InterceptionRegistry: every route
delegates to a registry operation, and domain errors are mapped to
structured HTTP responses by the handlers in caddy_tap.api.errors.
"""

from __future__ import annotations

__all__ = [
    "build_registry",
    "create_api_app",
    "run_api_server",
]

import logging

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from caddy_tap import __version__
from caddy_tap.api.errors import (
    APIError,
    api_error_handler,
    domain_error_handler,
    http_exception_handler,
    validation_error_handler,
)
from caddy_tap.api.routes import proxies, services
from caddy_tap.caddy.client import AdminApiClient
from caddy_tap.config import AppConfig
from caddy_tap.exceptions import CaddyTapError
from caddy_tap.log_config import SystemEvent, log_event
from caddy_tap.mitm.pool import ProxyPool
from caddy_tap.mitm.registry import InterceptionRegistry


def create_api_app(registry: InterceptionRegistry) -> FastAPI:
    """Create the FastAPI application with all routes.

    Args:
        registry: Registry the routes operate on.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="caddy-tap",
        description="Toggle mitmproxy interception of Caddy-routed services",
        version=__version__,
    )

    app.state.registry = registry

    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(CaddyTapError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    app.include_router(services.router, prefix="/api/services", tags=["services"])
    app.include_router(proxies.router, prefix="/api/proxies", tags=["proxies"])

    return app


def build_registry(config: AppConfig, client: AdminApiClient) -> InterceptionRegistry:
    """Create a registry with the configured pool and services registered."""
    registry = InterceptionRegistry(client, ProxyPool(config.proxies))
    for service in config.services:
        registry.register(service)
    return registry


async def run_api_server(config: AppConfig, port: int | None = None) -> None:
    """Serve the control API on 127.0.0.1 until interrupted.

    Args:
        config: Loaded configuration (admin endpoint, pool, services).
        port: Listen port (default: ``config.api_port``).
    """
    effective_port = port if port is not None else config.api_port

    # Suppress uvicorn's logging (we use our own)
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(logger_name).setLevel(logging.CRITICAL)

    async with AdminApiClient(config.admin.url, config.admin.timeout_seconds) as client:
        registry = build_registry(config, client)
        app = create_api_app(registry)

        log_event(
            logging.INFO,
            SystemEvent(
                event="api_starting",
                message=f"Control API listening on http://127.0.0.1:{effective_port}",
                details={
                    "port": effective_port,
                    "admin_url": config.admin.url,
                    "services": registry.get_registered_services(),
                },
            ),
        )

        server = uvicorn.Server(
            uvicorn.Config(app, host="127.0.0.1", port=effective_port, log_config=None)
        )
        await server.serve()

    log_event(logging.INFO, SystemEvent(event="api_stopped", message="Control API stopped"))
