"""Caddy admin API client and route document builders."""

from caddy_tap.caddy.client import AdminApiClient, InsertPosition
from caddy_tap.caddy.models import Route
from caddy_tap.caddy.routes import (
    SecurityHeaders,
    build_basic_auth_handler,
    build_compression_handler,
    build_health_check_route,
    build_host_route,
    build_load_balancer_route,
    build_path_route,
    build_redirect_route,
    build_reverse_proxy_handler,
    build_rewrite_handler,
    build_security_headers_handler,
    build_service_route,
    mitm_route_id,
)

__all__ = [
    # client.py
    "AdminApiClient",
    "InsertPosition",
    # models.py
    "Route",
    # routes.py
    "SecurityHeaders",
    "build_basic_auth_handler",
    "build_compression_handler",
    "build_health_check_route",
    "build_host_route",
    "build_load_balancer_route",
    "build_path_route",
    "build_redirect_route",
    "build_reverse_proxy_handler",
    "build_rewrite_handler",
    "build_security_headers_handler",
    "build_service_route",
    "mitm_route_id",
]
