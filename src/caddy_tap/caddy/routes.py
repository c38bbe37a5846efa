"""Route builder functions for Caddy.

Pure functions: given identical inputs they always return identical route
documents, which is what makes ``AdminApiClient.add_route`` idempotent.

Usage:
    from caddy_tap.caddy.routes import build_service_route

    route = build_service_route(
        route_id="mitm_es",
        dial="elasticsearch:9200",
        path_prefix="/es",
    )
    await client.add_route("srv0", route)
"""

from __future__ import annotations

__all__ = [
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

import json
from typing import Literal

from pydantic import BaseModel, Field

from caddy_tap.caddy.models import (
    ActiveHealthCheck,
    AuthenticationHandler,
    BasicAuthAccount,
    EncodeHandler,
    Handler,
    HeaderOps,
    HeadersHandler,
    HealthChecks,
    HttpTransport,
    LoadBalancing,
    Matcher,
    ReverseProxyHandler,
    RewriteHandler,
    Route,
    StaticResponseHandler,
    TransportTLS,
    Upstream,
)
from caddy_tap.constants import DEFAULT_HSTS_MAX_AGE_SECONDS, HEALTH_CHECK_PATH, MITM_ROUTE_ID_PREFIX

LoadBalancingPolicy = Literal["round_robin", "least_conn", "ip_hash", "first", "random"]


class SecurityHeaders(BaseModel):
    """Security response header options.

    Attributes:
        frame_options: X-Frame-Options value.
        enable_hsts: Add Strict-Transport-Security.
        hsts_max_age: HSTS max-age in seconds.
    """

    frame_options: Literal["DENY", "SAMEORIGIN"] = "DENY"
    enable_hsts: bool = False
    hsts_max_age: int = Field(default=DEFAULT_HSTS_MAX_AGE_SECONDS, ge=0)


def mitm_route_id(service_id: str) -> str:
    """Return the stable route @id used for a registered service."""
    return f"{MITM_ROUTE_ID_PREFIX}{service_id}"


# =============================================================================
# Handlers
# =============================================================================


def build_reverse_proxy_handler(
    dial: str,
    *,
    tls: bool | None = None,
    tls_server_name: str | None = None,
    tls_insecure_skip_verify: bool = False,
    tls_trusted_ca_certs: str | None = None,
) -> ReverseProxyHandler:
    """Build a reverse proxy handler for one upstream.

    TLS to the upstream is enabled when ``dial`` starts with ``https://``
    (the scheme is stripped) or when ``tls`` is set explicitly.

    Args:
        dial: Upstream address, ``host:port`` or ``https://host:port``.
        tls: Force TLS on or off, overriding scheme detection.
        tls_server_name: SNI / certificate name to expect.
        tls_insecure_skip_verify: Skip upstream certificate verification.
        tls_trusted_ca_certs: Base64 DER CA certificate to trust.

    Returns:
        ReverseProxyHandler with an HTTP transport block.
    """
    is_https = dial.startswith("https://")
    clean_dial = dial.removeprefix("https://")
    use_tls = is_https if tls is None else tls

    transport = HttpTransport()
    if use_tls:
        transport = HttpTransport(
            tls=TransportTLS(
                server_name=tls_server_name or None,
                insecure_skip_verify=True if tls_insecure_skip_verify else None,
                ca=tls_trusted_ca_certs or None,
            )
        )

    return ReverseProxyHandler(upstreams=[Upstream(dial=clean_dial)], transport=transport)


def build_rewrite_handler(prefix: str) -> RewriteHandler:
    """Build a rewrite handler that strips a path prefix."""
    return RewriteHandler(strip_path_prefix=prefix)


def build_security_headers_handler(headers: SecurityHeaders) -> HeadersHandler:
    """Build a headers handler setting standard security response headers."""
    response_headers: dict[str, list[str]] = {
        "X-Frame-Options": [headers.frame_options],
        "X-Content-Type-Options": ["nosniff"],
        "X-XSS-Protection": ["1; mode=block"],
    }
    if headers.enable_hsts:
        response_headers["Strict-Transport-Security"] = [f"max-age={headers.hsts_max_age}; includeSubDomains"]

    return HeadersHandler(response=HeaderOps(set=response_headers))


def build_basic_auth_handler(
    username: str,
    password_hash: str,
    realm: str = "Restricted Area",
) -> AuthenticationHandler:
    """Build an HTTP basic auth handler.

    Args:
        username: Account name.
        password_hash: bcrypt hash (Caddy never accepts plaintext here).
        realm: Authentication realm shown by browsers.
    """
    account = BasicAuthAccount(username=username, password=password_hash)
    return AuthenticationHandler(
        providers={
            "http_basic": {
                "accounts": [account.model_dump()],
                "realm": realm,
            }
        }
    )


def build_compression_handler(
    *,
    gzip: bool = True,
    zstd: bool = True,
    brotli: bool = False,
) -> EncodeHandler:
    """Build an encode handler. gzip and zstd are on by default, brotli is opt-in."""
    encodings: dict[str, dict[str, object]] = {}
    if gzip:
        encodings["gzip"] = {}
    if zstd:
        encodings["zstd"] = {}
    if brotli:
        encodings["br"] = {}
    return EncodeHandler(encodings=encodings)


# =============================================================================
# Routes
# =============================================================================


def build_service_route(
    *,
    route_id: str,
    dial: str,
    host: str | None = None,
    path_prefix: str | None = None,
) -> Route:
    """Build the route that sends one service's traffic to ``dial``.

    Host selectors match the exact hostname and proxy straight through.
    Path selectors match ``<prefix>/*`` and strip the prefix before proxying,
    so the upstream sees the same request path whichever dial is used.

    Args:
        route_id: Stable @id for later removal.
        dial: Upstream address (real backend or interception proxy).
        host: Hostname selector; takes precedence over ``path_prefix``.
        path_prefix: Path prefix selector, e.g. ``/es``.

    Raises:
        ValueError: If neither selector is given.
    """
    if host:
        return Route(
            id=route_id,
            match=[Matcher(host=[host])],
            handle=[build_reverse_proxy_handler(dial)],
            terminal=True,
        )
    if path_prefix:
        return Route(
            id=route_id,
            match=[Matcher(path=[f"{path_prefix}/*"])],
            handle=[build_rewrite_handler(path_prefix), build_reverse_proxy_handler(dial)],
            terminal=True,
        )
    raise ValueError("Either host or path_prefix is required")


def build_host_route(
    *,
    host: str,
    dial: str,
    security_headers: SecurityHeaders | None = None,
    basic_auth: tuple[str, str] | None = None,
    priority: int | None = None,
    route_id: str | None = None,
) -> Route:
    """Build a host-based route.

    Args:
        host: Hostname to match.
        dial: Upstream address.
        security_headers: Optional security header settings.
        basic_auth: Optional ``(username, password_hash)``.
        priority: Optional ordering hint.
        route_id: Optional @id.
    """
    handlers: list[Handler] = []
    if security_headers is not None:
        handlers.append(build_security_headers_handler(security_headers))
    if basic_auth is not None:
        handlers.append(build_basic_auth_handler(*basic_auth))
    handlers.append(build_reverse_proxy_handler(dial))

    return Route(
        id=route_id,
        match=[Matcher(host=[host])],
        handle=handlers,
        terminal=True,
        priority=priority,
    )


def build_path_route(
    *,
    path: str,
    host: str,
    dial: str,
    strip_prefix: bool = True,
    security_headers: SecurityHeaders | None = None,
    basic_auth: tuple[str, str] | None = None,
    priority: int | None = None,
    route_id: str | None = None,
) -> Route:
    """Build a path-based route on a given host.

    Matches ``<path>*`` and, when ``strip_prefix`` is set, removes ``path``
    before the request reaches the upstream.
    """
    handlers: list[Handler] = []
    if strip_prefix:
        handlers.append(build_rewrite_handler(path))
    if security_headers is not None:
        handlers.append(build_security_headers_handler(security_headers))
    if basic_auth is not None:
        handlers.append(build_basic_auth_handler(*basic_auth))
    handlers.append(build_reverse_proxy_handler(dial))

    return Route(
        id=route_id,
        match=[Matcher(host=[host], path=[f"{path}*"])],
        handle=handlers,
        terminal=True,
        priority=priority,
    )


def build_health_check_route(
    *,
    host: str,
    service_id: str,
    priority: int | None = None,
) -> Route:
    """Build a static JSON health check route at the standard health path."""
    # Placeholder is expanded by Caddy at request time; keep it out of json.dumps escaping
    body = '{"status":"ok","service":' + json.dumps(service_id) + ',"timestamp":"{http.time.now.unix}"}'
    return Route(
        match=[Matcher(host=[host], path=[HEALTH_CHECK_PATH])],
        handle=[
            StaticResponseHandler(
                status_code=200,
                headers={"Content-Type": ["application/json"]},
                body=body,
            )
        ],
        terminal=True,
        priority=priority,
    )


def build_load_balancer_route(
    *,
    host: str,
    upstreams: list[str],
    policy: LoadBalancingPolicy = "round_robin",
    health_check_path: str = "/health",
    health_check_interval: str = "10s",
    priority: int | None = None,
    route_id: str | None = None,
) -> Route:
    """Build a load-balanced route with active health checks.

    The ``first`` policy is Caddy's default, so no load_balancing block is
    emitted for it.

    Raises:
        ValueError: If ``upstreams`` is empty.
    """
    if not upstreams:
        raise ValueError("At least one upstream is required")

    handler = ReverseProxyHandler(
        upstreams=[Upstream(dial=dial) for dial in upstreams],
        transport=HttpTransport(),
        load_balancing=None if policy == "first" else LoadBalancing(selection_policy={"policy": policy}),
        health_checks=HealthChecks(
            active=ActiveHealthCheck(
                path=health_check_path,
                interval=health_check_interval,
                timeout="5s",
                expect_status=200,
            )
        ),
    )

    return Route(
        id=route_id,
        match=[Matcher(host=[host])],
        handle=[handler],
        terminal=True,
        priority=priority,
    )


def build_redirect_route(
    *,
    from_host: str,
    to_host: str,
    permanent: bool = True,
    route_id: str | None = None,
) -> Route:
    """Build a host redirect route.

    Uses 308/307 rather than 301/302 so method and body survive the
    redirect (RFC 7538).
    """
    return Route(
        id=route_id,
        match=[Matcher(host=[from_host])],
        handle=[
            StaticResponseHandler(
                status_code=308 if permanent else 307,
                headers={"Location": [f"https://{to_host}{{http.request.uri}}"]},
            )
        ],
        terminal=True,
    )
