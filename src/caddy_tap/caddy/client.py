"""Async client for the Caddy admin API.

Thin transport wrapper: every call is one request/response against the
admin API's config tree, bounded by a single configurable timeout.
Transport and HTTP failures are translated into the typed errors in
caddy_tap.exceptions:

- httpx.TimeoutException      -> AdminTimeoutError
- other httpx.TransportError  -> NetworkError
- non-2xx response            -> CaddyApiError

Usage:
    async with AdminApiClient("http://127.0.0.1:2019") as client:
        added = await client.add_route("srv0", route)
"""

from __future__ import annotations

__all__ = [
    "AdminApiClient",
    "InsertPosition",
]

import json
import logging
from typing import Any, Literal

import httpx

from caddy_tap.caddy.models import Route
from caddy_tap.constants import (
    APP_NAME,
    CADDY_SERVERS_PATH,
    DEFAULT_ADMIN_TIMEOUT_SECONDS,
    DEFAULT_ADMIN_URL,
)
from caddy_tap.exceptions import (
    AdminTimeoutError,
    CaddyApiError,
    InvalidResponseError,
    NetworkError,
    RouteNotFoundError,
)

InsertPosition = Literal["beginning", "end", "after-health-checks"]

RouteLike = Route | dict[str, Any]

_logger = logging.getLogger(f"{APP_NAME}.caddy.client")


def _route_json(route: RouteLike) -> dict[str, Any]:
    """JSON document for a Route model; raw dicts are pushed exactly as given."""
    if isinstance(route, Route):
        return route.to_json()
    return dict(route)


class AdminApiClient:
    """Client for the Caddy admin API.

    The underlying httpx.AsyncClient is created lazily and reused; call
    ``aclose()`` (or use ``async with``) when done.

    Attributes:
        admin_url: Base URL of the admin API (no trailing slash).
        timeout_seconds: Deadline applied to every call.
    """

    def __init__(
        self,
        admin_url: str = DEFAULT_ADMIN_URL,
        timeout_seconds: float = DEFAULT_ADMIN_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            admin_url: Base URL of the admin API.
            timeout_seconds: Timeout for every request.
            transport: Optional httpx transport (tests inject a MockTransport).
        """
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self.admin_url = admin_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> AdminApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.admin_url,
                timeout=self.timeout_seconds,
                transport=self._transport,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    # =========================================================================
    # Low-level request
    # =========================================================================

    async def request(
        self,
        path: str,
        *,
        method: str = "GET",
        json_body: Any = None,
    ) -> httpx.Response:
        """Send one request to the admin API.

        Args:
            path: Config tree path, e.g. ``/config/apps/http/servers``.
            method: HTTP method.
            json_body: Optional JSON-serializable body.

        Returns:
            The successful httpx.Response.

        Raises:
            AdminTimeoutError: Call exceeded ``timeout_seconds``.
            NetworkError: Connection-level failure.
            CaddyApiError: Non-2xx response.
        """
        url = f"{self.admin_url}{path}"
        content = None if json_body is None else json.dumps(json_body)

        try:
            response = await self._get_client().request(method, path, content=content)
        except httpx.TimeoutException as e:
            raise AdminTimeoutError(
                f"Request to {path} timed out after {self.timeout_seconds}s",
                timeout_seconds=self.timeout_seconds,
                method=method,
                url=url,
            ) from e
        except httpx.TransportError as e:
            raise NetworkError(
                f"Network request to {path} failed: {e}",
                method=method,
                url=url,
                cause=e,
            ) from e

        if not response.is_success:
            raise CaddyApiError(
                f"Caddy API request failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                response_body=response.text,
                method=method,
                url=url,
            )

        return response

    async def _get_json(self, path: str) -> Any:
        response = await self.request(path)
        if not response.content:
            return None
        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise InvalidResponseError(
                f"Invalid JSON from {path}: {e}",
                {"path": path},
            ) from e

    # =========================================================================
    # Whole-config and server operations
    # =========================================================================

    async def get_config(self) -> Any:
        """Return the full running configuration."""
        return await self._get_json("/config/")

    async def get_version(self) -> Any:
        """Return the admin endpoint root document."""
        return await self._get_json("/")

    async def reload(self, config: dict[str, Any]) -> None:
        """Replace the whole running configuration."""
        await self.request("/load", method="POST", json_body=config)

    async def get_servers(self) -> dict[str, Any]:
        """Return the map of named HTTP servers (empty if none)."""
        servers = await self._get_json(CADDY_SERVERS_PATH)
        if servers is None:
            return {}
        if not isinstance(servers, dict):
            raise InvalidResponseError("Invalid servers response from Caddy")
        return servers

    async def get_server_config(self, server: str) -> dict[str, Any]:
        """Return one server's configuration object."""
        config = await self._get_json(f"{CADDY_SERVERS_PATH}/{server}")
        if not isinstance(config, dict):
            raise InvalidResponseError(
                f"Invalid server config response for '{server}'",
                {"server": server},
            )
        return config

    async def patch_server(self, servers: dict[str, Any]) -> None:
        """Replace server definitions (PATCH the servers map)."""
        await self.request(CADDY_SERVERS_PATH, method="PATCH", json_body=servers)

    async def _write_routes(self, server: str, routes: list[dict[str, Any]]) -> None:
        """Replace a server's routes, preserving its other fields.

        PATCH replaces the value at its path, so this targets the one
        server object rather than the servers map (which would drop every
        other server).
        """
        server_config = await self.get_server_config(server)
        await self.request(
            f"{CADDY_SERVERS_PATH}/{server}",
            method="PATCH",
            json_body={**server_config, "routes": routes},
        )

    # =========================================================================
    # Route operations
    # =========================================================================

    async def get_routes(self, server: str) -> list[dict[str, Any]]:
        """Return a server's route list.

        Caddy answers ``null`` for an unset path; that reads as no routes.

        Raises:
            InvalidResponseError: If the response is not a JSON array.
        """
        routes = await self._get_json(f"{CADDY_SERVERS_PATH}/{server}/routes")
        if routes is None:
            return []
        if not isinstance(routes, list):
            raise InvalidResponseError(
                "Invalid routes response from Caddy",
                {"server": server},
            )
        return routes

    async def add_route(self, server: str, route: RouteLike) -> bool:
        """Append a route unless an equivalent one already exists.

        Routes with an @id are deduplicated by @id; routes without one by
        their first matcher set.

        Returns:
            True if the route was appended, False if it was already present.
        """
        document = _route_json(route)
        existing = await self.get_routes(server)

        if _route_exists(existing, document):
            _logger.debug(
                {
                    "event": "route_exists",
                    "message": f"Route already present in {server}, skipping",
                    "server_id": server,
                    "route_id": document.get("@id"),
                }
            )
            return False

        await self.request(
            f"{CADDY_SERVERS_PATH}/{server}/routes",
            method="POST",
            json_body=document,
        )
        return True

    async def remove_route_by_id(self, server: str, route_id: str) -> None:
        """Remove the route carrying ``route_id``.

        Raises:
            RouteNotFoundError: If no route has that @id.
        """
        routes = await self.get_routes(server)
        remaining = [r for r in routes if r.get("@id") != route_id]

        if len(remaining) == len(routes):
            raise RouteNotFoundError(server, route_id)

        await self._write_routes(server, remaining)

    async def replace_route_by_id(self, server: str, route_id: str, route: RouteLike) -> None:
        """Replace the route carrying ``route_id`` in place, keeping its position.

        Raises:
            RouteNotFoundError: If no route has that @id.
        """
        document = {**_route_json(route), "@id": route_id}
        routes = await self.get_routes(server)

        for index, existing in enumerate(routes):
            if existing.get("@id") == route_id:
                routes[index] = document
                break
        else:
            raise RouteNotFoundError(server, route_id)

        await self._write_routes(server, routes)

    async def insert_route(
        self,
        server: str,
        route: RouteLike,
        position: InsertPosition = "after-health-checks",
    ) -> None:
        """Insert a route at a controlled position.

        Args:
            server: Server name.
            route: Route to insert.
            position: ``beginning``, ``end``, or ``after-health-checks``
                (right after the last route whose first handler is a
                static_response).
        """
        document = _route_json(route)
        routes = await self.get_routes(server)

        if position == "beginning":
            index = 0
        elif position == "end":
            index = len(routes)
        else:
            index = 0
            for i, existing in enumerate(routes):
                handle = existing.get("handle") or []
                if handle and handle[0].get("handler") == "static_response":
                    index = i + 1

        routes.insert(index, document)
        await self._write_routes(server, routes)

    async def patch_routes(self, server: str, routes: list[RouteLike]) -> None:
        """Replace a server's entire route list."""
        documents = [_route_json(r) for r in routes]
        await self.request(
            f"{CADDY_SERVERS_PATH}/{server}/routes",
            method="PATCH",
            json_body=documents,
        )

    async def remove_routes_by_host(self, hostname: str, server: str) -> int:
        """Remove every route whose first matcher targets ``hostname``.

        Returns:
            Number of routes removed.
        """
        if not hostname:
            raise ValueError("hostname is required")

        routes = await self.get_routes(server)
        remaining = [r for r in routes if _first_host(r) != hostname]
        removed = len(routes) - len(remaining)

        if removed:
            await self.request(
                f"{CADDY_SERVERS_PATH}/{server}/routes",
                method="PATCH",
                json_body=remaining,
            )
        return removed


def _first_matcher(route: dict[str, Any]) -> dict[str, Any] | None:
    match = route.get("match") or []
    return match[0] if match else None


def _first_host(route: dict[str, Any]) -> str | None:
    matcher = _first_matcher(route) or {}
    hosts = matcher.get("host") or []
    return hosts[0] if hosts else None


def _route_exists(routes: list[dict[str, Any]], document: dict[str, Any]) -> bool:
    route_id = document.get("@id")
    if route_id is not None:
        return any(r.get("@id") == route_id for r in routes)

    matcher = _first_matcher(document)
    if matcher is None:
        return False
    return any(
        (existing := _first_matcher(r)) is not None
        and existing.get("host") == matcher.get("host")
        and existing.get("path") == matcher.get("path")
        for r in routes
    )
