"""Read-only inspection of the interception routes deployed in Caddy.

The registry only knows what it did during this process's lifetime; the
routes in Caddy are the durable record. This module classifies each
service's ``mitm_<id>`` route by where its reverse_proxy dials:

- intercepted: dial matches a pool entry
- direct: dial matches the service backend
- absent: no route with the service's @id
- unknown: route exists but dials somewhere else
"""

from __future__ import annotations

__all__ = [
    "RemoteRouteState",
    "classify_route",
    "inspect_services",
]

from collections.abc import Iterable
from typing import Any, Literal

from caddy_tap.caddy.client import AdminApiClient
from caddy_tap.caddy.routes import mitm_route_id
from caddy_tap.mitm.models import FrozenModel, ServiceRegistration
from caddy_tap.mitm.pool import DEFAULT_PROXY_NAME, ProxyPool

RouteMode = Literal["intercepted", "direct", "absent", "unknown"]


class RemoteRouteState(FrozenModel):
    """What Caddy currently does with one service's traffic."""

    service_id: str
    mode: RouteMode
    proxy_name: str | None = None
    dial: str | None = None


def _route_dial(route: dict[str, Any]) -> str | None:
    for handler in route.get("handle") or []:
        if handler.get("handler") == "reverse_proxy":
            upstreams = handler.get("upstreams") or []
            if upstreams:
                return upstreams[0].get("dial")
    return None


def _proxy_for_dial(pool: ProxyPool, dial: str) -> str | None:
    # Prefer an explicit name over the "default" alias
    matches = [name for name, instance in pool.items() if instance.dial == dial]
    named = [name for name in matches if name != DEFAULT_PROXY_NAME]
    if named:
        return named[0]
    return matches[0] if matches else None


def classify_route(
    route: dict[str, Any] | None,
    registration: ServiceRegistration,
    pool: ProxyPool,
) -> RemoteRouteState:
    """Classify one service's deployed route (None if absent)."""
    if route is None:
        return RemoteRouteState(service_id=registration.id, mode="absent")

    dial = _route_dial(route)
    if dial is not None:
        proxy_name = _proxy_for_dial(pool, dial)
        if proxy_name is not None:
            return RemoteRouteState(
                service_id=registration.id, mode="intercepted", proxy_name=proxy_name, dial=dial
            )
        if dial == registration.backend.dial:
            return RemoteRouteState(service_id=registration.id, mode="direct", dial=dial)

    return RemoteRouteState(service_id=registration.id, mode="unknown", dial=dial)


async def inspect_services(
    client: AdminApiClient,
    pool: ProxyPool,
    registrations: Iterable[ServiceRegistration],
) -> list[RemoteRouteState]:
    """Classify every service's route, reading each server's routes once."""
    routes_by_server: dict[str, dict[str, dict[str, Any]]] = {}
    states = []

    for registration in registrations:
        if registration.server_id not in routes_by_server:
            routes = await client.get_routes(registration.server_id)
            routes_by_server[registration.server_id] = {
                r["@id"]: r for r in routes if isinstance(r.get("@id"), str)
            }
        route = routes_by_server[registration.server_id].get(mitm_route_id(registration.id))
        states.append(classify_route(route, registration, pool))

    return states
