"""Shared fixtures: an in-memory Caddy admin API behind httpx.MockTransport.

FakeCaddy implements just the admin API surface AdminApiClient uses, with
Caddy's semantics: GET of an unset path answers ``null``, POST to an array
path appends, PATCH replaces the value at the path.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from caddy_tap.caddy.client import AdminApiClient
from caddy_tap.mitm.models import Backend, MitmproxyInstance, ServiceRegistration
from caddy_tap.mitm.pool import ProxyPool
from caddy_tap.mitm.registry import InterceptionRegistry

SERVERS_PATH = "/config/apps/http/servers"


class FakeCaddy:
    """Minimal stateful Caddy admin API.

    Attributes:
        servers: The ``apps.http.servers`` map.
        requests: Every request received, in order.
    """

    def __init__(self, servers: dict[str, Any] | None = None) -> None:
        self.servers: dict[str, Any] = servers if servers is not None else {"srv0": {"listen": [":443"], "routes": []}}
        self.requests: list[httpx.Request] = []
        self._failures: dict[tuple[str, str], Any] = {}

    # --- test helpers ---

    def routes(self, server: str = "srv0") -> list[dict[str, Any]]:
        return self.servers[server].get("routes") or []

    def route_ids(self, server: str = "srv0") -> list[str | None]:
        return [r.get("@id") for r in self.routes(server)]

    def fail_on(
        self,
        method: str,
        path: str,
        *,
        status: int | None = None,
        exc_type: type[httpx.TransportError] | None = None,
    ) -> None:
        """Make ``method path`` answer ``status`` or raise ``exc_type``."""
        self._failures[(method, path)] = exc_type if exc_type is not None else status

    def clear_failures(self) -> None:
        self._failures.clear()

    def calls(self, method: str | None = None) -> list[httpx.Request]:
        return [r for r in self.requests if method is None or r.method == method]

    # --- transport ---

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        method = request.method
        path = request.url.path

        failure = self._failures.get((method, path))
        if isinstance(failure, type):
            raise failure(f"simulated {failure.__name__}", request=request)
        if isinstance(failure, int):
            return httpx.Response(failure, text=f"simulated {failure}")

        body = json.loads(request.content) if request.content else None

        if path == "/":
            return httpx.Response(200, json={"version": "v2.8.4"})
        if path == "/config/" and method == "GET":
            return httpx.Response(200, json={"apps": {"http": {"servers": self.servers}}})
        if path == "/load" and method == "POST":
            self.servers = ((body or {}).get("apps") or {}).get("http", {}).get("servers", {})
            return httpx.Response(200)

        if path.rstrip("/") == SERVERS_PATH:
            if method == "GET":
                return httpx.Response(200, json=self.servers)
            if method == "PATCH":
                self.servers = body
                return httpx.Response(200)

        if path.startswith(SERVERS_PATH + "/"):
            parts = path[len(SERVERS_PATH) + 1 :].strip("/").split("/")
            server = parts[0]
            if server not in self.servers:
                return httpx.Response(404, text=f'{{"error":"unknown server {server}"}}')

            if len(parts) == 1:
                if method == "GET":
                    return httpx.Response(200, json=self.servers[server])
                if method == "PATCH":
                    self.servers[server] = body
                    return httpx.Response(200)

            if len(parts) == 2 and parts[1] == "routes":
                if method == "GET":
                    return httpx.Response(200, json=self.servers[server].get("routes"))
                if method == "POST":
                    self.servers[server].setdefault("routes", []).append(body)
                    return httpx.Response(200)
                if method == "PATCH":
                    self.servers[server]["routes"] = body
                    return httpx.Response(200)

        return httpx.Response(404, text='{"error":"not found"}')


@pytest.fixture
def fake_caddy() -> FakeCaddy:
    """Fresh fake Caddy with one empty server named srv0."""
    return FakeCaddy()


@pytest.fixture
def admin_client(fake_caddy: FakeCaddy) -> AdminApiClient:
    """AdminApiClient wired to the fake Caddy."""
    return AdminApiClient(
        "http://caddy.test:2019",
        timeout_seconds=1.0,
        transport=httpx.MockTransport(fake_caddy.handler),
    )


@pytest.fixture
def proxy_pool() -> ProxyPool:
    """Pool with one default mitmproxy and one named secondary."""
    return ProxyPool(
        {
            "default": MitmproxyInstance(host="mitmproxy", port=8080),
            "secondary": MitmproxyInstance(host="mitmproxy-2", port=8082, web_port=None),
        }
    )


@pytest.fixture
def registry(admin_client: AdminApiClient, proxy_pool: ProxyPool) -> InterceptionRegistry:
    """Fresh registry over the fake Caddy."""
    return InterceptionRegistry(admin_client, proxy_pool)


@pytest.fixture
def es_registration() -> ServiceRegistration:
    """Path-routed Elasticsearch service."""
    return ServiceRegistration(
        id="es",
        server_id="srv0",
        path_prefix="/es",
        backend=Backend(host="elasticsearch", port=9200),
    )


@pytest.fixture
def kibana_registration() -> ServiceRegistration:
    """Host-routed Kibana service."""
    return ServiceRegistration(
        id="kibana",
        server_id="srv0",
        host="kibana.test",
        backend=Backend(host="kibana", port=5601),
    )
