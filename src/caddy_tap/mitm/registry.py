"""Interception registry for toggling mitmproxy in front of services.

Single source of truth for which services are intercepted. Manages:
- Registration/unregistration of services (local only, no network I/O)
- Enable/disable of interception (route swap on the Caddy admin API)
- Status queries

A toggle builds the route for the target state, removes the service's
current route by @id, then adds the new one. Removal comes first so that
two routes never claim the same requests at once; the cost is a brief
window where neither matches. Local state changes only after the add
succeeds.
"""

from __future__ import annotations

__all__ = [
    "InterceptionRegistry",
]

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import overload

from caddy_tap.caddy.client import AdminApiClient
from caddy_tap.caddy.models import Route
from caddy_tap.caddy.routes import build_service_route, mitm_route_id
from caddy_tap.constants import APP_NAME
from caddy_tap.exceptions import (
    AdminClientError,
    CaddyTapError,
    RouteNotFoundError,
    UnknownServiceError,
)
from caddy_tap.mitm.models import (
    InterceptionState,
    MitmproxyInstance,
    ServiceRegistration,
    ServiceStatus,
)
from caddy_tap.mitm.pool import DEFAULT_PROXY_NAME, ProxyPool

_logger = logging.getLogger(f"{APP_NAME}.mitm.registry")


@dataclass
class _ServiceEntry:
    """Registration plus current state for one service.

    ``state`` is an immutable InterceptionState, swapped in one assignment.
    """

    registration: ServiceRegistration
    state: InterceptionState = field(default_factory=InterceptionState.disabled)

    @property
    def route_id(self) -> str:
        return mitm_route_id(self.registration.id)

    def to_status(self) -> ServiceStatus:
        return ServiceStatus(
            enabled=self.state.enabled,
            proxy_name=self.state.proxy_name,
            registration=self.registration,
        )


class InterceptionRegistry:
    """Registry of services whose traffic can be routed through mitmproxy.

    Transitions for the same service id are serialized with a per-id
    asyncio.Lock; different ids proceed independently.

    Usage:
        registry = InterceptionRegistry(client, ProxyPool({"default": MitmproxyInstance()}))
        registry.register(ServiceRegistration(
            id="es", server_id="srv0", path_prefix="/es",
            backend=Backend(host="elasticsearch", port=9200),
        ))
        await registry.enable("es")
        await registry.disable("es")
    """

    def __init__(self, client: AdminApiClient, pool: ProxyPool) -> None:
        """Initialize the registry.

        Args:
            client: Admin API client used for route swaps.
            pool: Interception proxies available to ``enable``.
        """
        self._client = client
        self._pool = pool
        self._services: dict[str, _ServiceEntry] = {}
        # A lock lives while its id is registered or a toggle holds or awaits
        # it, so a re-registered id shares the lock with in-flight toggles.
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @property
    def pool(self) -> ProxyPool:
        return self._pool

    # =========================================================================
    # Registration (local only)
    # =========================================================================

    def register(self, registration: ServiceRegistration) -> None:
        """Register a service, initially with interception disabled.

        Intentional overwrite semantics: registering an existing id replaces
        the old registration outright and resets its state to disabled. The
        remote route is left as it is until the next enable/disable.
        """
        previous = self._services.get(registration.id)
        self._services[registration.id] = _ServiceEntry(registration=registration)

        if previous is not None:
            _logger.warning(
                {
                    "event": "service_replaced",
                    "message": f"Service '{registration.id}' already registered. Replacing registration",
                    "service_id": registration.id,
                    "details": {"was_enabled": previous.state.enabled},
                }
            )
        else:
            _logger.info(
                {
                    "event": "service_registered",
                    "message": f"Service registered: {registration.id}",
                    "service_id": registration.id,
                    "server_id": registration.server_id,
                }
            )

    def unregister(self, service_id: str) -> bool:
        """Forget a service locally.

        The remote route is not touched; call ``disable`` first to restore
        direct routing before unregistering.

        Returns:
            True if the service was registered.
        """
        entry = self._services.pop(service_id, None)
        if entry is None:
            return False
        if not self._lock_users.get(service_id):
            self._locks.pop(service_id, None)

        _logger.info(
            {
                "event": "service_unregistered",
                "message": f"Service unregistered: {service_id}",
                "service_id": service_id,
                "details": {"was_enabled": entry.state.enabled},
            }
        )
        return True

    # =========================================================================
    # Toggling
    # =========================================================================

    async def enable(self, service_id: str, proxy: str | None = None) -> None:
        """Route a service's traffic through an interception proxy.

        Also used to move an enabled service to a different proxy.

        Args:
            service_id: Registered service id.
            proxy: Pool entry name (default: "default").

        Raises:
            UnknownServiceError: Service is not registered (no I/O attempted).
            UnknownProxyError: Proxy is not in the pool (no I/O attempted).
            AdminClientError: Route push failed; local state is unchanged.
        """
        proxy_name = DEFAULT_PROXY_NAME if proxy is None else proxy
        self._require(service_id)
        self._pool.get(proxy_name)

        async with self._service_lock(service_id):
            entry = self._require(service_id)
            instance = self._pool.get(proxy_name)
            route = self._build_route(entry.registration, instance.dial, entry.route_id)

            await self._swap_route(entry, route, action="enable")
            self._commit(service_id, entry, InterceptionState.enabled_via(proxy_name))

        _logger.info(
            {
                "event": "interception_enabled",
                "message": f"Interception enabled for {service_id} via {proxy_name}",
                "service_id": service_id,
                "proxy_name": proxy_name,
                "dial": instance.dial,
            }
        )

    async def disable(self, service_id: str) -> None:
        """Restore direct routing from Caddy to the service's backend.

        Raises:
            UnknownServiceError: Service is not registered (no I/O attempted).
            AdminClientError: Route push failed; local state is unchanged.
        """
        self._require(service_id)

        async with self._service_lock(service_id):
            entry = self._require(service_id)
            registration = entry.registration
            route = self._build_route(registration, registration.backend.dial, entry.route_id)

            await self._swap_route(entry, route, action="disable")
            self._commit(service_id, entry, InterceptionState.disabled())

        _logger.info(
            {
                "event": "interception_disabled",
                "message": f"Interception disabled for {service_id}",
                "service_id": service_id,
                "dial": registration.backend.dial,
            }
        )

    async def enable_all(self, proxy: str | None = None) -> dict[str, CaddyTapError]:
        """Enable interception for every service, in registration order.

        Best effort: a failure on one service does not stop the rest.

        Returns:
            Service id to error for each service that failed (empty on success).
        """
        failures: dict[str, CaddyTapError] = {}
        for service_id in list(self._services):
            try:
                await self.enable(service_id, proxy)
            except CaddyTapError as e:
                failures[service_id] = e
                self._log_batch_failure("enable", service_id, e)
        return failures

    async def disable_all(self) -> dict[str, CaddyTapError]:
        """Disable interception for every service, in registration order.

        Returns:
            Service id to error for each service that failed (empty on success).
        """
        failures: dict[str, CaddyTapError] = {}
        for service_id in list(self._services):
            try:
                await self.disable(service_id)
            except CaddyTapError as e:
                failures[service_id] = e
                self._log_batch_failure("disable", service_id, e)
        return failures

    # =========================================================================
    # Queries (local only)
    # =========================================================================

    def is_enabled(self, service_id: str) -> bool:
        """Return True if interception is on. Unknown ids read as False."""
        entry = self._services.get(service_id)
        return entry.state.enabled if entry is not None else False

    @overload
    def get_status(self) -> dict[str, ServiceStatus]: ...

    @overload
    def get_status(self, service_id: str) -> ServiceStatus | None: ...

    def get_status(self, service_id: str | None = None) -> dict[str, ServiceStatus] | ServiceStatus | None:
        """Return status for one service (None if unknown) or for all services."""
        if service_id is not None:
            entry = self._services.get(service_id)
            return entry.to_status() if entry is not None else None
        return {sid: entry.to_status() for sid, entry in self._services.items()}

    def get_registered_services(self) -> list[str]:
        """Return registered service ids in registration order."""
        return list(self._services)

    def get_available_proxies(self) -> list[str]:
        """Return proxy names, including the "default" alias."""
        return self._pool.names()

    def get_proxy_config(self, proxy_name: str) -> MitmproxyInstance | None:
        """Return a proxy instance's configuration, or None."""
        return self._pool.get_config(proxy_name)

    # =========================================================================
    # Internals
    # =========================================================================

    def _require(self, service_id: str) -> _ServiceEntry:
        entry = self._services.get(service_id)
        if entry is None:
            raise UnknownServiceError(service_id)
        return entry

    @asynccontextmanager
    async def _service_lock(self, service_id: str) -> AsyncIterator[None]:
        """Hold the per-id lock; drop it once unused and the id is gone."""
        lock = self._locks.setdefault(service_id, asyncio.Lock())
        self._lock_users[service_id] = self._lock_users.get(service_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._lock_users[service_id] - 1
            if remaining:
                self._lock_users[service_id] = remaining
            else:
                del self._lock_users[service_id]
                if service_id not in self._services:
                    self._locks.pop(service_id, None)

    @staticmethod
    def _build_route(registration: ServiceRegistration, dial: str, route_id: str) -> Route:
        return build_service_route(
            route_id=route_id,
            dial=dial,
            host=registration.host,
            path_prefix=registration.path_prefix,
        )

    async def _swap_route(self, entry: _ServiceEntry, route: Route, *, action: str) -> None:
        """Remove the service's current route, then add ``route``.

        Only RouteNotFoundError is tolerated on removal (expected on the
        first transition); any other failure propagates.
        """
        server_id = entry.registration.server_id
        route_id = entry.route_id

        try:
            try:
                await self._client.remove_route_by_id(server_id, route_id)
            except RouteNotFoundError:
                _logger.debug(
                    {
                        "event": "route_absent",
                        "message": f"No existing route {route_id} in {server_id}",
                        "service_id": entry.registration.id,
                        "route_id": route_id,
                    }
                )

            added = await self._client.add_route(server_id, route)
        except AdminClientError as e:
            _logger.warning(
                {
                    "event": f"interception_{action}_failed",
                    "message": f"Failed to {action} interception for {entry.registration.id}: {e}",
                    "service_id": entry.registration.id,
                    "route_id": route_id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                }
            )
            raise

        if not added:
            # Another writer re-created the route between our remove and add
            _logger.warning(
                {
                    "event": "route_already_present",
                    "message": f"Route {route_id} reappeared in {server_id} before add",
                    "service_id": entry.registration.id,
                    "route_id": route_id,
                }
            )

    def _commit(self, service_id: str, entry: _ServiceEntry, state: InterceptionState) -> None:
        """Record the new state unless the registration changed mid-flight."""
        if self._services.get(service_id) is not entry:
            _logger.warning(
                {
                    "event": "state_discarded",
                    "message": f"Service '{service_id}' was re-registered or removed during a toggle",
                    "service_id": service_id,
                }
            )
            return
        entry.state = state

    @staticmethod
    def _log_batch_failure(action: str, service_id: str, error: CaddyTapError) -> None:
        _logger.warning(
            {
                "event": f"batch_{action}_item_failed",
                "message": f"Batch {action} failed for {service_id}: {error}",
                "service_id": service_id,
                "error_type": type(error).__name__,
                "error_message": str(error),
            }
        )
