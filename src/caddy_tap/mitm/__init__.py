"""Interception management: services, proxy pool, and registry.

Process supervision (caddy_tap.mitm.supervisor) and the flows client
(caddy_tap.mitm.flows) are imported from their modules directly, since
they pull in logging configuration.
"""

from caddy_tap.mitm.models import (
    Backend,
    InterceptionState,
    MitmproxyInstance,
    MitmwebOptions,
    MitmwebStatus,
    ServiceRegistration,
    ServiceStatus,
)
from caddy_tap.mitm.pool import DEFAULT_PROXY_NAME, ProxyPool
from caddy_tap.mitm.registry import InterceptionRegistry

__all__ = [
    # models.py
    "Backend",
    "InterceptionState",
    "MitmproxyInstance",
    "MitmwebOptions",
    "MitmwebStatus",
    "ServiceRegistration",
    "ServiceStatus",
    # pool.py
    "DEFAULT_PROXY_NAME",
    "ProxyPool",
    # registry.py
    "InterceptionRegistry",
]
