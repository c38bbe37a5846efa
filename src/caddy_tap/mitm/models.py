"""Pydantic models for interception management.

Registration Models:
- Backend: Upstream address of a real service
- ServiceRegistration: Identity and routing facts for one logical service
- MitmproxyInstance: One interception proxy (forwarding + web ports)

State Models:
- InterceptionState: Enabled flag and active proxy, validated as a pair
- ServiceStatus: Read-only snapshot returned by the registry

Process Models:
- MitmwebOptions: How to launch mitmweb
- MitmwebStatus: PID-file based liveness report
"""

from __future__ import annotations

__all__ = [
    "Backend",
    "FrozenModel",
    "InterceptionState",
    "MitmproxyInstance",
    "MitmwebOptions",
    "MitmwebStatus",
    "ServiceRegistration",
    "ServiceStatus",
]

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from caddy_tap.constants import (
    DEFAULT_MITM_HOST,
    DEFAULT_MITM_LISTEN_ADDRESS,
    DEFAULT_MITM_PROXY_PORT,
    DEFAULT_MITM_WEB_PORT,
)


class FrozenModel(BaseModel):
    """Base class for immutable Pydantic models."""

    model_config = ConfigDict(frozen=True)


# =============================================================================
# Registration Models
# =============================================================================


class Backend(FrozenModel):
    """Upstream address of a real service."""

    host: str = Field(min_length=1)
    port: int = Field(ge=1, le=65535)

    @property
    def dial(self) -> str:
        return f"{self.host}:{self.port}"


class ServiceRegistration(FrozenModel):
    """Identity and fixed routing facts for one logical service.

    If ``host`` is set the service is routed by hostname, otherwise by
    ``path_prefix``. At least one of the two is required.

    Attributes:
        id: Unique key within a registry.
        server_id: Caddy server whose route list holds the service route.
        backend: Real upstream of the service.
        path_prefix: Path prefix selector, normalized to ``/name`` form.
        host: Exact hostname selector.
    """

    id: str = Field(min_length=1)
    server_id: str = Field(min_length=1)
    backend: Backend
    path_prefix: str | None = None
    host: str | None = None

    @field_validator("path_prefix")
    @classmethod
    def _normalize_path_prefix(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = "/" + value.strip("/")
        if value == "/":
            raise ValueError("path_prefix must name a path segment, not '/'")
        return value

    @model_validator(mode="after")
    def _require_selector(self) -> ServiceRegistration:
        if not self.host and not self.path_prefix:
            raise ValueError("Either host or path_prefix is required")
        return self

    @property
    def is_host_based(self) -> bool:
        return bool(self.host)


class MitmproxyInstance(FrozenModel):
    """Configuration for one mitmproxy instance.

    Attributes:
        host: Hostname Caddy dials to reach the proxy.
        port: Forwarding port for intercepted traffic.
        web_port: mitmweb UI/API port, if the instance exposes one.
    """

    host: str = Field(default=DEFAULT_MITM_HOST, min_length=1)
    port: int = Field(default=DEFAULT_MITM_PROXY_PORT, ge=1, le=65535)
    web_port: int | None = Field(default=DEFAULT_MITM_WEB_PORT, ge=1, le=65535)

    @property
    def dial(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def web_url(self) -> str | None:
        if self.web_port is None:
            return None
        return f"http://{self.host}:{self.web_port}"


# =============================================================================
# State Models
# =============================================================================


class InterceptionState(FrozenModel):
    """Interception state of one service.

    Replaced as a whole, never mutated, so ``enabled`` and ``proxy_name``
    can not be observed out of step.
    """

    enabled: bool = False
    proxy_name: str | None = None

    @model_validator(mode="after")
    def _enabled_iff_proxy(self) -> InterceptionState:
        if self.enabled != (self.proxy_name is not None):
            raise ValueError("enabled must be True exactly when proxy_name is set")
        return self

    @classmethod
    def disabled(cls) -> InterceptionState:
        return cls()

    @classmethod
    def enabled_via(cls, proxy_name: str) -> InterceptionState:
        return cls(enabled=True, proxy_name=proxy_name)


class ServiceStatus(FrozenModel):
    """Snapshot of one registered service."""

    enabled: bool
    proxy_name: str | None
    registration: ServiceRegistration


# =============================================================================
# Process Models
# =============================================================================


class MitmwebOptions(BaseModel):
    """How to launch a local mitmweb process.

    Attributes:
        web_port: Port for the mitmweb UI/API.
        proxy_port: Port for the forwarding proxy.
        listen_address: Address both ports bind to.
        open_browser: Open the UI in a browser once ready.
        scripts: mitmproxy addon scripts passed with ``-s``.
        working_dir: Directory holding the PID file (default: cwd).
    """

    web_port: int = Field(default=DEFAULT_MITM_WEB_PORT, ge=1, le=65535)
    proxy_port: int = Field(default=DEFAULT_MITM_PROXY_PORT, ge=1, le=65535)
    listen_address: str = DEFAULT_MITM_LISTEN_ADDRESS
    open_browser: bool = False
    scripts: list[str] = Field(default_factory=list)
    working_dir: str | None = None

    model_config = {"extra": "ignore"}

    @property
    def web_url(self) -> str:
        return f"http://{self.listen_address}:{self.web_port}"

    @property
    def proxy_url(self) -> str:
        return f"http://{self.listen_address}:{self.proxy_port}"


class MitmwebStatus(FrozenModel):
    """Liveness of the mitmweb process named by the PID file."""

    running: bool
    pid: int | None = None
    web_url: str | None = None
    proxy_url: str | None = None
