"""API request and response schemas."""

from __future__ import annotations

__all__ = [
    "BatchResultResponse",
    "EnableRequest",
    "ProxyResponse",
    "ServiceResponse",
]

from pydantic import BaseModel

from caddy_tap.mitm.models import Backend, ServiceStatus


class EnableRequest(BaseModel):
    """Body for enable and enable-all. ``proxy`` defaults to "default"."""

    proxy: str | None = None


class ServiceResponse(BaseModel):
    """One registered service and its interception state."""

    id: str
    server_id: str
    backend: Backend
    path_prefix: str | None = None
    host: str | None = None
    enabled: bool
    proxy_name: str | None = None

    @classmethod
    def from_status(cls, status: ServiceStatus) -> ServiceResponse:
        registration = status.registration
        return cls(
            id=registration.id,
            server_id=registration.server_id,
            backend=registration.backend,
            path_prefix=registration.path_prefix,
            host=registration.host,
            enabled=status.enabled,
            proxy_name=status.proxy_name,
        )


class ProxyResponse(BaseModel):
    """One pool entry. The "default" alias is listed like any other name."""

    name: str
    host: str
    port: int
    dial: str
    web_url: str | None = None


class BatchResultResponse(BaseModel):
    """Result of enable-all/disable-all: service id to error message."""

    failed: dict[str, str]
