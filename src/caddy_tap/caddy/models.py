"""Pydantic models for Caddy route documents.

A route's handlers form a tagged union on the ``handler`` field. Known kinds
get a dedicated model so builder output is structurally checked; anything
else read back from Caddy (handlers this package never writes) is kept as a
GenericHandler so reading a live config never fails. Every model keeps
fields it does not declare, so a document read from Caddy serializes back
unchanged.

Serialize with ``Route.to_json()``, which produces the exact JSON shape the
admin API expects (``@id`` alias, ``None`` fields omitted).
"""

from __future__ import annotations

__all__ = [
    "ActiveHealthCheck",
    "AuthenticationHandler",
    "BasicAuthAccount",
    "EncodeHandler",
    "FrozenModel",
    "GenericHandler",
    "Handler",
    "HeaderOps",
    "HeadersHandler",
    "HealthChecks",
    "HttpTransport",
    "LoadBalancing",
    "Matcher",
    "ReverseProxyHandler",
    "RewriteHandler",
    "Route",
    "StaticResponseHandler",
    "TransportTLS",
    "Upstream",
]

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag


class FrozenModel(BaseModel):
    """Base class for immutable route document models.

    Caddy modules grow fields over time; undeclared ones are kept as-is.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")


# =============================================================================
# Reverse proxy building blocks
# =============================================================================


class Upstream(FrozenModel):
    """A single upstream backend (``host:port``)."""

    dial: str


class TransportTLS(FrozenModel):
    """TLS settings for the upstream connection.

    An empty object is meaningful: it enables TLS with system defaults.
    """

    server_name: str | None = None
    insecure_skip_verify: bool | None = None
    ca: str | None = None


class HttpTransport(FrozenModel):
    """Upstream transport; ``protocol`` may also be e.g. ``fastcgi``."""

    protocol: str = "http"
    tls: TransportTLS | None = None


class LoadBalancing(FrozenModel):
    selection_policy: dict[str, Any]


class ActiveHealthCheck(FrozenModel):
    path: str | None = None
    interval: str | None = None
    timeout: str | None = None
    expect_status: int | None = None


class HealthChecks(FrozenModel):
    active: ActiveHealthCheck | None = None


class HeaderOps(FrozenModel):
    """Header manipulation (only ``set`` is produced by the builders)."""

    set: dict[str, list[str]] | None = None


class BasicAuthAccount(FrozenModel):
    username: str
    password: str


# =============================================================================
# Handlers
# =============================================================================


class ReverseProxyHandler(FrozenModel):
    handler: Literal["reverse_proxy"] = "reverse_proxy"
    upstreams: list[Upstream]
    transport: HttpTransport | None = None
    load_balancing: LoadBalancing | None = None
    health_checks: HealthChecks | None = None


class StaticResponseHandler(FrozenModel):
    handler: Literal["static_response"] = "static_response"
    status_code: int | str | None = None
    headers: dict[str, list[str]] | None = None
    body: str | None = None


class RewriteHandler(FrozenModel):
    handler: Literal["rewrite"] = "rewrite"
    strip_path_prefix: str | None = None
    uri: str | None = None


class HeadersHandler(FrozenModel):
    handler: Literal["headers"] = "headers"
    response: HeaderOps | None = None
    request: HeaderOps | None = None


class AuthenticationHandler(FrozenModel):
    handler: Literal["authentication"] = "authentication"
    providers: dict[str, Any]


class EncodeHandler(FrozenModel):
    handler: Literal["encode"] = "encode"
    encodings: dict[str, dict[str, Any]]


class GenericHandler(FrozenModel):
    """Any handler kind without a dedicated model."""

    handler: str


_KNOWN_HANDLERS = frozenset(
    {"reverse_proxy", "static_response", "rewrite", "headers", "authentication", "encode"}
)


def _handler_kind(value: Any) -> str:
    if isinstance(value, dict):
        kind = value.get("handler")
    else:
        kind = getattr(value, "handler", None)
    return kind if kind in _KNOWN_HANDLERS else "generic"


Handler = Annotated[
    Union[
        Annotated[ReverseProxyHandler, Tag("reverse_proxy")],
        Annotated[StaticResponseHandler, Tag("static_response")],
        Annotated[RewriteHandler, Tag("rewrite")],
        Annotated[HeadersHandler, Tag("headers")],
        Annotated[AuthenticationHandler, Tag("authentication")],
        Annotated[EncodeHandler, Tag("encode")],
        Annotated[GenericHandler, Tag("generic")],
    ],
    Discriminator(_handler_kind),
]


# =============================================================================
# Routes
# =============================================================================


class Matcher(FrozenModel):
    """Request matcher set. All present fields must match (logical AND)."""

    host: list[str] | None = None
    path: list[str] | None = None


class Route(FrozenModel):
    """A Caddy HTTP route.

    Attributes:
        id: Stable identifier, serialized as ``@id``; used for removal.
        match: Matcher sets (logical OR between sets).
        handle: Handler chain, executed in order.
        terminal: Stop evaluating later routes once this one matches.
        priority: Optional ordering hint (lower runs first).
    """

    id: str | None = Field(default=None, alias="@id")
    match: list[Matcher] | None = None
    handle: list[Handler] = Field(default_factory=list)
    terminal: bool | None = None
    priority: int | None = None

    def to_json(self) -> dict[str, Any]:
        """Serialize to the JSON document pushed to the admin API."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
