"""Custom exceptions for caddy-tap.

This module contains all custom exceptions used throughout the package.
Exceptions are organized into three categories:

Registry Errors (raised before any network call):
    - UnknownServiceError: Service id was never registered
    - UnknownProxyError: Proxy name is not in the pool

Admin API Errors (raised by AdminApiClient):
    - NetworkError: Connection-level failure reaching the admin API
    - AdminTimeoutError: Call exceeded the configured timeout
    - CaddyApiError: Admin API answered with a non-success status
    - InvalidResponseError: Admin API answered with an unexpected body
    - RouteNotFoundError: No route carries the requested @id

Process Errors (raised by the mitmweb supervisor):
    - MitmproxyNotInstalledError, MitmproxyAlreadyRunningError, MitmproxyStartError

Usage:
    from caddy_tap.exceptions import UnknownServiceError, CaddyApiError
"""

from __future__ import annotations

__all__ = [
    "AdminClientError",
    "AdminTimeoutError",
    "CaddyApiError",
    "CaddyTapError",
    "ConfigurationError",
    "InvalidResponseError",
    "MitmproxyAlreadyRunningError",
    "MitmproxyNotInstalledError",
    "MitmproxyStartError",
    "NetworkError",
    "RouteNotFoundError",
    "UnknownProxyError",
    "UnknownServiceError",
]

from typing import Any, Iterable


class CaddyTapError(Exception):
    """Base exception for all caddy-tap errors.

    Attributes:
        message: Human-readable error message.
        context: Structured details for logging and API error bodies.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        return self.message


# =============================================================================
# Registry Errors
# =============================================================================


class UnknownServiceError(CaddyTapError):
    """Operation referenced a service id that was never registered."""

    def __init__(self, service_id: str) -> None:
        super().__init__(f"Service not registered: {service_id}", {"service_id": service_id})
        self.service_id = service_id


class UnknownProxyError(CaddyTapError):
    """Operation referenced a proxy name absent from the pool."""

    def __init__(self, proxy_name: str, available: Iterable[str] = ()) -> None:
        self.proxy_name = proxy_name
        self.available = sorted(available)
        super().__init__(
            f"Unknown proxy: {proxy_name}. Available: {', '.join(self.available)}",
            {"proxy_name": proxy_name, "available": self.available},
        )


# =============================================================================
# Admin API Errors
# =============================================================================


class AdminClientError(CaddyTapError):
    """Base class for failures talking to the Caddy admin API."""


class NetworkError(AdminClientError):
    """Transport-level failure (connection refused, reset, DNS, ...).

    Attributes:
        method: HTTP method of the failed call.
        url: Full URL of the failed call.
        cause: Underlying exception.
    """

    def __init__(self, message: str, *, method: str, url: str, cause: BaseException | None = None) -> None:
        super().__init__(
            message,
            {"method": method, "url": url, "cause": str(cause) if cause else None},
        )
        self.method = method
        self.url = url
        self.cause = cause


class AdminTimeoutError(AdminClientError, TimeoutError):
    """Admin API call exceeded the client's configured timeout.

    Attributes:
        timeout_seconds: The configured timeout that was exceeded.
        method: HTTP method of the call.
        url: Full URL of the call.
    """

    def __init__(self, message: str, *, timeout_seconds: float, method: str, url: str) -> None:
        super().__init__(
            message,
            {"timeout_seconds": timeout_seconds, "method": method, "url": url},
        )
        self.timeout_seconds = timeout_seconds
        self.method = method
        self.url = url


class CaddyApiError(AdminClientError):
    """Admin API responded with a non-success status.

    Attributes:
        status_code: HTTP status code returned by Caddy.
        response_body: Raw response body (Caddy puts the reason here).
        method: HTTP method of the call.
        url: Full URL of the call.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        response_body: str = "",
        method: str,
        url: str,
    ) -> None:
        super().__init__(
            message,
            {
                "status_code": status_code,
                "response_body": response_body,
                "method": method,
                "url": url,
            },
        )
        self.status_code = status_code
        self.response_body = response_body
        self.method = method
        self.url = url


class InvalidResponseError(AdminClientError):
    """Admin API returned a success status with an unexpected body."""


class RouteNotFoundError(AdminClientError):
    """No route with the given @id exists in the server's route list."""

    def __init__(self, server_id: str, route_id: str) -> None:
        super().__init__(
            f"Route '{route_id}' not found in server '{server_id}'",
            {"server_id": server_id, "route_id": route_id},
        )
        self.server_id = server_id
        self.route_id = route_id


# =============================================================================
# Process Errors
# =============================================================================


class MitmproxyNotInstalledError(CaddyTapError):
    """The mitmweb binary is not available on PATH."""

    def __init__(self, message: str = "MITMproxy is not installed. Install with: pipx install mitmproxy") -> None:
        super().__init__(message)


class MitmproxyAlreadyRunningError(CaddyTapError):
    """A PID file names a live mitmweb process."""

    def __init__(self, pid: int) -> None:
        super().__init__(f"MITMweb is already running (pid: {pid})", {"pid": pid})
        self.pid = pid


class MitmproxyStartError(CaddyTapError):
    """mitmweb could not be spawned or never became ready.

    Attributes:
        exit_code: Exit code if the process died during startup.
    """

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        super().__init__(message, {"exit_code": exit_code})
        self.exit_code = exit_code


class ConfigurationError(CaddyTapError):
    """Configuration is missing or invalid.

    Raised when:
    - Config file does not exist (strict load only)
    - Config file contains invalid JSON
    - Config file fails Pydantic validation
    """
