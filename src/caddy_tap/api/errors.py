"""Error responses for the control API.

Every error leaves the API in one shape:

    {"detail": {"code": "SERVICE_NOT_FOUND", "message": "...", "details": {...}}}

``details`` is omitted when empty; validation failures carry
``validation_errors`` instead. Routes either raise APIError directly or
let caddy-tap exceptions escape, in which case domain_error_handler picks
the status from DOMAIN_ERROR_STATUS.

Usage:
    from caddy_tap.api.errors import APIError, ErrorCode

    raise APIError(404, ErrorCode.SERVICE_NOT_FOUND, "Service not registered: es")
"""

from __future__ import annotations

__all__ = [
    "APIError",
    "DOMAIN_ERROR_STATUS",
    "ErrorCode",
    "api_error_handler",
    "domain_error_handler",
    "http_exception_handler",
    "validation_error_handler",
]

from collections.abc import Sequence
from enum import Enum
from typing import Any

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from caddy_tap.exceptions import (
    AdminClientError,
    AdminTimeoutError,
    CaddyTapError,
    NetworkError,
    UnknownProxyError,
    UnknownServiceError,
)


class ErrorCode(str, Enum):
    """Machine-readable error codes.

    SERVICE_* and PROXY_* name the registry lookup that failed; UPSTREAM_*
    and SERVICE_UNAVAILABLE describe the Caddy admin API call behind a
    toggle.
    """

    SERVICE_NOT_FOUND = "SERVICE_NOT_FOUND"
    PROXY_NOT_FOUND = "PROXY_NOT_FOUND"
    NOT_FOUND = "NOT_FOUND"

    VALIDATION_ERROR = "VALIDATION_ERROR"

    INTERNAL_ERROR = "INTERNAL_ERROR"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    UPSTREAM_TIMEOUT = "UPSTREAM_TIMEOUT"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


# First match wins, so subclasses precede AdminClientError
DOMAIN_ERROR_STATUS: Sequence[tuple[type[CaddyTapError], int, ErrorCode]] = (
    (UnknownServiceError, 404, ErrorCode.SERVICE_NOT_FOUND),
    (UnknownProxyError, 404, ErrorCode.PROXY_NOT_FOUND),
    (AdminTimeoutError, 504, ErrorCode.UPSTREAM_TIMEOUT),
    (NetworkError, 502, ErrorCode.SERVICE_UNAVAILABLE),
    (AdminClientError, 502, ErrorCode.UPSTREAM_ERROR),
)

_PLAIN_STATUS_CODES: dict[int, ErrorCode] = {
    400: ErrorCode.VALIDATION_ERROR,
    404: ErrorCode.NOT_FOUND,
    422: ErrorCode.VALIDATION_ERROR,
    502: ErrorCode.UPSTREAM_ERROR,
    503: ErrorCode.SERVICE_UNAVAILABLE,
    504: ErrorCode.UPSTREAM_TIMEOUT,
}


def _error_body(code: ErrorCode, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"code": code.value, "message": message}
    if details:
        body["details"] = details
    return body


def _respond(status_code: int, body: dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": body})


class APIError(HTTPException):
    """HTTPException whose detail is a structured error body.

    Attributes:
        code: Error code for programmatic handling.
        error_message: Human-readable message.
        error_details: Extra context, if any.
    """

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=_error_body(code, message, details))
        self.code = code
        self.error_message = message
        self.error_details = details

    @classmethod
    def from_domain_error(cls, exc: CaddyTapError) -> APIError:
        """Translate a caddy-tap exception into its HTTP form."""
        for error_type, status_code, code in DOMAIN_ERROR_STATUS:
            if isinstance(exc, error_type):
                break
        else:
            status_code, code = 500, ErrorCode.INTERNAL_ERROR
        return cls(status_code, code, exc.message, exc.context or None)


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    return _respond(exc.status_code, exc.detail)


async def domain_error_handler(request: Request, exc: CaddyTapError) -> JSONResponse:
    """Map registry and admin API errors escaping a route to 404/502/504."""
    api_error = APIError.from_domain_error(exc)
    return _respond(api_error.status_code, api_error.detail)


def _summarize_validation(errors: Sequence[Any]) -> str:
    if len(errors) != 1:
        return f"{len(errors)} validation errors"
    error = errors[0]
    location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
    reason = error.get("msg", "Validation error")
    return f"{location}: {reason}" if location else reason


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with one summary message plus each field-level error."""
    errors = exc.errors()
    body = _error_body(ErrorCode.VALIDATION_ERROR, _summarize_validation(errors))
    body["validation_errors"] = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in errors
    ]
    return _respond(422, body)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Give plain HTTPExceptions (unknown paths, missing registry) the structured shape."""
    if isinstance(exc.detail, dict) and "code" in exc.detail:
        return _respond(exc.status_code, exc.detail)

    code = _PLAIN_STATUS_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    return _respond(exc.status_code, _error_body(code, str(exc.detail or f"HTTP {exc.status_code}")))
