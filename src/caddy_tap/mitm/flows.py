"""Client for the mitmweb web API.

Reads and clears captured flows so callers can check whether traffic
actually passed through an interception proxy.

Usage:
    async with MitmwebClient(instance.web_url) as flows:
        captured = await flows.find_flows(path="/es/_search")
"""

from __future__ import annotations

__all__ = [
    "MitmwebClient",
]

import json
import logging
from typing import Any

import httpx

from caddy_tap.constants import APP_NAME, DEFAULT_ADMIN_TIMEOUT_SECONDS
from caddy_tap.exceptions import (
    AdminTimeoutError,
    CaddyApiError,
    InvalidResponseError,
    NetworkError,
)

_logger = logging.getLogger(f"{APP_NAME}.mitm.flows")

# mitmweb (tornado) rejects state-changing requests without this pair
_XSRF_COOKIE = "_xsrf"
_XSRF_HEADER = "X-XSRFToken"


class MitmwebClient:
    """Async client for one mitmweb instance.

    Attributes:
        web_url: Base URL of the mitmweb UI/API.
        timeout_seconds: Deadline applied to every call.
    """

    def __init__(
        self,
        web_url: str,
        timeout_seconds: float = DEFAULT_ADMIN_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.web_url = web_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = httpx.AsyncClient(
            base_url=self.web_url,
            timeout=timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> MitmwebClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.web_url}{path}"
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise AdminTimeoutError(
                f"mitmweb request to {path} timed out after {self.timeout_seconds}s",
                timeout_seconds=self.timeout_seconds,
                method=method,
                url=url,
            ) from e
        except httpx.TransportError as e:
            raise NetworkError(
                f"mitmweb request to {path} failed: {e}",
                method=method,
                url=url,
                cause=e,
            ) from e

        if not response.is_success:
            raise CaddyApiError(
                f"mitmweb request failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                response_body=response.text,
                method=method,
                url=url,
            )
        return response

    async def get_flows(self) -> list[dict[str, Any]]:
        """Return every flow mitmweb currently holds."""
        response = await self._request("GET", "/flows")
        try:
            flows = response.json()
        except json.JSONDecodeError as e:
            raise InvalidResponseError(f"Invalid JSON from mitmweb /flows: {e}") from e
        if not isinstance(flows, list):
            raise InvalidResponseError("Invalid flows response from mitmweb")
        return flows

    async def find_flows(
        self,
        path: str | None = None,
        *,
        host: str | None = None,
        method: str | None = None,
    ) -> list[dict[str, Any]]:
        """Return flows whose request matches every given filter.

        Args:
            path: Exact request path (including query string, as mitmweb reports it).
            host: Request host.
            method: HTTP method, case-insensitive.
        """
        matches = []
        for flow in await self.get_flows():
            request = flow.get("request") or {}
            if path is not None and request.get("path") != path:
                continue
            if host is not None and request.get("host") != host:
                continue
            if method is not None and str(request.get("method", "")).upper() != method.upper():
                continue
            matches.append(flow)
        return matches

    async def clear_flows(self) -> None:
        """Delete all captured flows.

        Fetches the UI root first if no XSRF cookie is held yet, then
        echoes the cookie in the X-XSRFToken header.
        """
        token = self._client.cookies.get(_XSRF_COOKIE)
        if token is None:
            await self._request("GET", "/")
            token = self._client.cookies.get(_XSRF_COOKIE)

        headers = {_XSRF_HEADER: token} if token else {}
        await self._request("POST", "/clear", headers=headers)

        _logger.info(
            {
                "event": "flows_cleared",
                "message": f"Cleared flows on {self.web_url}",
            }
        )
