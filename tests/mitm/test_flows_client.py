"""Tests for the mitmweb flows client."""

from __future__ import annotations

import httpx
import pytest

from caddy_tap.exceptions import CaddyApiError, InvalidResponseError, NetworkError
from caddy_tap.mitm.flows import MitmwebClient

FLOWS = [
    {"id": "1", "request": {"method": "GET", "host": "es.test", "path": "/_search"}, "response": {"status_code": 200}},
    {"id": "2", "request": {"method": "post", "host": "es.test", "path": "/_bulk"}, "response": {"status_code": 200}},
    {"id": "3", "request": {"method": "GET", "host": "kibana.test", "path": "/_search"}},
]


class FakeMitmweb:
    """Answers /flows, / (setting the XSRF cookie) and /clear."""

    def __init__(self, flows: object = FLOWS) -> None:
        self.flows = flows
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/flows" and request.method == "GET":
            return httpx.Response(200, json=self.flows)
        if path == "/" and request.method == "GET":
            return httpx.Response(200, text="<html>", headers={"Set-Cookie": "_xsrf=token123; Path=/"})
        if path == "/clear" and request.method == "POST":
            if request.headers.get("X-XSRFToken") != "token123":
                return httpx.Response(403)
            self.flows = []
            return httpx.Response(200)
        return httpx.Response(404)


@pytest.fixture
def mitmweb() -> FakeMitmweb:
    return FakeMitmweb()


@pytest.fixture
def client(mitmweb: FakeMitmweb) -> MitmwebClient:
    return MitmwebClient("http://mitmweb.test:8081/", transport=httpx.MockTransport(mitmweb.handler))


class TestFlows:
    """Tests for reading flows."""

    async def test_get_flows(self, client: MitmwebClient) -> None:
        flows = await client.get_flows()
        assert [f["id"] for f in flows] == ["1", "2", "3"]

    async def test_find_by_path(self, client: MitmwebClient) -> None:
        flows = await client.find_flows("/_search")
        assert [f["id"] for f in flows] == ["1", "3"]

    async def test_find_by_host_and_method(self, client: MitmwebClient) -> None:
        flows = await client.find_flows(host="es.test", method="POST")
        assert [f["id"] for f in flows] == ["2"]

    async def test_find_no_match(self, client: MitmwebClient) -> None:
        assert await client.find_flows("/missing") == []

    async def test_non_list_rejected(self, mitmweb: FakeMitmweb, client: MitmwebClient) -> None:
        mitmweb.flows = {"flows": []}
        with pytest.raises(InvalidResponseError):
            await client.get_flows()


class TestClear:
    """Tests for clearing flows with the XSRF handshake."""

    async def test_clear_fetches_cookie_first(self, mitmweb: FakeMitmweb, client: MitmwebClient) -> None:
        await client.clear_flows()

        assert [(r.method, r.url.path) for r in mitmweb.requests] == [("GET", "/"), ("POST", "/clear")]
        assert mitmweb.flows == []

    async def test_clear_reuses_cookie(self, mitmweb: FakeMitmweb, client: MitmwebClient) -> None:
        await client.clear_flows()
        await client.clear_flows()

        assert [r.url.path for r in mitmweb.requests].count("/") == 1


class TestErrors:
    """Tests for error translation."""

    async def test_http_error(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        async with MitmwebClient("http://mitmweb.test", transport=transport) as client:
            with pytest.raises(CaddyApiError) as exc_info:
                await client.get_flows()

        assert exc_info.value.status_code == 500

    async def test_connection_error(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with MitmwebClient("http://mitmweb.test", transport=httpx.MockTransport(refuse)) as client:
            with pytest.raises(NetworkError):
                await client.get_flows()
