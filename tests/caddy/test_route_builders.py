"""Tests for the pure route builder functions."""

from __future__ import annotations

import json

import pytest

from caddy_tap.caddy.routes import (
    SecurityHeaders,
    build_basic_auth_handler,
    build_compression_handler,
    build_health_check_route,
    build_host_route,
    build_load_balancer_route,
    build_path_route,
    build_redirect_route,
    build_reverse_proxy_handler,
    build_service_route,
    mitm_route_id,
)
from caddy_tap.constants import HEALTH_CHECK_PATH


class TestServiceRoute:
    """Tests for build_service_route, the route behind every toggle."""

    def test_host_selector(self) -> None:
        route = build_service_route(route_id="mitm_kibana", dial="kibana:5601", host="kibana.test")

        assert route.to_json() == {
            "@id": "mitm_kibana",
            "match": [{"host": ["kibana.test"]}],
            "handle": [
                {
                    "handler": "reverse_proxy",
                    "upstreams": [{"dial": "kibana:5601"}],
                    "transport": {"protocol": "http"},
                }
            ],
            "terminal": True,
        }

    def test_path_selector_strips_prefix(self) -> None:
        route = build_service_route(route_id="mitm_es", dial="mitmproxy:8080", path_prefix="/es")
        document = route.to_json()

        assert document["match"] == [{"path": ["/es/*"]}]
        assert document["handle"][0] == {"handler": "rewrite", "strip_path_prefix": "/es"}
        assert document["handle"][1]["upstreams"] == [{"dial": "mitmproxy:8080"}]

    def test_host_takes_precedence(self) -> None:
        route = build_service_route(route_id="r", dial="a:1", host="h.test", path_prefix="/p")
        assert route.to_json()["match"] == [{"host": ["h.test"]}]

    def test_requires_selector(self) -> None:
        with pytest.raises(ValueError):
            build_service_route(route_id="r", dial="a:1")

    def test_deterministic(self) -> None:
        """Identical inputs give identical documents."""
        first = build_service_route(route_id="mitm_es", dial="es:9200", path_prefix="/es")
        second = build_service_route(route_id="mitm_es", dial="es:9200", path_prefix="/es")
        assert first.to_json() == second.to_json()

    def test_route_id_prefix(self) -> None:
        assert mitm_route_id("es") == "mitm_es"


class TestReverseProxyHandler:
    """Tests for upstream TLS detection."""

    def test_plain_dial(self) -> None:
        handler = build_reverse_proxy_handler("backend:80")
        assert handler.model_dump(exclude_none=True)["transport"] == {"protocol": "http"}

    def test_https_dial_enables_tls(self) -> None:
        handler = build_reverse_proxy_handler("https://backend:443")
        dumped = handler.model_dump(exclude_none=True)

        assert dumped["upstreams"] == [{"dial": "backend:443"}]
        assert dumped["transport"]["tls"] == {}

    def test_tls_options(self) -> None:
        handler = build_reverse_proxy_handler(
            "backend:443",
            tls=True,
            tls_server_name="backend.internal",
            tls_insecure_skip_verify=True,
        )
        tls = handler.model_dump(exclude_none=True)["transport"]["tls"]

        assert tls == {"server_name": "backend.internal", "insecure_skip_verify": True}

    def test_explicit_tls_off_overrides_scheme(self) -> None:
        handler = build_reverse_proxy_handler("https://backend:443", tls=False)
        assert "tls" not in handler.model_dump(exclude_none=True)["transport"]


class TestHostAndPathRoutes:
    """Tests for build_host_route and build_path_route."""

    def test_host_route_handler_order(self) -> None:
        route = build_host_route(
            host="app.test",
            dial="app:80",
            security_headers=SecurityHeaders(enable_hsts=True, hsts_max_age=60),
            basic_auth=("admin", "$2a$14$hash"),
            route_id="app",
        )
        handlers = route.to_json()["handle"]

        assert [h["handler"] for h in handlers] == ["headers", "authentication", "reverse_proxy"]
        assert handlers[0]["response"]["set"]["Strict-Transport-Security"] == ["max-age=60; includeSubDomains"]

    def test_path_route_matches_host_and_path(self) -> None:
        route = build_path_route(path="/api", host="app.test", dial="api:80")
        document = route.to_json()

        assert document["match"] == [{"host": ["app.test"], "path": ["/api*"]}]
        assert document["handle"][0] == {"handler": "rewrite", "strip_path_prefix": "/api"}

    def test_path_route_without_strip(self) -> None:
        route = build_path_route(path="/api", host="app.test", dial="api:80", strip_prefix=False)
        assert [h["handler"] for h in route.to_json()["handle"]] == ["reverse_proxy"]


class TestHandlers:
    """Tests for auxiliary handler builders."""

    def test_security_headers_default(self) -> None:
        route = build_host_route(host="a.test", dial="a:1", security_headers=SecurityHeaders())
        headers = route.to_json()["handle"][0]["response"]["set"]

        assert headers["X-Frame-Options"] == ["DENY"]
        assert headers["X-Content-Type-Options"] == ["nosniff"]
        assert "Strict-Transport-Security" not in headers

    def test_basic_auth(self) -> None:
        handler = build_basic_auth_handler("admin", "$2a$14$hash", realm="Ops")
        provider = handler.providers["http_basic"]

        assert provider["accounts"] == [{"username": "admin", "password": "$2a$14$hash"}]
        assert provider["realm"] == "Ops"

    def test_compression_defaults(self) -> None:
        assert build_compression_handler().encodings == {"gzip": {}, "zstd": {}}

    def test_compression_brotli_opt_in(self) -> None:
        handler = build_compression_handler(gzip=False, zstd=False, brotli=True)
        assert handler.encodings == {"br": {}}


class TestStaticRoutes:
    """Tests for health check and redirect routes."""

    def test_health_check_body_is_json(self) -> None:
        route = build_health_check_route(host="a.test", service_id='svc "quoted"')
        document = route.to_json()
        handler = document["handle"][0]

        assert document["match"] == [{"host": ["a.test"], "path": [HEALTH_CHECK_PATH]}]
        assert handler["status_code"] == 200
        body = json.loads(handler["body"])
        assert body["service"] == 'svc "quoted"'
        assert body["timestamp"] == "{http.time.now.unix}"

    @pytest.mark.parametrize(("permanent", "status"), [(True, 308), (False, 307)])
    def test_redirect(self, permanent: bool, status: int) -> None:
        route = build_redirect_route(from_host="old.test", to_host="new.test", permanent=permanent)
        handler = route.to_json()["handle"][0]

        assert handler["status_code"] == status
        assert handler["headers"]["Location"] == ["https://new.test{http.request.uri}"]


class TestLoadBalancer:
    """Tests for build_load_balancer_route."""

    def test_round_robin_with_health_checks(self) -> None:
        route = build_load_balancer_route(host="lb.test", upstreams=["a:1", "b:2"])
        handler = route.to_json()["handle"][0]

        assert handler["upstreams"] == [{"dial": "a:1"}, {"dial": "b:2"}]
        assert handler["load_balancing"] == {"selection_policy": {"policy": "round_robin"}}
        assert handler["health_checks"]["active"] == {
            "path": "/health",
            "interval": "10s",
            "timeout": "5s",
            "expect_status": 200,
        }

    def test_first_policy_omits_block(self) -> None:
        route = build_load_balancer_route(host="lb.test", upstreams=["a:1"], policy="first")
        assert "load_balancing" not in route.to_json()["handle"][0]

    def test_requires_upstreams(self) -> None:
        with pytest.raises(ValueError):
            build_load_balancer_route(host="lb.test", upstreams=[])
