"""
Gateway tests: host-gated docs access through the full ASGI stack.

Backends are httpx.MockTransport handlers; no network.
"""
from __future__ import annotations

import asyncio
import textwrap

import httpx
import pytest
from starlette.testclient import TestClient

from docsgate.config.settings import Settings
from docsgate.gateway.dispatch import BackendDispatcher, BackendRegistry
from docsgate.gateway.main import create_app
from docsgate.gateway.middleware import DENY_DETAIL, ETAG_HEADER
from docsgate.metrics.registry import METRICS
from docsgate.routing.state import RouteTableState

ROUTES = textwrap.dedent(
    """
    routes:
      - service: docs-svc
        prefix: /swagger
        rewrite_target: /internal-docs
        allowed_hosts: [swagger.dev.example.com, localhost]
      - service: ghost-svc
        prefix: /redoc
        rewrite_target: /internal-redoc
        allowed_hosts: [swagger.dev.example.com]
    backends:
      docs-svc:
        url: http://docs-svc:8080
      webhooks-svc:
        url: http://webhooks-svc:8080
        prefixes: [/webhooks, /health]
    """
).strip()


class Upstream:
    def __init__(self):
        self.calls = []
        self.fail = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if self.fail:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"host": request.url.host, "target": request.url.raw_path.decode()})


@pytest.fixture
def upstream():
    return Upstream()


@pytest.fixture
def app(tmp_path, upstream):
    p = tmp_path / "routes.yaml"
    p.write_text(ROUTES, encoding="utf-8")
    settings = Settings(ROUTES_PATH=str(p), TRUSTED_PROXY_CIDRS="10.0.0.0/8")
    state = RouteTableState(path=str(p))
    registry = BackendRegistry.from_sources(state.document.backends, {}, state.document.default_backend)
    dispatcher = BackendDispatcher(registry, client=httpx.AsyncClient(transport=httpx.MockTransport(upstream)))
    return create_app(settings, state=state, dispatcher=dispatcher)


def _client(app, host: str) -> TestClient:
    return TestClient(app, base_url=f"http://{host}")


def test_public_host_gets_403_and_no_dispatch(app, upstream):
    r = _client(app, "webhooks.dev.example.com").get("/swagger")
    assert r.status_code == 403
    assert r.json() == {"detail": DENY_DETAIL}
    assert "/internal-docs" not in r.text
    assert "docs-svc" not in r.text
    assert upstream.calls == []
    assert METRICS.get("docsgate_requests_total", {"result": "deny"}) == 1


@pytest.mark.parametrize("path", ["/swagger", "/swagger/ui", "/SWAGGER/index.html", "/swagger/?x=1"])
def test_public_host_denied_for_all_protected_paths(app, upstream, path):
    r = _client(app, "webhooks.dev.example.com").get(path)
    assert r.status_code == 403
    assert upstream.calls == []


def test_swagger_host_rewritten_and_dispatched(app, upstream):
    r = _client(app, "swagger.dev.example.com").get("/swagger/ui?url=%2Fopenapi.json")
    assert r.status_code == 200
    assert r.json() == {"host": "docs-svc", "target": "/internal-docs/ui?url=%2Fopenapi.json"}
    assert r.headers[ETAG_HEADER]
    assert len(upstream.calls) == 1
    assert upstream.calls[0].headers["x-forwarded-host"] == "swagger.dev.example.com"


def test_host_with_port_and_case_is_allowed(app, upstream):
    r = _client(app, "Swagger.Dev.Example.com:443").get("/swagger")
    assert r.status_code == 200
    assert r.json()["target"] == "/internal-docs"


@pytest.mark.parametrize("host", ["webhooks.dev.example.com", "swagger.dev.example.com"])
def test_unprotected_path_passes_through_byte_identical(app, upstream, host):
    r = _client(app, host).get("/health/deep%20check?verbose=1&x=%2Fswagger")
    assert r.status_code == 200
    assert r.json() == {"host": "webhooks-svc", "target": "/health/deep%20check?verbose=1&x=%2Fswagger"}
    assert ETAG_HEADER not in r.headers


def test_lookalike_prefix_is_not_protected(app, upstream):
    r = _client(app, "webhooks.dev.example.com").get("/swaggerx")
    # no owning backend and no default backend
    assert r.status_code == 404
    assert upstream.calls == []


def test_unknown_service_is_local_404(app, upstream):
    r = _client(app, "swagger.dev.example.com").get("/redoc")
    assert r.status_code == 404
    assert r.json() == {"detail": "Not Found"}
    assert upstream.calls == []


def test_backend_failure_is_502(app, upstream):
    upstream.fail = True
    r = _client(app, "swagger.dev.example.com").get("/swagger")
    assert r.status_code == 502
    assert r.json() == {"detail": "upstream unavailable"}
    assert len(upstream.calls) == 1


def test_empty_host_header_is_denied(app, upstream):
    r = _client(app, "swagger.dev.example.com").get("/swagger", headers={"host": ""})
    assert r.status_code == 403
    assert upstream.calls == []


def test_healthz_served_by_gateway(app, upstream):
    r = _client(app, "webhooks.dev.example.com").get("/healthz")
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["routes"] == 2
    assert upstream.calls == []


def test_metrics_endpoint(app):
    _client(app, "webhooks.dev.example.com").get("/swagger")
    r = _client(app, "webhooks.dev.example.com").get("/metrics")
    assert r.status_code == 200
    assert 'docsgate_requests_total{result="deny"} 1.0' in r.text


def test_reload_takes_effect_for_next_request(app, upstream):
    state = app.state.route_state
    state.inline = ROUTES.replace(
        "allowed_hosts: [swagger.dev.example.com, localhost]",
        "allowed_hosts: [swagger.dev.example.com, webhooks.dev.example.com]",
    )
    assert state.reload() is True
    r = _client(app, "webhooks.dev.example.com").get("/swagger")
    assert r.status_code == 200


# --- raw ASGI calls (no Host header, trusted proxies) ---


async def _asgi_get(app, path, headers, client=("127.0.0.1", 50000), raw_path=None):
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": path,
        "raw_path": (raw_path or path).encode(),
        "query_string": b"",
        "root_path": "",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers],
        "client": client,
        "server": ("gateway", 80),
    }
    messages = []
    done = asyncio.Event()
    sent_request = False

    async def receive():
        nonlocal sent_request
        if not sent_request:
            sent_request = True
            return {"type": "http.request", "body": b"", "more_body": False}
        await done.wait()
        return {"type": "http.disconnect"}

    async def send(message):
        messages.append(message)
        if message["type"] == "http.response.body" and not message.get("more_body", False):
            done.set()

    await app(scope, receive, send)
    start = next(m for m in messages if m["type"] == "http.response.start")
    return start["status"], dict(start["headers"])


def test_missing_host_header_is_denied(app, upstream):
    status, _ = asyncio.run(_asgi_get(app, "/swagger", []))
    assert status == 403
    assert upstream.calls == []


def test_missing_host_header_passthrough_still_works(app, upstream):
    status, _ = asyncio.run(_asgi_get(app, "/health", []))
    assert status == 200
    assert upstream.calls[0].url.raw_path == b"/health"


def test_forwarded_host_honored_from_trusted_proxy(app, upstream):
    headers = [("host", "webhooks.dev.example.com"), ("x-forwarded-host", "swagger.dev.example.com")]
    status, _ = asyncio.run(_asgi_get(app, "/swagger", headers, client=("10.1.2.3", 40000)))
    assert status == 200


def test_forwarded_host_ignored_from_untrusted_peer(app, upstream):
    headers = [("host", "webhooks.dev.example.com"), ("x-forwarded-host", "swagger.dev.example.com")]
    status, _ = asyncio.run(_asgi_get(app, "/swagger", headers, client=("203.0.113.9", 40000)))
    assert status == 403
    assert upstream.calls == []


# --- dot segments ---


@pytest.mark.parametrize(
    "path,raw_path",
    [
        ("/x/../swagger", None),
        ("/health/../swagger/ui", None),
        ("/./swagger", None),
        ("/x/../swagger", "/x/%2e%2e/swagger"),
        ("/x/../swagger", "/x/%2E%2e/swagger"),
        ("/../../swagger/", None),
    ],
)
def test_dot_segments_cannot_reach_docs_from_public_host(app, upstream, path, raw_path):
    headers = [("host", "webhooks.dev.example.com")]
    status, _ = asyncio.run(_asgi_get(app, path, headers, raw_path=raw_path))
    assert status == 403
    assert upstream.calls == []
    assert METRICS.get("docsgate_requests_total", {"result": "deny"}) == 1


def test_dot_segments_on_docs_host_are_rewritten(app, upstream):
    headers = [("host", "swagger.dev.example.com")]
    status, _ = asyncio.run(_asgi_get(app, "/x/../swagger/ui", headers, raw_path="/x/%2e%2e/swagger/ui"))
    assert status == 200
    assert upstream.calls[0].url.raw_path == b"/internal-docs/ui"


def test_passthrough_forwards_resolved_path(app, upstream):
    headers = [("host", "webhooks.dev.example.com")]
    status, _ = asyncio.run(_asgi_get(app, "/health/./deep/../live", headers))
    assert status == 200
    assert upstream.calls[0].url.raw_path == b"/health/live"
    assert upstream.calls[0].url.host == "webhooks-svc"
