"""
Tests for security middleware.
"""

import pytest
from starlette.applications import Starlette
from starlette.responses import HTMLResponse, JSONResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from smartlaunch.config.logging import get_request_id
from smartlaunch.constants import SESSION_COOKIE_NAME
from smartlaunch.middleware.security import (
    RateLimitMiddleware,
    RequestIdMiddleware,
    RequestSizeLimitMiddleware,
    SecurityHeadersMiddleware,
)


async def json_endpoint(request):
    return JSONResponse({"status": "ok"})


async def html_endpoint(request):
    return HTMLResponse("<html><body>Test</body></html>")


async def request_id_endpoint(request):
    return JSONResponse({"request_id": get_request_id()})


def make_app(*middleware) -> Starlette:
    app = Starlette(
        routes=[
            Route("/", json_endpoint, methods=["GET", "POST"]),
            Route("/page", html_endpoint),
            Route("/callback", json_endpoint),
            Route("/rid", request_id_endpoint),
        ]
    )
    for cls, kwargs in middleware:
        app.add_middleware(cls, **kwargs)
    return app


class TestSecurityHeadersMiddleware:
    """Tests for SecurityHeadersMiddleware."""

    def test_adds_security_headers(self):
        client = TestClient(make_app((SecurityHeadersMiddleware, {})))

        response = client.get("/")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["Referrer-Policy"] == "no-referrer"
        assert response.headers["Cache-Control"] == "no-store"
        assert "Content-Security-Policy" not in response.headers

    def test_adds_csp_for_html(self):
        client = TestClient(make_app((SecurityHeadersMiddleware, {})))

        response = client.get("/page")

        assert response.headers["Content-Security-Policy"] == (
            "default-src 'none'; style-src 'unsafe-inline'"
        )


class TestRequestIdMiddleware:
    """Tests for RequestIdMiddleware."""

    def test_generates_request_id(self):
        client = TestClient(make_app((RequestIdMiddleware, {})))

        response = client.get("/rid")

        request_id = response.headers["X-Request-ID"]
        assert len(request_id) == 8
        assert response.json()["request_id"] == request_id

    def test_propagates_incoming_request_id(self):
        client = TestClient(make_app((RequestIdMiddleware, {})))

        response = client.get("/rid", headers={"X-Request-ID": "upstream-id"})

        assert response.headers["X-Request-ID"] == "upstream-id"
        assert response.json()["request_id"] == "upstream-id"


class TestRateLimitMiddleware:
    """Tests for RateLimitMiddleware."""

    @pytest.fixture
    def limited_client(self, monkeypatch):
        monkeypatch.setenv("SMART_LAUNCH_RATE_LIMIT_MAX", "2")
        return TestClient(make_app((RateLimitMiddleware, {})))

    def test_blocks_after_limit(self, limited_client):
        """The third request in a window should get 429 with Retry-After."""
        limited_client.cookies.set(SESSION_COOKIE_NAME, "session-1")

        assert limited_client.get("/").status_code == 200
        assert limited_client.get("/").status_code == 200
        response = limited_client.get("/")

        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) > 0

    def test_sessions_limited_separately(self, limited_client):
        """Another session should not be affected by the first one's traffic."""
        limited_client.cookies.set(SESSION_COOKIE_NAME, "session-1")
        for _ in range(3):
            limited_client.get("/")

        limited_client.cookies.set(SESSION_COOKIE_NAME, "session-2")
        assert limited_client.get("/").status_code == 200

    def test_callback_exempt(self, limited_client):
        """/callback has its own limiter and is skipped here."""
        for _ in range(5):
            assert limited_client.get("/callback").status_code == 200


class TestRequestSizeLimitMiddleware:
    """Tests for RequestSizeLimitMiddleware."""

    def test_rejects_large_body(self):
        client = TestClient(make_app((RequestSizeLimitMiddleware, {"max_body_size": 10})))

        response = client.post("/", content=b"x" * 11)

        assert response.status_code == 413

    def test_allows_small_body(self):
        client = TestClient(make_app((RequestSizeLimitMiddleware, {"max_body_size": 10})))

        assert client.post("/", content=b"x" * 10).status_code == 200
