"""
Security middleware for the SMART launch service.

Tags each request with a request ID, adds security headers to responses,
enforces request size limits, and rate limits API traffic.
"""

from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from smartlaunch.audit import AuditEvent, audit_log
from smartlaunch.config.logging import set_request_id
from smartlaunch.constants import SESSION_COOKIE_NAME
from smartlaunch.rate_limiter import get_rate_limiter
from smartlaunch.routers.session import get_client_ip

REQUEST_ID_HEADER = "X-Request-ID"

# Handled by its own, stricter per-IP limiter in the launch router
RATE_LIMIT_EXEMPT_PATHS = frozenset({"/callback", "/health"})


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request ID to the logging context and echo it on the response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER)
        request_id = set_request_id(incoming[:64] if incoming else None)

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-session sliding window rate limit.

    Requests without a session cookie are limited by client IP.
    """

    def __init__(self, app, session_cookie_name: str = SESSION_COOKIE_NAME) -> None:
        super().__init__(app)
        self.session_cookie_name = session_cookie_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in RATE_LIMIT_EXEMPT_PATHS:
            return await call_next(request)

        session_id = request.cookies.get(self.session_cookie_name)
        key = session_id or f"ip:{get_client_ip(request)}"

        limiter = get_rate_limiter()
        if not limiter.check(key):
            audit_log(
                AuditEvent.SECURITY_RATE_LIMIT,
                session_id=session_id,
                success=False,
                details={"path": path, "method": request.method},
            )
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests. Please try again later."},
                headers={"Retry-After": str(limiter.retry_after(key) or limiter.window_seconds)},
            )

        return await call_next(request)


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests whose declared Content-Length exceeds the limit."""

    def __init__(self, app, max_body_size: int = 1024 * 1024) -> None:
        super().__init__(app)
        self.max_body_size = max_body_size

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.max_body_size:
            return JSONResponse(
                status_code=413,
                content={
                    "detail": f"Request body too large. Maximum size is {self.max_body_size} bytes."
                },
            )

        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cache-Control"] = "no-store"

        if "text/html" in response.headers.get("content-type", ""):
            response.headers.setdefault(
                "Content-Security-Policy", "default-src 'none'; style-src 'unsafe-inline'"
            )

        return response
