"""
Shared session utilities for router endpoints.

The session cookie identifies whose launch contexts and token a request
may use; it plays the part of browser session storage.
"""

import ipaddress
import secrets

from fastapi import HTTPException, Request
from fastapi.responses import Response

from smartlaunch.audit import AuditEvent, audit_log
from smartlaunch.config.settings import get_settings
from smartlaunch.constants import SESSION_COOKIE_NAME

# Loopback and private ranges commonly used by load balancers and reverse proxies
DEFAULT_TRUSTED_PROXIES = [
    "127.0.0.0/8",
    "::1/128",
    "10.0.0.0/8",
    "172.16.0.0/12",
    "192.168.0.0/16",
    "fc00::/7",
]


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


def get_session_id(request: Request, create_if_missing: bool = True) -> str | None:
    """
    Get session ID from cookie.

    Args:
        request: FastAPI request
        create_if_missing: If True, mint a new ID when no session cookie exists

    Returns:
        Session ID string, or None if not found and create_if_missing=False
    """
    session_id = request.cookies.get(SESSION_COOKIE_NAME)
    if not session_id and create_if_missing:
        session_id = new_session_id()
    return session_id


def set_session_cookie(response: Response, session_id: str) -> None:
    """Set session cookie on response."""
    settings = get_settings()
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=session_id,
        max_age=settings.session_max_age,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )


def _trusted_networks() -> list[ipaddress.IPv4Network | ipaddress.IPv6Network]:
    """Parse SMART_LAUNCH_TRUSTED_PROXY_CIDRS ("" = defaults, "none" = trust nothing)."""
    configured = get_settings().trusted_proxy_cidrs.strip()

    if configured.lower() == "none":
        return []

    cidrs = (
        [cidr.strip() for cidr in configured.split(",") if cidr.strip()]
        if configured
        else DEFAULT_TRUSTED_PROXIES
    )

    networks = []
    for cidr in cidrs:
        try:
            networks.append(ipaddress.ip_network(cidr, strict=False))
        except ValueError:
            continue
    return networks


def get_client_ip(request: Request) -> str:
    """
    Extract the client IP, honouring X-Forwarded-For / X-Real-IP only
    when the direct peer is a trusted proxy.
    """
    direct_ip = request.client.host if request.client else None
    if not direct_ip:
        return "unknown"

    try:
        peer = ipaddress.ip_address(direct_ip)
    except ValueError:
        return direct_ip

    if not any(peer in network for network in _trusted_networks()):
        return direct_ip

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    return direct_ip


# Browsers won't send custom headers cross-origin without a CORS preflight
CSRF_HEADER_NAME = "x-requested-with"


def require_csrf_header(request: Request) -> None:
    """
    Reject state-changing requests that lack the X-Requested-With header.

    Raises:
        HTTPException: 403 when the header is missing
    """
    if request.headers.get(CSRF_HEADER_NAME):
        return

    audit_log(
        AuditEvent.SECURITY_CSRF_VIOLATION,
        success=False,
        error="Missing X-Requested-With header",
        details={"endpoint": request.url.path},
    )
    raise HTTPException(
        status_code=403,
        detail="Missing required header: X-Requested-With",
    )
