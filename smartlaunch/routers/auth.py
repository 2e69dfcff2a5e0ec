"""
Session authentication endpoints.

- GET /auth/status - What the session's SMART token allows
- POST /auth/logout - Forget the session's SMART token

Launching is handled at /launch and /callback (see launch.py).
"""

from typing import Any

from fastapi import APIRouter, Request

from smartlaunch.auth.token_manager import get_token_manager
from smartlaunch.models.auth import AuthStatusResponse
from smartlaunch.routers.session import get_session_id, require_csrf_header

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/status", response_model=AuthStatusResponse)
async def get_auth_status(request: Request) -> AuthStatusResponse:
    """
    Get authentication status for the current session.

    A session without a cookie, or whose token has expired, is reported
    as unauthenticated.
    """
    session_id = get_session_id(request, create_if_missing=False)
    if not session_id:
        return AuthStatusResponse()

    return await get_token_manager().get_auth_status(session_id)


@router.post("/logout")
async def logout(request: Request) -> dict[str, Any]:
    """
    Remove the session's SMART token.

    CSRF Protection: Requires the X-Requested-With header to be set.
    """
    require_csrf_header(request)

    session_id = get_session_id(request, create_if_missing=False)
    if session_id:
        await get_token_manager().delete_token(session_id)

    return {"success": True, "message": "Logged out"}
