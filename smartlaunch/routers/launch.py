"""
SMART launch endpoints.

- GET /launch - EHR or standalone launch entry point; redirects to the
  issuer's authorization endpoint
- GET /callback - OAuth redirect target; exchanges the code and stores the
  token for the browser session
"""

import html

from fastapi import APIRouter, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from smartlaunch.audit import AuditEvent, audit_log
from smartlaunch.config.settings import get_settings
from smartlaunch.errors import (
    AuthorizationDeniedError,
    DiscoveryError,
    LaunchError,
    StateMismatchError,
    TokenExchangeError,
)
from smartlaunch.models.launch import LaunchConfig
from smartlaunch.rate_limiter import get_callback_rate_limiter
from smartlaunch.routers.session import get_client_ip, get_session_id, set_session_cookie
from smartlaunch.services.launch import begin_launch, complete_launch

router = APIRouter(tags=["launch"])

CSP_HEADER = "default-src 'none'; style-src 'unsafe-inline'"


def _page(title: str, *lines: str, status_code: int = 200) -> HTMLResponse:
    """Render a minimal HTML result page. Lines must already be escaped."""
    body = "\n".join(f"        <p>{line}</p>" for line in lines)
    return HTMLResponse(
        content=f"""<!DOCTYPE html>
<html>
<head><title>{title}</title></head>
<body>
        <h1>{title}</h1>
{body}
</body>
</html>
""",
        status_code=status_code,
        headers={"Content-Security-Policy": CSP_HEADER},
    )


@router.get("/launch", response_model=None)
async def start_launch(
    request: Request,
    iss: str | None = Query(None, description="FHIR server base URL"),
    launch: str | None = Query(None, description="Opaque EHR launch token"),
    redirect: bool = Query(True, description="Redirect to the authorization URL or return JSON"),
) -> RedirectResponse | JSONResponse:
    """
    Start a SMART launch.

    An EHR launch supplies ``iss`` and ``launch``; a standalone launch may
    omit both when a default issuer is configured.
    """
    session_id = get_session_id(request)
    params = {key: value for key, value in (("iss", iss), ("launch", launch)) if value}

    result = await begin_launch(LaunchConfig.from_settings(get_settings()), params, session_id)

    if redirect:
        response = RedirectResponse(url=result.authorization_url, status_code=302)
    else:
        response = JSONResponse(content=result.model_dump())
    set_session_cookie(response, session_id)
    return response


@router.get("/callback", response_class=HTMLResponse)
async def callback(request: Request) -> HTMLResponse:
    """
    Complete a SMART launch.

    Receives ``code`` and ``state`` (or ``error``) from the authorization
    server. The launch context is looked up by state and must belong to
    the browser session carried by the cookie.
    """
    client_ip = get_client_ip(request)
    if not get_callback_rate_limiter().check(client_ip):
        audit_log(
            AuditEvent.SECURITY_RATE_LIMIT,
            success=False,
            details={"ip": client_ip, "endpoint": "/callback"},
        )
        return _page(
            "Too Many Requests",
            "Please wait a moment and try again.",
            status_code=429,
        )

    session_id = get_session_id(request, create_if_missing=False) or ""

    try:
        token = await complete_launch(dict(request.query_params), session_id)
    except AuthorizationDeniedError as e:
        return _page(
            "Authorization Denied",
            f"Error: {html.escape(e.description or e.error)}",
            "Please close this window and launch the app again.",
            status_code=400,
        )
    except StateMismatchError:
        return _page(
            "Invalid State",
            "The launch state was not found, has expired, or belongs to another session.",
            "Please launch the app again.",
            status_code=400,
        )
    except (DiscoveryError, TokenExchangeError) as e:
        return _page(
            "Token Exchange Failed",
            f"Error: {html.escape(e.message)}",
            status_code=502,
        )
    except LaunchError as e:
        return _page("Launch Failed", f"Error: {html.escape(e.message)}", status_code=400)

    issuer = html.escape(token.iss)
    response = _page(
        "Launch Complete",
        f"You are connected to {issuer}.",
        "You can close this window and return to the scoring tool.",
    )
    set_session_cookie(response, session_id)
    return response
