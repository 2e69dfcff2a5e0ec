"""
Bearer-authenticated access to the FHIR server a session launched against.

Both entry points read the session's token first and fail before any
network traffic when there is none. Paths are resolved against the
token's issuer; the token is never sent anywhere else.
"""

import json
from collections.abc import Mapping
from typing import Any

import aiohttp
from multidict import CIMultiDict

from smartlaunch.audit import METHOD_EVENTS, AuditEvent, audit_log
from smartlaunch.auth.token_manager import SessionTokenManager, get_token_manager
from smartlaunch.config.logging import get_logger
from smartlaunch.config.settings import get_settings
from smartlaunch.constants import FHIR_JSON_CONTENT_TYPE, JSON_CONTENT_TYPE
from smartlaunch.errors import NoTokenError, SmartRequestError
from smartlaunch.models.auth import SmartToken
from smartlaunch.services.oauth import issuer_url
from smartlaunch.validation import validate_resource_path

logger = get_logger(__name__)


async def _require_token(session_id: str, token_manager: SessionTokenManager | None) -> SmartToken:
    manager = token_manager or get_token_manager()
    token = await manager.get_token(session_id)
    if token is None:
        raise NoTokenError()
    return token


def _request_headers(
    token: SmartToken,
    has_body: bool,
    headers: dict[str, str] | None,
) -> CIMultiDict:
    merged = CIMultiDict(Accept=FHIR_JSON_CONTENT_TYPE)
    for name, value in (headers or {}).items():
        merged[name] = value
    caller_content_type = merged.popone("Content-Type", None)
    merged["Authorization"] = f"Bearer {token.access_token}"
    if has_body:
        merged["Content-Type"] = FHIR_JSON_CONTENT_TYPE
    else:
        merged["Content-Type"] = caller_content_type or JSON_CONTENT_TYPE
    return merged


async def _send(
    operation: str,
    token: SmartToken,
    session_id: str,
    resource_path: str,
    method: str,
    body: str | None,
    headers: Mapping[str, str],
) -> Any:
    path = validate_resource_path(resource_path)
    url = issuer_url(token.iss, path)
    client_timeout = aiohttp.ClientTimeout(total=get_settings().request_timeout)

    async with aiohttp.ClientSession(timeout=client_timeout) as session:
        async with session.request(method, url, headers=headers, data=body) as resp:
            if not 200 <= resp.status < 300:
                error_body = await resp.text()
                audit_log(
                    AuditEvent.RESOURCE_ACCESS_ERROR,
                    session_id=session_id,
                    iss=token.iss,
                    resource_path=path,
                    success=False,
                    error=f"{method} returned {resp.status}",
                )
                logger.warning(
                    f"SMART {operation} failed",
                    method=method,
                    status_code=resp.status,
                    iss=token.iss,
                )
                raise SmartRequestError(operation, resp.status, error_body)

            result = await resp.json(content_type=None)

    audit_log(
        METHOD_EVENTS.get(method, AuditEvent.RESOURCE_READ),
        session_id=session_id,
        iss=token.iss,
        resource_path=path,
    )
    return result


async def smart_fetch(
    session_id: str,
    resource_path: str,
    token_manager: SessionTokenManager | None = None,
) -> Any:
    """
    GET a FHIR resource path with the session's bearer token.

    Args:
        session_id: Session holding the token
        resource_path: Path relative to the issuer, e.g. ``Patient/123``
        token_manager: Storage facade (defaults to the process singleton)

    Returns:
        Parsed JSON response

    Raises:
        NoTokenError: If the session holds no unexpired token
        InvalidResourcePathError: If the path leaves the issuer
        SmartRequestError: If the server answers with a failure status
    """
    token = await _require_token(session_id, token_manager)
    headers = {
        "Accept": FHIR_JSON_CONTENT_TYPE,
        "Authorization": f"Bearer {token.access_token}",
    }
    return await _send("fetch", token, session_id, resource_path, "GET", None, headers)


async def smart_request(
    session_id: str,
    resource_path: str,
    method: str = "GET",
    body: str | dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    token_manager: SessionTokenManager | None = None,
) -> Any:
    """
    Send an arbitrary request to a FHIR resource path with the session's bearer token.

    A body is sent as ``application/fhir+json``; dict bodies are serialized.
    Without a body the caller's Content-Type is kept, defaulting to
    ``application/json``.

    Raises:
        NoTokenError: If the session holds no unexpired token
        InvalidResourcePathError: If the path leaves the issuer
        SmartRequestError: If the server answers with a failure status
    """
    token = await _require_token(session_id, token_manager)

    if isinstance(body, dict):
        body = json.dumps(body)

    request_headers = _request_headers(token, has_body=body is not None, headers=headers)
    return await _send(
        "request", token, session_id, resource_path, method.upper(), body, request_headers
    )
