"""
Proxy for FHIR calls made with the session's SMART token.

- GET /api/fhir/{resource_path} - Read or search (query string forwarded)
- POST|PUT|PATCH|DELETE /api/fhir/{resource_path} - Write operations

The browser never sees the access token; requests are sent to the issuer
the token was minted by.
"""

from typing import Any

from fastapi import APIRouter, Request

from smartlaunch.errors import NoTokenError
from smartlaunch.routers.session import get_session_id, require_csrf_header
from smartlaunch.services.smart_client import smart_fetch, smart_request

router = APIRouter(prefix="/api/fhir", tags=["fhir"])


def _session_or_raise(request: Request) -> str:
    session_id = get_session_id(request, create_if_missing=False)
    if not session_id:
        raise NoTokenError()
    return session_id


def _with_query(resource_path: str, request: Request) -> str:
    query = request.url.query
    return f"{resource_path}?{query}" if query else resource_path


@router.get("/{resource_path:path}")
async def fetch_resource(resource_path: str, request: Request) -> Any:
    """
    Read a resource or run a search on the issuer.

    Example: ``GET /api/fhir/Observation?code=http://loinc.org|2345-7``
    """
    session_id = _session_or_raise(request)
    return await smart_fetch(session_id, _with_query(resource_path, request))


@router.api_route("/{resource_path:path}", methods=["POST", "PUT", "PATCH", "DELETE"])
async def modify_resource(resource_path: str, request: Request) -> Any:
    """
    Forward a write to the issuer.

    The request body, if any, is sent as ``application/fhir+json``.
    Requires the X-Requested-With header.
    """
    require_csrf_header(request)
    session_id = _session_or_raise(request)
    raw_body = await request.body()

    headers = {}
    content_type = request.headers.get("content-type")
    if content_type:
        headers["Content-Type"] = content_type

    return await smart_request(
        session_id,
        _with_query(resource_path, request),
        method=request.method,
        body=raw_body.decode() if raw_body else None,
        headers=headers,
    )
