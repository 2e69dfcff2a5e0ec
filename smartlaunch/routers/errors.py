"""
HTTP mapping for SmartLaunchError.

Routers let launch and resource errors propagate; this handler turns them
into JSON responses carrying ``error.to_dict()``.
"""

import aiohttp
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from smartlaunch.config.logging import get_logger
from smartlaunch.errors import (
    AuthorizationDeniedError,
    ConfigurationError,
    DiscoveryError,
    InvalidResourcePathError,
    MissingIssuerError,
    NoTokenError,
    SmartLaunchError,
    SmartRequestError,
    StateMismatchError,
    TokenExchangeError,
)

logger = get_logger(__name__)

_STATUS_CODES: dict[type[SmartLaunchError], int] = {
    MissingIssuerError: 400,
    StateMismatchError: 400,
    AuthorizationDeniedError: 400,
    InvalidResourcePathError: 400,
    NoTokenError: 401,
    DiscoveryError: 502,
    TokenExchangeError: 502,
    ConfigurationError: 500,
}


def status_code_for(error: SmartLaunchError) -> int:
    """
    HTTP status for an error.

    Client errors reported by the FHIR server (404, 409, 422, ...) pass
    through; its server errors become 502.
    """
    if isinstance(error, SmartRequestError):
        if 400 <= error.status_code < 500:
            return error.status_code
        return 502

    for error_type in type(error).__mro__:
        if error_type in _STATUS_CODES:
            return _STATUS_CODES[error_type]
    return 500


async def smart_launch_error_handler(request: Request, exc: SmartLaunchError) -> JSONResponse:
    return JSONResponse(status_code=status_code_for(exc), content=exc.to_dict())


async def upstream_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """The FHIR server could not be reached or timed out."""
    logger.warning(
        "FHIR server unreachable",
        path=request.url.path,
        error=str(exc) or type(exc).__name__,
    )
    return JSONResponse(
        status_code=502,
        content={"error": "UpstreamError", "message": "FHIR server unreachable", "details": {}},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SmartLaunchError, smart_launch_error_handler)
    app.add_exception_handler(aiohttp.ClientError, upstream_error_handler)
    app.add_exception_handler(TimeoutError, upstream_error_handler)
