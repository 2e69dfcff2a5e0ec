"""
SMART launch service - Main application entry point.

Launches the scoring tool against a FHIR server with SMART-on-FHIR and
exposes the session's bearer-authenticated FHIR access to the browser.
"""

import asyncio
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from smartlaunch.auth.token_manager import cleanup_token_manager, get_token_manager
from smartlaunch.config.logging import configure_logging, get_logger
from smartlaunch.config.settings import get_settings
from smartlaunch.constants import CLEANUP_INTERVAL_SECONDS, SESSION_COOKIE_NAME
from smartlaunch.middleware.security import (
    RateLimitMiddleware,
    RequestIdMiddleware,
    RequestSizeLimitMiddleware,
    SecurityHeadersMiddleware,
)
from smartlaunch.rate_limiter import get_callback_rate_limiter, get_rate_limiter
from smartlaunch.routers import (
    auth_router,
    fhir_router,
    health_router,
    launch_router,
    prefill_router,
)
from smartlaunch.routers.errors import register_error_handlers

logger = get_logger(__name__)

_cleanup_task: asyncio.Task | None = None


async def _session_cleanup_loop():
    """Purge expired tokens, launch contexts and rate limit windows periodically."""
    while True:
        try:
            await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)
            cleaned = await get_token_manager().cleanup_expired_sessions()
            stale = get_rate_limiter().cleanup_stale() + get_callback_rate_limiter().cleanup_stale()
            if cleaned > 0 or stale > 0:
                logger.info("Session cleanup completed", records_cleaned=cleaned, limiter_keys=stale)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error("Session cleanup failed", error=str(e))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown."""
    global _cleanup_task

    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json)
    logger.info(
        "Starting SMART launch service",
        host=settings.host,
        port=settings.port,
        default_iss=settings.default_iss,
        pkce=settings.pkce,
    )

    _cleanup_task = asyncio.create_task(_session_cleanup_loop())

    yield

    logger.info("Shutting down SMART launch service")

    if _cleanup_task:
        _cleanup_task.cancel()
        try:
            await _cleanup_task
        except asyncio.CancelledError:
            pass

    await cleanup_token_manager()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="SMART Launch",
        description="SMART-on-FHIR launch and authenticated FHIR access for skin scoring tools",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    origins = settings.cors_origins.split(",") if settings.cors_origins != "*" else ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RateLimitMiddleware, session_cookie_name=SESSION_COOKIE_NAME)
    app.add_middleware(RequestSizeLimitMiddleware, max_body_size=settings.max_request_body_size)
    # Outermost, so every log line carries the request ID
    app.add_middleware(RequestIdMiddleware)

    register_error_handlers(app)

    app.include_router(health_router)
    app.include_router(launch_router)
    app.include_router(auth_router)
    app.include_router(fhir_router)
    app.include_router(prefill_router)

    return app


app = create_app()


def run():
    """Run the SMART launch service via uvicorn."""
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json)

    uvicorn.run(
        "smartlaunch.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
