"""
Health check endpoints.
"""

from fastapi import APIRouter
from pydantic import BaseModel

from smartlaunch.auth.secure_token_store import RedisTokenStorage
from smartlaunch.auth.token_manager import get_token_manager
from smartlaunch.config.settings import get_settings

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str
    version: str
    storage: str
    default_issuer_configured: bool


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Health check endpoint.

    Returns the service status and basic information.
    """
    backend = get_token_manager().store.backend
    return HealthResponse(
        status="healthy",
        service="smart-launch",
        version="0.1.0",
        storage="redis" if isinstance(backend, RedisTokenStorage) else "memory",
        default_issuer_configured=bool(get_settings().default_iss),
    )
