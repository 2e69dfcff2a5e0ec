"""
API routers for the SMART launch service.
"""

from smartlaunch.routers.auth import router as auth_router
from smartlaunch.routers.fhir import router as fhir_router
from smartlaunch.routers.health import router as health_router
from smartlaunch.routers.launch import router as launch_router
from smartlaunch.routers.prefill import router as prefill_router

__all__ = [
    "auth_router",
    "fhir_router",
    "health_router",
    "launch_router",
    "prefill_router",
]
