"""
Middleware for the SMART launch service.
"""

from smartlaunch.middleware.security import (
    RateLimitMiddleware,
    RequestIdMiddleware,
    RequestSizeLimitMiddleware,
    SecurityHeadersMiddleware,
)

__all__ = [
    "RateLimitMiddleware",
    "RequestIdMiddleware",
    "RequestSizeLimitMiddleware",
    "SecurityHeadersMiddleware",
]
