"""
Pydantic models for the SMART launch service.

This module contains models for:
- Launch configuration and transient launch context
- Discovered OAuth endpoints
- SMART tokens and auth status
"""

from smartlaunch.models.auth import (
    AuthStatusResponse,
    SmartToken,
)
from smartlaunch.models.launch import (
    LaunchConfig,
    LaunchContext,
    LaunchRedirect,
    SmartEndpoints,
)

__all__ = [
    "LaunchConfig",
    "LaunchContext",
    "LaunchRedirect",
    "SmartEndpoints",
    "SmartToken",
    "AuthStatusResponse",
]
