"""
Service layer for the SMART launch service.

Contains the launch flow, OAuth primitives, authenticated FHIR access,
and EHR lab prefill / write-back.
"""

from smartlaunch.services.launch import begin_launch, complete_launch
from smartlaunch.services.oauth import (
    PKCEChallenge,
    create_pkce_pair,
    discover_smart_endpoints,
)
from smartlaunch.services.smart_client import smart_fetch, smart_request

__all__ = [
    "begin_launch",
    "complete_launch",
    "PKCEChallenge",
    "create_pkce_pair",
    "discover_smart_endpoints",
    "smart_fetch",
    "smart_request",
]
