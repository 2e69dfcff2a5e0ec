"""
SMART on FHIR launch vocabulary.

This module provides:
- Launch type detection (EHR launch vs standalone launch)
- Scope parsing for SMART v1 (``patient/Observation.read``) and
  v2 (``patient/Observation.rs``) scope strings
"""

from dataclasses import dataclass, field
from enum import Enum

from smartlaunch.config.logging import get_logger

logger = get_logger(__name__)


class SmartLaunchType(Enum):
    """SMART launch types."""

    EHR_LAUNCH = "ehr"
    STANDALONE = "standalone"

    @classmethod
    def for_launch_token(cls, launch: str | None) -> "SmartLaunchType":
        """An EHR launch carries a ``launch`` token; a standalone launch does not."""
        return cls.EHR_LAUNCH if launch else cls.STANDALONE


class SmartScopeCategory(Enum):
    """SMART scope categories."""

    PATIENT = "patient"
    USER = "user"
    SYSTEM = "system"
    LAUNCH = "launch"
    OPENID = "openid"
    FHIRUSER = "fhirUser"
    OFFLINE = "offline_access"
    ONLINE = "online_access"


_SPECIAL_SCOPES = {
    "openid": SmartScopeCategory.OPENID,
    "fhirUser": SmartScopeCategory.FHIRUSER,
    "offline_access": SmartScopeCategory.OFFLINE,
    "online_access": SmartScopeCategory.ONLINE,
}

_V2_PERMISSIONS = {
    "c": "create",
    "r": "read",
    "u": "update",
    "d": "delete",
    "s": "search",
}

# Permissions that let a client create or change resources
_WRITE_PERMISSIONS = {"write", "create", "update"}


@dataclass
class SmartScope:
    """Parsed SMART scope."""

    raw: str
    category: SmartScopeCategory | None = None
    resource_type: str | None = None
    permissions: list[str] = field(default_factory=list)

    @property
    def can_read(self) -> bool:
        return "read" in self.permissions

    @property
    def can_write(self) -> bool:
        return bool(_WRITE_PERMISSIONS.intersection(self.permissions))

    def __str__(self) -> str:
        return self.raw


def parse_smart_scopes(scope_string: str) -> list[SmartScope]:
    """
    Parse SMART scopes from a space-separated string.

    Unparseable resource scopes are kept with no category or permissions.
    """
    scopes = []

    for raw_scope in scope_string.split():
        scope = SmartScope(raw=raw_scope)

        if raw_scope in _SPECIAL_SCOPES:
            scope.category = _SPECIAL_SCOPES[raw_scope]
            scopes.append(scope)
            continue

        if raw_scope == "launch" or raw_scope.startswith("launch/"):
            scope.category = SmartScopeCategory.LAUNCH
            if "/" in raw_scope:
                scope.resource_type = raw_scope.split("/", 1)[1]
            scopes.append(scope)
            continue

        category_part, _, rest = raw_scope.partition("/")
        # SMART v2 scopes may carry a query suffix: patient/Observation.rs?category=...
        rest = rest.split("?", 1)[0]
        if "." in rest:
            resource_part, permission_part = rest.rsplit(".", 1)

            try:
                scope.category = SmartScopeCategory(category_part)
            except ValueError:
                logger.warning("Unknown scope category", scope=raw_scope)
                scopes.append(scope)
                continue

            scope.resource_type = resource_part

            if permission_part == "*":
                scope.permissions = ["read", "write"]
            elif permission_part in ("read", "write"):
                scope.permissions = [permission_part]
            else:
                # SMART v2 strings like "rs" or "cruds"
                scope.permissions = [
                    _V2_PERMISSIONS[c] for c in permission_part if c in _V2_PERMISSIONS
                ]

        scopes.append(scope)

    return scopes


def resources_with_permission(scope_string: str, permission: str) -> list[str]:
    """
    List resource types a scope string grants a permission on.

    Args:
        scope_string: Space-separated granted scopes
        permission: "read" or "write"

    Returns:
        Sorted resource types; ``*`` means every type
    """
    granted = set()
    for scope in parse_smart_scopes(scope_string):
        if scope.resource_type is None or scope.category == SmartScopeCategory.LAUNCH:
            continue
        allowed = scope.can_write if permission == "write" else scope.can_read
        if allowed:
            granted.add(scope.resource_type)
    return sorted(granted)
