"""
Input validation for the SMART launch service.

Resource paths are appended to the issuer base URL and sent with the
session's bearer token, so they must stay relative to the issuer.
"""

import re
from urllib.parse import unquote

from smartlaunch.errors import InvalidResourcePathError

RESOURCE_TYPE_PATTERN = re.compile(r"^[A-Z][A-Za-z]+$")
SCHEME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:")


def validate_resource_path(resource_path: str) -> str:
    """
    Validate a FHIR resource path relative to the issuer.

    Args:
        resource_path: Path such as ``Patient/123`` or ``Observation?code=...``

    Returns:
        The path without leading slashes

    Raises:
        InvalidResourcePathError: If the path is empty, absolute, or escapes the issuer
    """
    path = resource_path.strip()
    if path.startswith("//"):
        raise InvalidResourcePathError(resource_path, "network-path references are not allowed")

    path = path.lstrip("/")
    if not path:
        raise InvalidResourcePathError(resource_path, "path is empty")

    path_part = path.split("?", 1)[0]
    if SCHEME_PATTERN.match(path_part):
        raise InvalidResourcePathError(resource_path, "absolute URLs are not allowed")

    segments = unquote(path_part).split("/")
    if any(segment in ("..", ".") for segment in segments):
        raise InvalidResourcePathError(resource_path, "dot segments are not allowed")

    head = segments[0]
    if head != "metadata" and not head.startswith("$") and not RESOURCE_TYPE_PATTERN.match(head):
        raise InvalidResourcePathError(
            resource_path,
            "must start with a resource type, 'metadata', or an operation",
        )

    return path
