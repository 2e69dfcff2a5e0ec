"""
Clinician identity extraction from SMART id_tokens.

Used to attribute audit events to the clinician who completed a launch.
"""

import base64
import json
from typing import Any

from smartlaunch.config.logging import get_logger
from smartlaunch.models.auth import SmartToken

logger = get_logger(__name__)


def decode_id_token(id_token: str) -> dict[str, Any]:
    """
    Decode a JWT id_token payload without signature verification.

    The claims are only used for audit attribution; FHIR calls are
    authorized by the access token, which the FHIR server validates.

    Raises:
        ValueError: If the token is not a decodable JWT
    """
    parts = id_token.split(".")
    if len(parts) != 3:
        raise ValueError("Invalid JWT format: expected 3 parts")

    payload = parts[1]
    payload += "=" * (-len(payload) % 4)

    try:
        claims = json.loads(base64.urlsafe_b64decode(payload))
    except ValueError as e:
        raise ValueError(f"Failed to decode id_token: {e}") from e

    if not isinstance(claims, dict):
        raise ValueError("Failed to decode id_token: payload is not an object")
    return claims


def clinician_id(token: SmartToken) -> str | None:
    """
    Identify the clinician behind a token.

    Returns:
        The ``fhirUser`` claim (e.g. ``Practitioner/123``) if present,
        otherwise ``sub``, otherwise None
    """
    if not token.id_token:
        return None

    try:
        claims = decode_id_token(token.id_token)
    except ValueError as e:
        logger.warning("Failed to decode id_token for identity extraction", error=str(e))
        return None

    return claims.get("fhirUser") or claims.get("sub")
