"""
OAuth 2.0 primitives for SMART on FHIR.

Provides:
- PKCE verifier/challenge generation (RFC 7636, S256)
- Anti-forgery state generation
- Endpoint discovery from .well-known/smart-configuration with a
  CapabilityStatement fallback
- Authorization URL assembly and authorization-code exchange
"""

import base64
import hashlib
import secrets
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import aiohttp

from smartlaunch.config.logging import get_logger
from smartlaunch.constants import (
    FHIR_JSON_CONTENT_TYPE,
    FORM_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    METADATA_PATH,
    OAUTH_URIS_EXTENSION,
    SMART_CONFIGURATION_PATH,
)
from smartlaunch.errors import DiscoveryError, TokenExchangeError
from smartlaunch.models.launch import LaunchContext, SmartEndpoints

logger = get_logger(__name__)

# RFC 7636 PKCE constants
_PKCE_VERIFIER_MIN_LENGTH = 43
_PKCE_VERIFIER_MAX_LENGTH = 128
_PKCE_UNRESERVED_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"

DEFAULT_TIMEOUT = 10.0


@dataclass
class PKCEChallenge:
    """PKCE code verifier and challenge pair."""

    code_verifier: str
    code_challenge: str
    code_challenge_method: str = "S256"


def compute_s256_challenge(verifier: str) -> str:
    """Compute the S256 code challenge: unpadded base64url of SHA-256(verifier)."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def create_pkce_pair(verifier_length: int = 64) -> PKCEChallenge:
    """
    Create a PKCE code verifier and challenge pair.

    Args:
        verifier_length: Length of code verifier (43-128 per RFC 7636)

    Returns:
        PKCEChallenge containing verifier and S256 challenge

    Raises:
        ValueError: If verifier_length is outside valid range
    """
    if not (_PKCE_VERIFIER_MIN_LENGTH <= verifier_length <= _PKCE_VERIFIER_MAX_LENGTH):
        raise ValueError(
            f"Verifier length must be {_PKCE_VERIFIER_MIN_LENGTH}-{_PKCE_VERIFIER_MAX_LENGTH}, "
            f"got {verifier_length}"
        )

    verifier = "".join(secrets.choice(_PKCE_UNRESERVED_CHARS) for _ in range(verifier_length))
    return PKCEChallenge(
        code_verifier=verifier,
        code_challenge=compute_s256_challenge(verifier),
    )


def generate_state() -> str:
    """Generate a cryptographically secure state parameter."""
    return secrets.token_urlsafe(32)


def issuer_url(iss: str, path: str) -> str:
    """Join a path onto an issuer base URL with exactly one slash."""
    return f"{iss.rstrip('/')}/{path.lstrip('/')}"


async def _fetch_json_object(
    url: str, accept: str, timeout: float, label: str
) -> dict[str, Any] | None:
    """GET a JSON object. Any failure (status, transport, timeout, body) yields None."""
    client_timeout = aiohttp.ClientTimeout(total=timeout)

    try:
        async with aiohttp.ClientSession(timeout=client_timeout) as session:
            async with session.get(url, headers={"Accept": accept}) as resp:
                if resp.status != 200:
                    logger.debug(f"{label} not available", url=url, status=resp.status)
                    return None
                try:
                    document = await resp.json(content_type=None)
                except ValueError as e:
                    logger.debug(f"Invalid JSON in {label}", url=url, error=str(e))
                    return None
    except (aiohttp.ClientError, TimeoutError) as e:
        logger.debug(f"{label} request failed", url=url, error=str(e) or type(e).__name__)
        return None

    if not isinstance(document, dict):
        logger.debug(f"{label} is not a JSON object", url=url)
        return None
    return document


async def fetch_smart_configuration(
    iss: str, timeout: float = DEFAULT_TIMEOUT
) -> dict[str, Any] | None:
    """
    Fetch the SMART configuration document of an issuer.

    Returns:
        The parsed document, or None if the issuer does not serve one
    """
    return await _fetch_json_object(
        issuer_url(iss, SMART_CONFIGURATION_PATH),
        JSON_CONTENT_TYPE,
        timeout,
        "SMART configuration",
    )


async def fetch_capability_statement(
    iss: str, timeout: float = DEFAULT_TIMEOUT
) -> dict[str, Any] | None:
    """
    Fetch the CapabilityStatement served at ``{iss}/metadata``.

    Returns:
        The parsed CapabilityStatement, or None if it cannot be retrieved
    """
    return await _fetch_json_object(
        issuer_url(iss, METADATA_PATH),
        FHIR_JSON_CONTENT_TYPE,
        timeout,
        "FHIR metadata",
    )


def parse_oauth_uris(capability: dict[str, Any]) -> dict[str, str]:
    """
    Extract OAuth endpoint URIs from a CapabilityStatement.

    Reads ``rest[0].security.extension`` for the SMART ``oauth-uris``
    extension and returns its nested ``valueUri`` entries by name
    (``authorize``, ``token``, ``revoke``, ...).
    """
    rest = capability.get("rest") or [{}]
    first = rest[0] if isinstance(rest, list) and isinstance(rest[0], dict) else {}
    security = first.get("security") or {}

    for extension in security.get("extension") or []:
        if OAUTH_URIS_EXTENSION in (extension.get("url") or ""):
            return {
                nested["url"]: nested["valueUri"]
                for nested in extension.get("extension") or []
                if nested.get("url") and nested.get("valueUri")
            }

    return {}


async def discover_smart_endpoints(iss: str, timeout: float = DEFAULT_TIMEOUT) -> SmartEndpoints:
    """
    Discover the OAuth endpoints of a SMART issuer.

    Tries the SMART configuration document first, then falls back to the
    CapabilityStatement security extensions.

    Raises:
        DiscoveryError: If neither source yields authorize and token endpoints
    """
    smart_config = await fetch_smart_configuration(iss, timeout)

    if smart_config and smart_config.get("authorization_endpoint") and smart_config.get(
        "token_endpoint"
    ):
        endpoints = SmartEndpoints(
            authorization_endpoint=smart_config["authorization_endpoint"],
            token_endpoint=smart_config["token_endpoint"],
            revocation_endpoint=smart_config.get("revocation_endpoint"),
            capabilities=smart_config.get("capabilities") or [],
            source="smart-configuration",
        )
        logger.info(
            "Discovered OAuth endpoints from SMART configuration",
            iss=iss,
            token_endpoint=endpoints.token_endpoint,
        )
        return endpoints

    capability = await fetch_capability_statement(iss, timeout)
    if capability is None:
        raise DiscoveryError(iss, "no SMART configuration and no FHIR metadata")

    uris = parse_oauth_uris(capability)
    if not uris.get("authorize") or not uris.get("token"):
        raise DiscoveryError(iss, "CapabilityStatement does not declare oauth-uris")

    endpoints = SmartEndpoints(
        authorization_endpoint=uris["authorize"],
        token_endpoint=uris["token"],
        revocation_endpoint=uris.get("revoke"),
        source="metadata",
    )
    logger.info(
        "Discovered OAuth endpoints from CapabilityStatement",
        iss=iss,
        token_endpoint=endpoints.token_endpoint,
    )
    return endpoints


def build_authorization_url(
    endpoints: SmartEndpoints,
    context: LaunchContext,
    code_challenge: str | None = None,
) -> str:
    """Assemble the authorization-code request URL for a launch context."""
    params = {
        "response_type": "code",
        "client_id": context.client_id,
        "redirect_uri": context.redirect_uri,
        "scope": context.scope,
        "state": context.state,
        "aud": context.iss,
    }

    if context.launch:
        params["launch"] = context.launch

    if code_challenge:
        params["code_challenge"] = code_challenge
        params["code_challenge_method"] = "S256"

    return f"{endpoints.authorization_endpoint}?{urlencode(params)}"


async def exchange_code(
    token_endpoint: str,
    context: LaunchContext,
    code: str,
    timeout: float = DEFAULT_TIMEOUT,
) -> dict[str, Any]:
    """
    Exchange an authorization code for a token.

    Args:
        token_endpoint: Token endpoint resolved for the context's issuer
        context: The launch context the code was issued for
        code: Authorization code from the redirect
        timeout: Request timeout in seconds

    Returns:
        The token endpoint's JSON response

    Raises:
        TokenExchangeError: If the endpoint answers with a failure status or
            a body that is not a token
    """
    data = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": context.redirect_uri,
        "client_id": context.client_id,
    }
    if context.code_verifier:
        data["code_verifier"] = context.code_verifier

    client_timeout = aiohttp.ClientTimeout(total=timeout)

    try:
        async with aiohttp.ClientSession(timeout=client_timeout) as session:
            async with session.post(
                token_endpoint,
                data=data,
                headers={"Content-Type": FORM_CONTENT_TYPE, "Accept": JSON_CONTENT_TYPE},
            ) as resp:
                if not 200 <= resp.status < 300:
                    error_body = await resp.text()
                    logger.error(
                        "Token exchange failed",
                        status_code=resp.status,
                        error=error_body[:200],
                    )
                    raise TokenExchangeError(resp.status, error_body)

                try:
                    token_data = await resp.json(content_type=None)
                except ValueError as e:
                    logger.error("Invalid JSON in token response", error=str(e))
                    raise TokenExchangeError(resp.status, "invalid JSON response") from e
    except aiohttp.ClientError as e:
        logger.error("Token endpoint request failed", error=str(e))
        raise TokenExchangeError(body=str(e)) from e

    if not isinstance(token_data, dict) or not token_data.get("access_token"):
        raise TokenExchangeError(resp.status, "response has no access_token")

    logger.info("Authorization code exchange successful", iss=context.iss)
    return token_data
