"""
SMART App Launch flow.

Two halves of one authorization-code grant:
- begin_launch: resolve the issuer, generate state (and PKCE), persist the
  launch context, and return where to send the user agent
- complete_launch: validate the redirect against the persisted context,
  exchange the code, and persist the token for the session

Every failure raises a SmartLaunchError subclass and ends the attempt;
the caller starts a new launch.
"""

from collections.abc import Mapping

from pydantic import ValidationError

from smartlaunch.audit import AuditEvent, audit_log
from smartlaunch.auth.identity import clinician_id
from smartlaunch.auth.smart import SmartLaunchType
from smartlaunch.auth.token_manager import SessionTokenManager, get_token_manager
from smartlaunch.config.logging import get_logger
from smartlaunch.config.settings import get_settings
from smartlaunch.errors import (
    AuthorizationDeniedError,
    MissingConfigurationError,
    MissingIssuerError,
    StateMismatchError,
    TokenExchangeError,
)
from smartlaunch.models.auth import SmartToken
from smartlaunch.models.launch import LaunchConfig, LaunchContext, LaunchRedirect
from smartlaunch.services.oauth import (
    build_authorization_url,
    create_pkce_pair,
    discover_smart_endpoints,
    exchange_code,
    generate_state,
)

logger = get_logger(__name__)


async def begin_launch(
    config: LaunchConfig,
    params: Mapping[str, str],
    session_id: str,
    token_manager: SessionTokenManager | None = None,
) -> LaunchRedirect:
    """
    Initiate a SMART launch.

    Args:
        config: Client registration (client ID, redirect URI, default issuer, scope, PKCE)
        params: Query parameters of the launch request (``iss``, ``launch``)
        session_id: Browser session the launch belongs to
        token_manager: Storage facade (defaults to the process singleton)

    Returns:
        The authorization URL to redirect to, with the state bound to it

    Raises:
        MissingIssuerError: If neither the query nor the config names an issuer
        MissingConfigurationError: If no client ID is registered
        DiscoveryError: If the issuer's OAuth endpoints cannot be found
    """
    iss = params.get("iss") or config.default_iss
    if not iss:
        raise MissingIssuerError()

    if not config.client_id:
        raise MissingConfigurationError("SMART_LAUNCH_CLIENT_ID", "Register the app with the EHR")

    launch = params.get("launch") or None
    manager = token_manager or get_token_manager()

    endpoints = await discover_smart_endpoints(iss, get_settings().request_timeout)

    pkce = create_pkce_pair() if config.pkce else None
    context = LaunchContext(
        iss=iss,
        state=generate_state(),
        session_id=session_id,
        redirect_uri=config.redirect_uri,
        client_id=config.client_id,
        scope=config.scope,
        launch=launch,
        code_verifier=pkce.code_verifier if pkce else None,
    )

    await manager.store_launch_context(context)

    authorization_url = build_authorization_url(
        endpoints,
        context,
        code_challenge=pkce.code_challenge if pkce else None,
    )

    audit_log(
        AuditEvent.AUTH_START,
        session_id=session_id,
        iss=iss,
        details={
            "launch_type": SmartLaunchType.for_launch_token(launch).value,
            "pkce": pkce is not None,
            "discovery": endpoints.source,
        },
    )

    return LaunchRedirect(authorization_url=authorization_url, state=context.state, iss=iss)


async def complete_launch(
    params: Mapping[str, str],
    session_id: str,
    token_manager: SessionTokenManager | None = None,
) -> SmartToken:
    """
    Complete a SMART launch from the authorization server's redirect.

    Args:
        params: Query parameters of the redirect (``code``, ``state``, ``error``)
        session_id: Browser session receiving the redirect
        token_manager: Storage facade (defaults to the process singleton)

    Returns:
        The persisted token, merged with the issuer it was minted by

    Raises:
        AuthorizationDeniedError: If the redirect carries an OAuth error
        StateMismatchError: If code or state is missing, the state is unknown
            or already used, or the launch began in another session
        DiscoveryError: If the issuer's token endpoint cannot be found
        TokenExchangeError: If the token endpoint rejects the code
    """
    manager = token_manager or get_token_manager()

    if params.get("error"):
        audit_log(
            AuditEvent.AUTH_FAILURE,
            session_id=session_id,
            success=False,
            error=params["error"],
        )
        raise AuthorizationDeniedError(params["error"], params.get("error_description"))

    code = params.get("code")
    state = params.get("state")
    if not code or not state:
        audit_log(
            AuditEvent.SECURITY_INVALID_STATE,
            session_id=session_id,
            success=False,
            error="Missing code or state",
        )
        raise StateMismatchError("missing code or state")

    context = await manager.consume_launch_context(state)
    if context is None:
        audit_log(
            AuditEvent.SECURITY_INVALID_STATE,
            session_id=session_id,
            success=False,
            error="State not found",
        )
        raise StateMismatchError("unknown or expired state")

    if context.session_id != session_id:
        audit_log(
            AuditEvent.SECURITY_SESSION_MISMATCH,
            session_id=context.session_id,
            iss=context.iss,
            success=False,
            error="Launch completed from a different session",
        )
        raise StateMismatchError("launch began in a different session")

    timeout = get_settings().request_timeout
    endpoints = await discover_smart_endpoints(context.iss, timeout)

    try:
        token_data = await exchange_code(endpoints.token_endpoint, context, code, timeout)
    except Exception as e:
        audit_log(
            AuditEvent.AUTH_FAILURE,
            session_id=session_id,
            iss=context.iss,
            success=False,
            error=str(e),
        )
        raise

    try:
        token = SmartToken.model_validate({**token_data, "iss": context.iss})
    except ValidationError as e:
        audit_log(
            AuditEvent.AUTH_FAILURE,
            session_id=session_id,
            iss=context.iss,
            success=False,
            error="Malformed token response",
        )
        raise TokenExchangeError(body="malformed token response") from e

    await manager.store_token(session_id, token)

    audit_log(
        AuditEvent.AUTH_SUCCESS,
        session_id=session_id,
        iss=context.iss,
        user_id=clinician_id(token),
        details={"patient_context": token.patient is not None},
    )

    return token
