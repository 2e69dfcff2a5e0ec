"""
Session token manager for the SMART launch service.

High-level facade over SecureTokenStore used by the launch flow, the
authenticated FHIR client, and the routers. Holds the process-wide
singleton and picks the storage backend from settings.
"""

from smartlaunch.audit import AuditEvent, audit_log
from smartlaunch.auth.secure_token_store import (
    InMemoryTokenStorage,
    RedisTokenStorage,
    SecureTokenStore,
    TokenStorageBackend,
)
from smartlaunch.auth.smart import resources_with_permission
from smartlaunch.config.logging import get_logger
from smartlaunch.config.settings import get_settings
from smartlaunch.models.auth import AuthStatusResponse, SmartToken
from smartlaunch.models.launch import LaunchContext

logger = get_logger(__name__)

_token_manager: "SessionTokenManager | None" = None


class SessionTokenManager:
    """Session-scoped access to launch contexts and SMART tokens."""

    def __init__(self, store: SecureTokenStore):
        self._store = store

    @property
    def store(self) -> SecureTokenStore:
        return self._store

    async def store_launch_context(self, context: LaunchContext) -> None:
        """Persist transient launch state until the redirect comes back."""
        await self._store.store_launch_context(context)

    async def consume_launch_context(self, state: str) -> LaunchContext | None:
        """Take the launch context for a state out of storage."""
        return await self._store.pop_launch_context(state)

    async def store_token(self, session_id: str, token: SmartToken) -> None:
        await self._store.store_token(session_id, token)

    async def get_token(self, session_id: str) -> SmartToken | None:
        """Get the session's unexpired token, or None."""
        return await self._store.get_token(session_id)

    async def delete_token(self, session_id: str) -> None:
        """Forget the session's token."""
        await self._store.delete_token(session_id)

        audit_log(AuditEvent.AUTH_REVOKE, session_id=session_id)

    async def get_auth_status(self, session_id: str) -> AuthStatusResponse:
        """Describe what the session's token allows."""
        token = await self._store.get_token(session_id)
        if token is None:
            return AuthStatusResponse()

        return AuthStatusResponse(
            authenticated=True,
            iss=token.iss,
            patient=token.patient,
            expires_at=token.expires_at,
            scopes=token.granted_scopes,
            readable_resources=resources_with_permission(token.scope or "", "read"),
            writable_resources=resources_with_permission(token.scope or "", "write"),
        )

    async def cleanup_expired_sessions(self) -> int:
        """
        Purge expired tokens and launch contexts.

        Returns:
            Number of records cleaned up
        """
        count = await self._store.cleanup_expired()

        if count > 0:
            audit_log(
                AuditEvent.SESSION_CLEANUP,
                details={"records_cleaned": count},
            )

        return count


def get_token_manager() -> SessionTokenManager:
    """
    Get or create the singleton token manager.

    Uses Redis if configured, otherwise falls back to in-memory storage.
    """
    global _token_manager

    if _token_manager is not None:
        return _token_manager

    settings = get_settings()

    backend: TokenStorageBackend
    if settings.redis_url:
        backend = RedisTokenStorage(
            redis_url=settings.redis_url,
            require_tls=settings.require_redis_tls,
        )
        logger.info("Using Redis token storage")
    else:
        backend = InMemoryTokenStorage()
        logger.warning("Using in-memory token storage - tokens will not persist across restarts")

    store = SecureTokenStore(
        backend=backend,
        master_key=settings.master_key,
        session_ttl=settings.session_max_age,
        launch_state_ttl=settings.launch_state_ttl,
        pbkdf2_iterations=settings.pbkdf2_iterations,
    )

    _token_manager = SessionTokenManager(store=store)
    return _token_manager


async def cleanup_token_manager() -> None:
    """Close backend resources and drop the singleton."""
    global _token_manager

    if _token_manager is not None:
        await _token_manager.store.backend.close()
        _token_manager = None


def reset_token_manager() -> None:
    """Drop the singleton without closing it (for testing)."""
    global _token_manager
    _token_manager = None
