"""
Session-scoped storage for SMART tokens and transient launch contexts.

Two kinds of record are kept:
- launch contexts, keyed by their anti-forgery state and consumed exactly once
- tokens, keyed by the browser session that completed the launch

Values can be encrypted at rest with a master key. Backends are in-memory
(development) or Redis (production).
"""

import base64
import hashlib
import os
import time
from abc import ABC, abstractmethod

from cryptography.fernet import Fernet, InvalidToken

from smartlaunch.audit import truncate_session_id
from smartlaunch.config.logging import get_logger
from smartlaunch.constants import LAUNCH_KEY_PREFIX, TOKEN_KEY_PREFIX
from smartlaunch.models.auth import SmartToken
from smartlaunch.models.launch import LaunchContext

logger = get_logger(__name__)

SESSION_TTL_SECONDS = 3600
LAUNCH_STATE_TTL_SECONDS = 900


class MasterKeyEncryption:
    """
    Encryption using a master key with PBKDF2-derived Fernet keys.

    Each value gets a random salt, stored alongside the ciphertext.
    """

    def __init__(self, master_key: str, pbkdf2_iterations: int = 100_000):
        if not master_key:
            raise ValueError("Master key cannot be empty")
        self._master_key = master_key.encode()
        self._pbkdf2_iterations = pbkdf2_iterations

    def _derive_key(self, salt: bytes) -> bytes:
        """Derive a Fernet-compatible key using PBKDF2."""
        dk = hashlib.pbkdf2_hmac(
            "sha256",
            self._master_key,
            salt,
            iterations=self._pbkdf2_iterations,
            dklen=32,
        )
        return base64.urlsafe_b64encode(dk)

    def encrypt(self, data: str) -> str:
        """
        Encrypt a value.

        Returns:
            ``v1:<salt_b64>:<fernet_token>``
        """
        salt = os.urandom(16)
        encrypted = Fernet(self._derive_key(salt)).encrypt(data.encode())
        salt_b64 = base64.urlsafe_b64encode(salt).decode()
        return f"v1:{salt_b64}:{encrypted.decode()}"

    def decrypt(self, encrypted_data: str) -> str:
        """
        Decrypt a value produced by :meth:`encrypt`.

        Raises:
            ValueError: If the format is unknown or the key does not match
        """
        parts = encrypted_data.split(":", 2)
        if len(parts) != 3 or parts[0] != "v1":
            raise ValueError("Invalid encrypted data format")

        salt = base64.urlsafe_b64decode(parts[1])
        try:
            return Fernet(self._derive_key(salt)).decrypt(parts[2].encode()).decode()
        except InvalidToken as e:
            raise ValueError("Decryption failed: invalid token or key") from e


class TokenStorageBackend(ABC):
    """Abstract base class for key-value storage backends."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Get value by key."""
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        """Set key-value pair with optional TTL."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete key."""
        ...

    @abstractmethod
    async def pop(self, key: str) -> str | None:
        """Atomically get and delete a key."""
        ...

    @abstractmethod
    async def keys(self, pattern: str) -> list[str]:
        """Get keys matching a ``prefix*`` pattern."""
        ...

    async def cleanup_expired(self) -> int:
        """Remove expired entries. Backends with native TTLs have nothing to do."""
        return 0

    async def close(self) -> None:
        """Release backend resources."""
        return None


class InMemoryTokenStorage(TokenStorageBackend):
    """In-memory storage for development/testing."""

    def __init__(self):
        self._store: dict[str, tuple[str, float | None]] = {}  # key -> (value, expires_at)

    def _live(self, key: str) -> str | None:
        if key not in self._store:
            return None
        value, expires_at = self._store[key]
        if expires_at and time.time() > expires_at:
            del self._store[key]
            return None
        return value

    async def get(self, key: str) -> str | None:
        return self._live(key)

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        expires_at = time.time() + ttl if ttl else None
        self._store[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def pop(self, key: str) -> str | None:
        value = self._live(key)
        self._store.pop(key, None)
        return value

    async def keys(self, pattern: str) -> list[str]:
        prefix = pattern.rstrip("*")
        return [k for k in self._store if k.startswith(prefix)]

    async def cleanup_expired(self) -> int:
        now = time.time()
        expired = [k for k, (_, exp) in self._store.items() if exp and now > exp]
        for k in expired:
            del self._store[k]
        return len(expired)


class RedisTokenStorage(TokenStorageBackend):
    """Redis-backed storage for production."""

    def __init__(self, redis_url: str, require_tls: bool = False):
        """
        Initialize Redis storage.

        Args:
            redis_url: Redis connection URL
            require_tls: If True, require rediss:// scheme
        """
        if require_tls and not redis_url.startswith("rediss://"):
            raise ValueError(
                "Redis TLS required but URL does not use rediss:// scheme. "
                "Set SMART_LAUNCH_REQUIRE_REDIS_TLS=false to disable this check."
            )

        if not redis_url.startswith("rediss://"):
            logger.warning("Redis connection not using TLS", redis_url=redis_url[:20] + "...")

        self._redis_url = redis_url
        self._client = None

    def _get_client(self):
        """Lazily initialize the Redis client."""
        if self._client is None:
            import redis.asyncio as redis

            self._client = redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    async def get(self, key: str) -> str | None:
        return await self._get_client().get(key)

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        client = self._get_client()
        if ttl:
            await client.setex(key, ttl, value)
        else:
            await client.set(key, value)

    async def delete(self, key: str) -> None:
        await self._get_client().delete(key)

    async def pop(self, key: str) -> str | None:
        return await self._get_client().getdel(key)

    async def keys(self, pattern: str) -> list[str]:
        """Get keys matching pattern using SCAN (non-blocking)."""
        client = self._get_client()
        keys = []
        cursor = 0
        while True:
            cursor, batch = await client.scan(cursor, match=pattern, count=100)
            keys.extend(batch)
            if cursor == 0:
                break
        return keys

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None


class SecureTokenStore:
    """
    Storage for launch contexts and tokens with optional encryption.

    Launch contexts are stored under ``smart:launch:<state>`` with a short
    TTL. Tokens are stored under ``smart:token:<session_id>`` with the
    session TTL; an expired token reads as absent and is removed.
    """

    def __init__(
        self,
        backend: TokenStorageBackend,
        master_key: str | None = None,
        session_ttl: int = SESSION_TTL_SECONDS,
        launch_state_ttl: int = LAUNCH_STATE_TTL_SECONDS,
        pbkdf2_iterations: int = 100_000,
    ):
        self._backend = backend
        self._session_ttl = session_ttl
        self._launch_state_ttl = launch_state_ttl
        self._encryption: MasterKeyEncryption | None = None

        if master_key:
            self._encryption = MasterKeyEncryption(master_key, pbkdf2_iterations)
            logger.info("Token encryption enabled with master key")
        else:
            logger.warning("Token encryption disabled - no master key configured")

    @property
    def backend(self) -> TokenStorageBackend:
        return self._backend

    def _serialize(self, data: str) -> str:
        if self._encryption:
            return self._encryption.encrypt(data)
        return data

    def _deserialize(self, data: str) -> str:
        if self._encryption and data.startswith("v1:"):
            return self._encryption.decrypt(data)
        return data

    # -- Launch contexts --

    async def store_launch_context(self, context: LaunchContext) -> None:
        """Persist a launch context under its state value."""
        await self._backend.set(
            f"{LAUNCH_KEY_PREFIX}{context.state}",
            self._serialize(context.model_dump_json()),
            ttl=self._launch_state_ttl,
        )
        logger.debug(
            "Launch context stored",
            session_id=truncate_session_id(context.session_id),
            iss=context.iss,
        )

    async def pop_launch_context(self, state: str) -> LaunchContext | None:
        """Fetch and delete the launch context for a state. A state is usable once."""
        data = await self._backend.pop(f"{LAUNCH_KEY_PREFIX}{state}")
        if not data:
            return None

        try:
            return LaunchContext.model_validate_json(self._deserialize(data))
        except ValueError as e:
            logger.error("Failed to deserialize launch context", error=str(e))
            return None

    # -- Tokens --

    async def store_token(self, session_id: str, token: SmartToken) -> None:
        """Persist the token for a session, replacing any previous one."""
        await self._backend.set(
            f"{TOKEN_KEY_PREFIX}{session_id}",
            self._serialize(token.model_dump_json()),
            ttl=self._session_ttl,
        )
        logger.debug("Token stored", session_id=truncate_session_id(session_id), iss=token.iss)

    async def get_token(self, session_id: str) -> SmartToken | None:
        """Get the session's token; expired or unreadable tokens are removed and read as None."""
        key = f"{TOKEN_KEY_PREFIX}{session_id}"
        data = await self._backend.get(key)
        if not data:
            return None

        try:
            token = SmartToken.model_validate_json(self._deserialize(data))
        except ValueError as e:
            logger.error("Failed to deserialize token", error=str(e))
            await self._backend.delete(key)
            return None

        if token.is_expired:
            logger.debug("Token expired", session_id=truncate_session_id(session_id))
            await self._backend.delete(key)
            return None

        return token

    async def delete_token(self, session_id: str) -> None:
        await self._backend.delete(f"{TOKEN_KEY_PREFIX}{session_id}")

    async def cleanup_expired(self) -> int:
        """
        Purge expired launch contexts and tokens.

        Returns:
            Number of records removed
        """
        cleaned = await self._backend.cleanup_expired()

        for key in await self._backend.keys(f"{TOKEN_KEY_PREFIX}*"):
            session_id = key[len(TOKEN_KEY_PREFIX) :]
            if await self._backend.get(key) and await self.get_token(session_id) is None:
                cleaned += 1

        if cleaned > 0:
            logger.info("Cleaned up expired records", count=cleaned)

        return cleaned
