"""
Authentication module for the SMART launch service.

Provides launch-context and token storage and session management.
"""

from smartlaunch.auth.secure_token_store import (
    InMemoryTokenStorage,
    RedisTokenStorage,
    SecureTokenStore,
    TokenStorageBackend,
)
from smartlaunch.auth.token_manager import (
    SessionTokenManager,
    get_token_manager,
)

__all__ = [
    "InMemoryTokenStorage",
    "RedisTokenStorage",
    "SecureTokenStore",
    "TokenStorageBackend",
    "SessionTokenManager",
    "get_token_manager",
]
