"""
Pydantic models for SMART tokens and auth status.
"""

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from smartlaunch.constants import TOKEN_EXPIRY_BUFFER_SECONDS


class SmartToken(BaseModel):
    """
    Token returned by a SMART token endpoint, merged with the issuer that minted it.

    Fields the token endpoint returns beyond the named ones (``encounter``,
    ``need_patient_banner``, ...) are kept as extras.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str
    token_type: str = "Bearer"
    expires_in: float | None = None
    scope: str | None = None
    patient: str | None = None
    id_token: str | None = None
    refresh_token: str | None = None
    iss: str
    expires_at: float | None = None
    created_at: float = Field(default_factory=time.time)

    def model_post_init(self, __context: Any) -> None:
        """Compute expiration timestamp from expires_in if provided."""
        if self.expires_in is not None and self.expires_at is None:
            self.expires_at = self.created_at + self.expires_in

    def seconds_until_expiry(self) -> float | None:
        """Get seconds remaining until token expires."""
        if self.expires_at is None:
            return None
        return self.expires_at - time.time()

    def has_expired(self, buffer_seconds: int = TOKEN_EXPIRY_BUFFER_SECONDS) -> bool:
        """Check if token has expired or will expire within the buffer."""
        remaining = self.seconds_until_expiry()
        if remaining is None:
            return False
        return remaining < buffer_seconds

    @property
    def is_expired(self) -> bool:
        return self.has_expired()

    @property
    def granted_scopes(self) -> list[str]:
        return self.scope.split() if self.scope else []


class AuthStatusResponse(BaseModel):
    """Response for the auth status endpoint."""

    authenticated: bool = False
    iss: str | None = None
    patient: str | None = None
    expires_at: float | None = None
    scopes: list[str] | None = None
    readable_resources: list[str] = Field(
        default_factory=list, description="Resource types the granted scopes allow reading"
    )
    writable_resources: list[str] = Field(
        default_factory=list, description="Resource types the granted scopes allow writing"
    )
