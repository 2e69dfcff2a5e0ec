"""
Pydantic models for the SMART launch flow.
"""

import time
from typing import Literal

from pydantic import BaseModel, Field

from smartlaunch.config.settings import DEFAULT_SMART_SCOPE, Settings


class LaunchConfig(BaseModel):
    """Client registration used to initiate a launch."""

    client_id: str
    redirect_uri: str
    default_iss: str | None = None
    scope: str = DEFAULT_SMART_SCOPE
    pkce: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "LaunchConfig":
        return cls(
            client_id=settings.client_id,
            redirect_uri=settings.redirect_uri,
            default_iss=settings.default_iss or None,
            scope=settings.scope or DEFAULT_SMART_SCOPE,
            pkce=settings.pkce,
        )


class LaunchContext(BaseModel):
    """
    Transient state held between launch initiation and completion.

    Stored under its own ``state`` value, so concurrent launches never
    overwrite one another.
    """

    iss: str
    state: str
    session_id: str
    redirect_uri: str
    client_id: str
    scope: str
    launch: str | None = None
    code_verifier: str | None = None
    created_at: float = Field(default_factory=time.time)


class SmartEndpoints(BaseModel):
    """OAuth endpoints resolved for an issuer."""

    authorization_endpoint: str
    token_endpoint: str
    revocation_endpoint: str | None = None
    capabilities: list[str] = Field(default_factory=list)
    source: Literal["smart-configuration", "metadata"] = "smart-configuration"


class LaunchRedirect(BaseModel):
    """Result of launch initiation: where to send the user agent."""

    authorization_url: str = Field(description="URL to redirect the user agent to")
    state: str = Field(description="Anti-forgery state bound to this launch")
    iss: str = Field(description="Issuer being launched against")
