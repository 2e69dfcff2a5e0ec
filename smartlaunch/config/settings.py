"""
Application settings using pydantic-settings.

Environment variables are prefixed with SMART_LAUNCH_.
"""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

DEFAULT_SMART_SCOPE = "launch/patient patient/*.read patient/*.write openid fhirUser online_access"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SMART_LAUNCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate settings for production safety."""
        if not self.debug and not self.client_id:
            raise ValueError(
                "SMART_LAUNCH_CLIENT_ID must be set in production. "
                "Set SMART_LAUNCH_DEBUG=true for development."
            )

        return self

    @property
    def cors_allow_credentials(self) -> bool:
        """Allow credentials only when specific origins are configured (not wildcard)."""
        return self.cors_origins != "*"

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Outbound request timeout (discovery, token exchange, FHIR calls)
    request_timeout: int = 30

    # SMART client registration
    client_id: str = ""
    redirect_uri: str = "http://localhost:8000/callback"
    default_iss: str | None = None
    scope: str = DEFAULT_SMART_SCOPE
    pkce: bool = True

    # Session settings
    session_max_age: int = 3600  # 1 hour
    session_cookie_secure: bool = True  # Set to False for local development over HTTP

    # Launch contexts live only between /launch and /callback
    launch_state_ttl: int = 900  # 15 minutes

    # CORS settings
    cors_origins: str = "*"

    # Redis settings (for production token storage)
    redis_url: str | None = None  # e.g., redis://localhost:6379 or rediss://... for TLS
    require_redis_tls: bool = False

    # Encryption at rest for stored tokens
    master_key: str | None = None
    pbkdf2_iterations: int = 100_000

    # Inbound request bodies (FHIR resources posted through /api/fhir)
    max_request_body_size: int = 1024 * 1024  # 1 MB

    # Rate limiting
    rate_limit_max: int = 100
    rate_limit_window: int = 60
    callback_rate_limit_max: int = 20
    callback_rate_limit_window: int = 60

    # Comma-separated CIDR ranges. Empty string = loopback + private ranges, "none" = never trust
    trusted_proxy_cidrs: str = ""


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reset_settings() -> None:
    """Clear the cached settings (for testing)."""
    get_settings.cache_clear()
