"""
Custom error types for the SMART launch service.

Every failure in the launch flow and in authenticated FHIR access is raised
as a subclass of SmartLaunchError. None are retried; callers present them.
"""

from typing import Any


class SmartLaunchError(Exception):
    """Base exception for all SMART launch errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


# Launch errors


class LaunchError(SmartLaunchError):
    """Base exception for failures while initiating or completing a launch."""

    pass


class MissingIssuerError(LaunchError):
    """Raised when no issuer is given on the launch URL and none is configured."""

    def __init__(self, message: str = "Missing issuer (iss)"):
        super().__init__(message)


class DiscoveryError(LaunchError):
    """Raised when an issuer's OAuth endpoints cannot be discovered."""

    def __init__(self, iss: str, reason: str | None = None):
        self.iss = iss
        message = f"Unable to discover SMART endpoints for {iss}"
        if reason:
            message += f": {reason}"
        super().__init__(message, details={"iss": iss, "reason": reason})


class StateMismatchError(LaunchError):
    """Raised when the redirect's state is unknown, foreign, or the code is absent."""

    def __init__(self, reason: str | None = None):
        super().__init__("State mismatch or missing code", details={"reason": reason})


class AuthorizationDeniedError(LaunchError):
    """Raised when the authorization server redirects back with an OAuth error."""

    def __init__(self, error: str, description: str | None = None):
        self.error = error
        self.description = description
        super().__init__(
            f"Authorization failed: {description or error}",
            details={"error": error, "error_description": description},
        )


class TokenExchangeError(LaunchError):
    """Raised when the token endpoint rejects the authorization code."""

    def __init__(self, status_code: int | None = None, body: str | None = None):
        self.status_code = status_code
        super().__init__(
            "Token exchange failed",
            details={"status_code": status_code, "body": body[:200] if body else None},
        )


# Authenticated resource access errors


class ResourceAccessError(SmartLaunchError):
    """Base exception for bearer-authenticated FHIR calls."""

    pass


class NoTokenError(ResourceAccessError):
    """Raised when an authenticated call is made without a stored, unexpired token."""

    def __init__(self, message: str = "No SMART token in storage"):
        super().__init__(message)


class SmartRequestError(ResourceAccessError):
    """Raised when the FHIR server answers an authenticated call with a failure status."""

    def __init__(self, operation: str, status_code: int, body: str | None = None):
        self.operation = operation
        self.status_code = status_code
        super().__init__(
            f"SMART {operation} failed ({status_code})",
            details={"status_code": status_code, "body": body[:200] if body else None},
        )


class InvalidResourcePathError(ResourceAccessError):
    """Raised when a resource path would send the bearer token off the issuer."""

    def __init__(self, resource_path: str, reason: str):
        self.resource_path = resource_path
        super().__init__(
            f"Invalid resource path '{resource_path}': {reason}",
            details={"resource_path": resource_path, "reason": reason},
        )


# Configuration errors


class ConfigurationError(SmartLaunchError):
    """Raised when there's a configuration error."""

    pass


class MissingConfigurationError(ConfigurationError):
    """Raised when required configuration is missing."""

    def __init__(self, config_key: str, description: str | None = None):
        self.config_key = config_key
        message = f"Missing required configuration: {config_key}"
        if description:
            message += f". {description}"
        super().__init__(
            message,
            details={"config_key": config_key, "description": description},
        )
