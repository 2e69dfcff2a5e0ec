"""
Audit logging for security-relevant events.

Records launch initiation and completion, token removal, rejected
callbacks, and bearer-authenticated FHIR access on a dedicated logger.
"""

import logging
from typing import Any

import structlog

_audit_logger = structlog.wrap_logger(
    logging.getLogger("smart.audit"),
    wrapper_class=structlog.stdlib.BoundLogger,
)


class AuditEvent:
    """Constants for audit event types."""

    # Launch events
    AUTH_START = "auth.start"
    AUTH_SUCCESS = "auth.success"
    AUTH_FAILURE = "auth.failure"
    AUTH_REVOKE = "auth.revoke"

    # Token events
    TOKEN_EXPIRED = "token.expired"

    # Resource access events
    RESOURCE_READ = "resource.read"
    RESOURCE_CREATE = "resource.create"
    RESOURCE_UPDATE = "resource.update"
    RESOURCE_DELETE = "resource.delete"
    RESOURCE_ACCESS_ERROR = "resource.access_error"

    # Session events
    SESSION_CLEANUP = "session.cleanup"

    # Security events
    SECURITY_INVALID_STATE = "security.invalid_state"
    SECURITY_RATE_LIMIT = "security.rate_limit"
    SECURITY_CSRF_VIOLATION = "security.csrf_violation"
    SECURITY_SESSION_MISMATCH = "security.session_mismatch"


# Maps HTTP methods to the resource event they produce
METHOD_EVENTS = {
    "GET": AuditEvent.RESOURCE_READ,
    "POST": AuditEvent.RESOURCE_CREATE,
    "PUT": AuditEvent.RESOURCE_UPDATE,
    "PATCH": AuditEvent.RESOURCE_UPDATE,
    "DELETE": AuditEvent.RESOURCE_DELETE,
}

SESSION_ID_VISIBLE_CHARS = 16


def truncate_session_id(session_id: str, visible_chars: int = SESSION_ID_VISIBLE_CHARS) -> str:
    """Truncate session ID for logging while preserving enough for correlation."""
    if len(session_id) > visible_chars:
        return session_id[:visible_chars] + "..."
    return session_id


def audit_log(
    event: str,
    *,
    session_id: str | None = None,
    iss: str | None = None,
    resource_path: str | None = None,
    user_id: str | None = None,
    success: bool = True,
    error: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """
    Log an audit event.

    Args:
        event: Event type from AuditEvent constants
        session_id: Optional session identifier (truncated before logging)
        iss: Optional FHIR issuer the event concerns
        resource_path: Optional FHIR resource path
        user_id: Optional fhirUser or subject of the clinician
        success: Whether the operation succeeded
        error: Optional error message if failed
        details: Optional additional details
    """
    log_data: dict[str, Any] = {
        "audit_event": event,
        "success": success,
    }

    if session_id:
        log_data["session_id"] = truncate_session_id(session_id)
    if iss:
        log_data["iss"] = iss
    if resource_path:
        # Query strings may carry patient identifiers
        log_data["resource_path"] = resource_path.split("?", 1)[0]
    if user_id:
        log_data["user_id"] = user_id
    if error:
        log_data["error"] = error
    if details:
        log_data["details"] = details

    if success:
        _audit_logger.info(event, **log_data)
    else:
        _audit_logger.warning(event, **log_data)
