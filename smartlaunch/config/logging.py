"""
Structured logging configuration for the SMART launch service.

structlog is configured once at startup. Every event carries the request
correlation ID, and OAuth secrets are masked before rendering so that a
stray ``logger.info(..., token=...)`` never writes a credential to the log.
"""

import logging
import sys
import uuid
from collections.abc import Callable
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

import structlog


@dataclass
class LoggingConfig:
    """Logging configuration."""

    suppressed_loggers: dict[str, str] = field(
        default_factory=lambda: {
            "httpx": "WARNING",
            "httpcore": "WARNING",
            "aiohttp": "WARNING",
            "asyncio": "WARNING",
            "uvicorn.access": "WARNING",
            "redis": "WARNING",
        }
    )
    secret_keys: frozenset[str] = frozenset(
        {
            "access_token",
            "refresh_token",
            "id_token",
            "code",
            "code_verifier",
            "client_secret",
            "authorization",
        }
    )
    request_id_length: int = 8
    colors: bool = True


_logging_config = LoggingConfig()

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def get_request_id() -> str:
    """Get the current request ID from context."""
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set a new request ID in context. Generates one if not provided."""
    new_id = request_id or str(uuid.uuid4())[: _logging_config.request_id_length]
    request_id_var.set(new_id)
    return new_id


def add_request_id(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Structlog processor to add request ID to log events."""
    request_id = get_request_id()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def mask_secrets(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Structlog processor replacing OAuth secrets with a fixed marker."""
    for key in _logging_config.secret_keys.intersection(event_dict):
        if event_dict[key]:
            event_dict[key] = "***"
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: If True, output JSON logs; otherwise, use console format
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[Callable] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        add_request_id,
        mask_secrets,
    ]

    if json_format:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=_logging_config.colors),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    for logger_name, logger_level in _logging_config.suppressed_loggers.items():
        suppressed_level = getattr(logging, logger_level.upper(), logging.WARNING)
        logging.getLogger(logger_name).setLevel(suppressed_level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)
