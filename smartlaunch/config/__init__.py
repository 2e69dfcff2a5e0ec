"""Configuration modules for the SMART launch service."""

from smartlaunch.config.logging import configure_logging, get_logger
from smartlaunch.config.settings import Settings, get_settings, reset_settings

__all__ = [
    "Settings",
    "get_settings",
    "reset_settings",
    "configure_logging",
    "get_logger",
]
