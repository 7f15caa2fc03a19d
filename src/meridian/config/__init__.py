"""Configuration management for Meridian application."""

from .logging import (
    bind_request_context,
    clear_request_context,
    get_logger,
    log_audit_event,
    setup_logging,
)
from .settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "setup_logging",
    "get_logger",
    "log_audit_event",
    "bind_request_context",
    "clear_request_context",
]
