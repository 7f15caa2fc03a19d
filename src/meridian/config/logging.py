"""Structured logging with structlog.

Request handlers bind a request id into structlog's context variables so
every engine, ledger and event log line emitted while serving the request
carries it without being passed around explicitly.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Optional

import structlog
from structlog.types import Processor

from .settings import Settings, get_settings

_SIZE_UNITS = {"KB": 1024, "MB": 1024**2, "GB": 1024**3}


def setup_logging(settings: Optional[Settings] = None) -> None:
    """
    Configure stdlib logging and structlog from settings.

    Args:
        settings: Settings to read; defaults to the cached application settings
    """
    settings = settings or get_settings()
    log_level = getattr(logging, settings.log_level, logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="ISO", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if settings.log_format == "structured":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    if settings.log_file_enabled:
        logging.getLogger().addHandler(
            _rotating_file_handler(
                settings.log_file_path,
                settings.log_max_file_size,
                settings.log_backup_count,
                log_level,
            )
        )


def _rotating_file_handler(
    file_path: str, max_size: str, backup_count: int, level: int
) -> logging.Handler:
    log_file = Path(file_path)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(
        filename=log_file,
        maxBytes=parse_file_size(max_size),
        backupCount=backup_count,
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def parse_file_size(size: str) -> int:
    """Convert ``"10MB"``-style sizes to bytes; a bare number is bytes."""
    size = size.strip().upper()
    for suffix, multiplier in _SIZE_UNITS.items():
        if size.endswith(suffix):
            return int(size[: -len(suffix)]) * multiplier
    return int(size)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_request_context(**values: Any) -> None:
    """Attach values to every log line emitted in the current context."""
    structlog.contextvars.bind_contextvars(**values)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def log_audit_event(action: str, user_id: Optional[str] = None, **context: Any) -> None:
    """
    Record an account-level action on the ``audit`` logger.

    Args:
        action: What happened, e.g. ``account_initialized``
        user_id: Account the action applies to
        **context: Additional fields
    """
    get_logger("audit").info("Audit event", action=action, user_id=user_id, **context)
