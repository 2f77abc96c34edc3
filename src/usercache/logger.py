"""Structured logging with structlog.

Modules log through ``get_logger(__name__)`` with snake_case event names and
key/value context. ``setup_logging`` is optional: until it is called,
structlog's defaults apply.
"""

import logging
import re
import sys
from datetime import datetime, timezone

import structlog
from structlog.types import EventDict, WrappedLogger

from usercache.config import get_settings

_BEARER_PATTERN = re.compile(r"Bearer\s+[A-Za-z0-9._~+/=-]+")
_SECRET_FIELDS = frozenset({"token", "password", "authorization"})


def add_timestamp(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add an ISO-8601 UTC timestamp."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def redact_secrets(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask bearer tokens and credential fields."""
    for key in list(event_dict):
        if key.lower() in _SECRET_FIELDS:
            event_dict[key] = "[REDACTED]"
        elif isinstance(event_dict[key], str):
            event_dict[key] = _BEARER_PATTERN.sub("Bearer [REDACTED]", event_dict[key])
    return event_dict


def setup_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """Configure stdlib logging and structlog.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL (default from settings)
        log_format: 'json' or 'console' (default from settings)
    """
    settings = get_settings()
    log_level = (log_level or settings.log_level).upper()
    log_format = log_format or settings.log_format

    logging.basicConfig(
        format="%(message)s", stream=sys.stdout, level=getattr(logging, log_level), force=True
    )

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            add_timestamp,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_secrets,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger (typically ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


__all__ = ["get_logger", "redact_secrets", "setup_logging"]
