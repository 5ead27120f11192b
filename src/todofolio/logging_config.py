"""
Logging configuration.

structlog is configured once per process by ``configure_logging``; modules
obtain loggers through ``get_logger(__name__)`` and log key/value events.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Dict, List

import structlog
from structlog.types import EventDict, Processor

_SENSITIVE_KEYS = {"password", "token", "secret", "authorization", "password_hash"}


def add_app_context(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application-level context to all log entries."""
    event_dict["app"] = "todofolio"
    return event_dict


def sanitize_event(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Redact passwords, tokens and secrets from log entries."""

    def _sanitize(d: Dict[str, Any]) -> Dict[str, Any]:
        sanitized: Dict[str, Any] = {}
        for key, value in d.items():
            key_lower = str(key).lower()
            if any(s in key_lower for s in _SENSITIVE_KEYS):
                sanitized[key] = "***REDACTED***"
            elif isinstance(value, dict):
                sanitized[key] = _sanitize(value)
            else:
                sanitized[key] = value
        return sanitized

    return _sanitize(event_dict)


# PUBLIC_INTERFACE
def configure_logging(environment: str = "development", level: str = "INFO") -> None:
    """
    Configure structlog for the application.

    Args:
        environment: "production" renders JSON lines, anything else renders
            human readable console output.
        level: Root log level name.
    """
    shared_processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_app_context,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        sanitize_event,
    ]

    if environment == "production":
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=False),
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
        level=getattr(logging, level.upper(), logging.INFO),
    )


# PUBLIC_INTERFACE
def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)
