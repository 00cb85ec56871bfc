"""
Structured logging configuration using structlog.

JSON lines in production, pretty console output in development, always to
stdout. A scrubbing processor redacts any event key that could carry key
material or a capability, whoever logs it.
"""

import logging
import sys

import structlog

from sealed.config import settings

SENSITIVE_KEYS = frozenset(
    {
        "authorization",
        "burn_token",
        "ciphertext",
        "passphrase",
        "secret_id",
        "token",
        "transport_key",
    }
)


def scrub_sensitive(logger, method_name: str, event_dict: dict) -> dict:
    """structlog processor: redact sensitive keys in the event."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = "[redacted]"
    return event_dict


def setup_logging() -> None:
    """
    Configure structlog and stdlib logging integration.

    Call this once at application startup.
    """
    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    level = getattr(logging, settings.log_level.upper())

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.contextvars.merge_contextvars,
            scrub_sensitive,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # stdlib loggers (APScheduler, SQLAlchemy, uvicorn) go to stdout too
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    # Access logs would print secret ids in paths
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.INFO)
