"""
Structured logging configuration.

Uses structlog for key/value events rendered as JSON, so every
state transition and gateway call can be traced by transaction id.
"""

import logging
import sys
from typing import Any, Callable

import structlog

from mobile_payments.config import Settings, get_settings


def app_context(settings: Settings) -> Callable:
    """Processor stamping every event with the service name and environment."""
    context = {
        "app_name": settings.APP_NAME,
        "environment": settings.ENVIRONMENT,
    }

    def add_app_context(
        logger: Any, method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        event_dict.update(context)
        return event_dict

    return add_app_context


def setup_logging() -> None:
    """
    Configure structlog on top of the standard library logger.

    LOG_FORMAT=console switches to a human-readable renderer
    for local development.
    """
    settings = get_settings()

    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.LOG_FORMAT == "console"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            app_context(settings),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL, logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "logging_configured",
        log_level=settings.LOG_LEVEL,
        log_format=settings.LOG_FORMAT,
    )


def get_logger(name: str) -> Any:
    """Return a structured logger bound to ``name``."""
    return structlog.get_logger(name)
