"""
Structured logging configuration.

Every module logs through ``structlog.get_logger(__name__)`` with an event name
and keyword context, e.g. ``logger.info("payment_created", payment_reference=ref)``.
"""
import logging
import sys
from typing import Any

import structlog

from core.config import settings


def add_app_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict["app_name"] = settings.APP_NAME
    event_dict["app_version"] = settings.APP_VERSION
    return event_dict


def configure_logging() -> None:
    """Configure structlog and the standard library root logger.

    Safe to call more than once; the last call wins.
    """
    level = getattr(logging, settings.LOG_LEVEL, logging.INFO)

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.LOG_JSON
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            add_app_context,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )

    # Libraries such as uvicorn and celery keep using the standard library
    logging.basicConfig(stream=sys.stdout, level=level, format="%(message)s")
