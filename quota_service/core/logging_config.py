"""structlog setup for the quota service"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from quota_service.core.config import settings


def add_service_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp every event with the service name, version and environment."""
    event_dict.setdefault("service", settings.APP_NAME)
    event_dict.setdefault("version", settings.APP_VERSION)
    event_dict.setdefault("environment", settings.ENVIRONMENT)
    return event_dict


def build_processors(json_output: bool) -> list[Processor]:
    """Processor chain shared by the API and the Celery workers."""
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_service_context,
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())
    return processors


def configure_structlog() -> None:
    """
    Configure structlog on top of stdlib logging.

    JSON lines unless LOG_FORMAT is "text" or DEBUG is on.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    )

    json_output = settings.LOG_FORMAT == "json" and not settings.DEBUG
    structlog.configure(
        processors=build_processors(json_output),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger.

    Usage:
        logger = get_logger(__name__)
        logger.info("usage_incremented", account_id=account_id, quota_type="messages")
    """
    return structlog.get_logger(name)


configure_structlog()


__all__ = [
    'configure_structlog',
    'get_logger',
]
