"""Structured logging for the Augmentations API.

Every module logs through ``structlog.get_logger(__name__)`` with event-name
messages. configure_logging() wires structlog onto stdlib logging once, at
composition time, so uvicorn and SQLAlchemy records share the same handler.
"""

import logging
import sys
from typing import Any, Dict

import structlog
from structlog.types import EventDict, Processor

# Libraries whose INFO output drowns the application's own events.
NOISY_LOGGERS: Dict[str, int] = {
    "sqlalchemy.engine": logging.WARNING,
    "passlib": logging.ERROR,
    "uvicorn.access": logging.WARNING,
}


def add_service_fields(service_name: str, environment: str) -> Processor:
    """Processor stamping service and environment on every entry."""
    def processor(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", service_name)
        event_dict.setdefault("environment", environment)
        return event_dict
    return processor


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    service_name: str = "AugmentationsAPI",
    environment: str = "production",
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: JSON lines when True, coloured console output otherwise
        service_name: Value of the "service" field
        environment: Value of the "environment" field
    """
    level = getattr(logging, log_level.upper())

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        add_service_fields(service_name, environment),
    ]
    processors.append(
        structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)

    for name, minimum in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(max(level, minimum))


def bind_context(**kwargs: Any) -> None:
    """Bind request context (user id, ...) to later entries of this request."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context(*keys: str) -> None:
    """Drop request context; all of it when no keys are given."""
    if keys:
        structlog.contextvars.unbind_contextvars(*keys)
    else:
        structlog.contextvars.clear_contextvars()
