"""
structlog setup for the API process.

Every stdlib logger (uvicorn, SQLAlchemy, httpx) is routed through the same
ProcessorFormatter, so third-party lines and our own events render alike:
one JSON object per line in production, colored key=value pairs elsewhere.

Services log snake_case event names with keyword fields:

    logger.info("booking_created", booking_id=booking.id, event_id=event.id)

request_id, method and path are merged in from contextvars bound by
RequestLoggingMiddleware.
"""

import logging
import sys

import structlog
from structlog.typing import EventDict, Processor

from app.core.config import get_settings

NOISY_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
}


def add_app_context(logger, method_name: str, event_dict: EventDict) -> EventDict:
    settings = get_settings()
    event_dict.setdefault("service", settings.APP_NAME)
    event_dict.setdefault("env", settings.ENVIRONMENT)
    return event_dict


def _pre_chain(json_output: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.ExtraAdder(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_output:
        processors += [
            add_app_context,
            structlog.processors.dict_tracebacks,
        ]
    return processors


def setup_logging() -> None:
    settings = get_settings()
    json_output = settings.ENVIRONMENT == "production"
    pre_chain = _pre_chain(json_output)

    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *pre_chain,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    ))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.LOG_LEVEL.upper())

    for name, level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
