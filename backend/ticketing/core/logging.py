"""
Structured logging configuration using structlog.

JSON output in production, pretty console output everywhere else.
Request-scoped context (request id, method, path) is merged from
contextvars, so booking logs can be correlated with the request that
produced them.

Faults that need a human (inventory that could not be restored, an
orphaned booking the compensation step could not remove) go to the
"ticketing.operator" logger so they can be routed to an alerting sink
separately from regular application logs.
"""

import logging
import sys
import structlog
from ticketing.core.config import get_settings

OPERATOR_LOGGER_NAME = "ticketing.operator"


def setup_logging() -> None:
    settings = get_settings()

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.ENVIRONMENT == "production":
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ]
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    # Operator alerts are never filtered out by LOG_LEVEL
    logging.getLogger(OPERATOR_LOGGER_NAME).setLevel(logging.WARNING)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def get_operator_logger() -> structlog.stdlib.BoundLogger:
    """Logger for faults that must be reconciled out of band."""
    return structlog.get_logger(OPERATOR_LOGGER_NAME)
