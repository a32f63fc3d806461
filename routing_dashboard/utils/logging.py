"""
structlog setup for the API process.

Every event carries the service name and environment so the JSON lines can
be filtered in a shared log sink; services add ``component`` and
``operation`` on top.
"""
import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

SERVICE_NAME = "routing-dashboard"


def _service_context(environment: str) -> Processor:
    def add_service(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", SERVICE_NAME)
        event_dict.setdefault("environment", environment)
        return event_dict

    return add_service


def setup_logging(level: str = "INFO", format_type: str = "json", environment: str = "development") -> None:
    """
    Configure structlog once at startup.

    Args:
        level: Minimum level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: 'json' for log shipping, 'console' for local development
        environment: Stamped on every event
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    # uvicorn and SQLAlchemy log through the stdlib
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    renderer: Processor
    if format_type == "console":
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _service_context(environment),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None) -> Any:
    return structlog.get_logger(name)


def log_query_failure(logger: Any, operation: str, error: Exception, **context: Any) -> str:
    """Log a recovered query failure and return the short error message."""
    error_msg = f"{type(error).__name__}: {error}"
    logger.error(
        "query_failed",
        operation=operation,
        error_type=type(error).__name__,
        error=error_msg,
        **context,
    )
    return error_msg
