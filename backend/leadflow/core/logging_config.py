"""
Structured logging configuration.

Logs are JSON in production (or when LOG_FORMAT=json) so they can be
shipped to a log aggregator, and human-readable text otherwise.

Usage:
    from leadflow.core.logging_config import setup_logging, get_logger

    # In main.py or app startup
    setup_logging()

    # In your code
    logger = get_logger(__name__)
    logger.info("lead_distribution", organization_id=org_id, assigned=3)
"""

import logging
import sys

import structlog
from pythonjsonlogger import jsonlogger

from leadflow.config import settings


def setup_logging() -> None:
    """
    Configure stdlib logging and structlog for the application.
    """
    use_json = settings.LOG_FORMAT == "json" or settings.ENVIRONMENT == "production"

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            ],
        ),
    ]

    if use_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configure_stdlib_json(use_json)

    # Silence noisy loggers in production
    if settings.ENVIRONMENT == "production":
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def _configure_stdlib_json(use_json: bool = False) -> None:
    """Route uvicorn and plain ``logging`` output through a JSON formatter."""
    if not use_json:
        return

    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        rename_fields={"asctime": "timestamp", "levelname": "level"},
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    for logger_name in ["", "uvicorn", "uvicorn.access", "uvicorn.error"]:
        logger = logging.getLogger(logger_name)
        logger.handlers.clear()
        logger.addHandler(handler)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Structured logger with context support
    """
    return structlog.get_logger(name)


def log_request(
    logger: structlog.stdlib.BoundLogger,
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    **kwargs,
) -> None:
    """Log HTTP request with structured data."""
    logger.info(
        "http_request",
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=duration_ms,
        **kwargs,
    )


def log_distribution_run(
    logger: structlog.stdlib.BoundLogger,
    organization_id: str,
    method: str,
    assigned_count: int,
    skipped_count: int,
    error_count: int,
    **kwargs,
) -> None:
    """Log the outcome of a lead distribution batch."""
    logger.info(
        "lead_distribution",
        organization_id=organization_id,
        method=method,
        assigned_count=assigned_count,
        skipped_count=skipped_count,
        error_count=error_count,
        **kwargs,
    )
