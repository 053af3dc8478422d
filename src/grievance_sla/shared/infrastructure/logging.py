"""
Structured Logging
==================

JSON-structured logging with ticket-scoped context.

Provides:
- Structured JSON logs (parseable by log aggregators)
- Ticket context for tracing escalation transitions
- Contextual loggers for modules
- Performance timing utilities

Usage:
    from grievance_sla.shared.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Ticket escalated", extra={"ticket_id": "GRV-001"})
"""

import logging
import sys
import time
from datetime import datetime, timezone
from typing import Any, Union
from contextlib import contextmanager

from pythonjsonlogger.json import JsonFormatter


LoggerLike = Union[logging.Logger, logging.LoggerAdapter]


class CustomJsonFormatter(JsonFormatter):
    """
    Custom JSON formatter with additional fields.

    Adds:
    - timestamp in ISO format
    - ticket_id when available
    - Environment info
    """

    def __init__(self, *args: Any, environment: str = "unknown", **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.environment = environment

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()

        if hasattr(record, "ticket_id"):
            log_record["ticket_id"] = record.ticket_id

        log_record["environment"] = getattr(record, "environment", self.environment)

        # Actor ids and reasons are fine; credentials are not
        for key, value in list(log_record.items()):
            if isinstance(value, str):
                lowered = key.lower()
                if "password" in lowered or "api_key" in lowered or "secret" in lowered:
                    log_record[key] = "***REDACTED***"
                elif "token" in lowered:
                    log_record[key] = "***REDACTED***"


def setup_logging(
    level: str = "INFO",
    environment: str = "development",
) -> None:
    """
    Configure structured JSON logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        environment: Environment name for log context
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    formatter = CustomJsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        environment=environment,
    )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # Silence noisy loggers
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("watchdog").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        logging.Logger: Configured logger instance
    """
    return logging.getLogger(name)


def get_context_logger(name: str, ticket_id: str | None = None) -> LoggerLike:
    """
    Get a logger bound to one ticket.

    Args:
        name: Logger name
        ticket_id: Ticket the following records are about

    Returns:
        Logger with ticket_id in extra
    """
    logger = get_logger(name)
    if ticket_id:
        return logging.LoggerAdapter(logger, {"ticket_id": ticket_id})
    return logger


@contextmanager
def log_latency(logger: LoggerLike, operation: str, **extra_context: Any):
    """
    Context manager for measuring and logging operation latency.

    Usage:
        with log_latency(logger, "auto_escalation_tick", tickets=42):
            report = await service.run_auto_escalation_tick()

    Args:
        logger: Logger instance
        operation: Operation name for logging
        **extra_context: Additional context to include in log
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        latency_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"{operation} completed",
            extra={
                "operation": operation,
                "latency_ms": round(latency_ms, 2),
                **extra_context,
            },
        )
