"""Logging configuration for applications embedding the Vault client.

The library itself only emits records through module loggers; it never
installs handlers. Applications call configure_logging() once at startup
to get JSON output with trace IDs and credential redaction.

Example:
    >>> from vaultkit.common.logging import configure_logging
    >>> logger = configure_logging(service_name="deploy-worker", log_level="INFO")
    >>> logger.info("Service started", extra={"context": {"vault_addr": "https://vault:8200"}})
"""

import logging
import sys

from vaultkit.common.logging.context import get_trace_id
from vaultkit.common.logging.formatter import JSONFormatter
from vaultkit.common.logging.redaction import RedactionFilter


class TraceIDFilter(logging.Filter):
    """Logging filter that copies the current trace ID onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003 - matches logging API
        record.trace_id = get_trace_id()
        return True


def configure_logging(
    service_name: str,
    log_level: str = "INFO",
    include_context: bool = True,
) -> logging.Logger:
    """Configure structured JSON logging on the root logger.

    Sets up:
    - JSON formatted output to stdout
    - Trace ID injection on all records
    - Redaction of Vault tokens and sensitive fields

    Args:
        service_name: Name of the service (e.g., "deploy-worker")
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        include_context: Whether to include context dict in output

    Returns:
        Configured root logger instance

    Raises:
        ValueError: If log_level is invalid
    """
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {log_level}")

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(JSONFormatter(service_name=service_name, include_context=include_context))
    handler.addFilter(TraceIDFilter())
    handler.addFilter(RedactionFilter())

    root_logger.addHandler(handler)

    # APScheduler logs every job run at INFO.
    logging.getLogger("apscheduler").setLevel(max(numeric_level, logging.WARNING))

    return root_logger


def get_logger(name: str | None = None) -> logging.Logger:
    return logging.getLogger(name)
