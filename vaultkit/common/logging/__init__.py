"""Structured logging with trace IDs and credential redaction.

Usage:
    from vaultkit.common.logging import configure_logging, LogContext
    configure_logging(service_name="deploy-worker", log_level="INFO")

    with LogContext():
        client.issue_dynamic_secret(EngineKind.AWS, "deploy")
"""

from vaultkit.common.logging.config import TraceIDFilter, configure_logging, get_logger
from vaultkit.common.logging.context import (
    TRACE_ID_HEADER,
    LogContext,
    clear_trace_id,
    generate_trace_id,
    get_or_create_trace_id,
    get_trace_id,
    set_trace_id,
)
from vaultkit.common.logging.formatter import JSONFormatter
from vaultkit.common.logging.redaction import (
    MASK,
    RedactionFilter,
    is_sensitive_key,
    redact_string,
    redact_value,
)

__all__ = [
    # Configuration
    "configure_logging",
    "get_logger",
    "TraceIDFilter",
    # Trace ID management
    "generate_trace_id",
    "get_trace_id",
    "set_trace_id",
    "clear_trace_id",
    "get_or_create_trace_id",
    "LogContext",
    "TRACE_ID_HEADER",
    # Formatting and redaction
    "JSONFormatter",
    "RedactionFilter",
    "MASK",
    "is_sensitive_key",
    "redact_string",
    "redact_value",
]
