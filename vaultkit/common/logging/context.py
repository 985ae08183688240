"""Trace ID generation and context propagation.

Trace IDs are UUIDv4 strings that follow a logical operation through the
client and into the Vault audit log (via the ``X-Trace-ID`` request header),
so every log line for one secret fetch can be grouped together.

Example:
    >>> from vaultkit.common.logging.context import LogContext, get_trace_id
    >>> with LogContext("deploy-42"):
    ...     get_trace_id()
    'deploy-42'
"""

import contextvars
import uuid
from types import TracebackType

_trace_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("trace_id", default=None)

# HTTP header name for trace ID propagation
TRACE_ID_HEADER = "X-Trace-ID"


def generate_trace_id() -> str:
    """Generate a new unique trace ID (UUID v4 string)."""
    return str(uuid.uuid4())


def get_trace_id() -> str | None:
    """Get the current trace ID, or None if unset."""
    return _trace_id_var.get()


def set_trace_id(trace_id: str) -> None:
    """Set the trace ID for the current context.

    Raises:
        ValueError: If trace_id is empty or None
    """
    if not trace_id:
        raise ValueError("Trace ID cannot be empty")
    _trace_id_var.set(trace_id)


def clear_trace_id() -> None:
    _trace_id_var.set(None)


def get_or_create_trace_id() -> str:
    """Return the current trace ID, generating and setting one if absent."""
    trace_id = get_trace_id()
    if trace_id is None:
        trace_id = generate_trace_id()
        set_trace_id(trace_id)
    return trace_id


class LogContext:
    """Context manager scoping a trace ID to a block.

    The previous trace ID (or its absence) is restored on exit.

    Args:
        trace_id: Trace ID for this block. If None, a new one is generated.
    """

    def __init__(self, trace_id: str | None = None) -> None:
        self.trace_id = trace_id or generate_trace_id()
        self.previous_trace_id: str | None = None

    def __enter__(self) -> str:
        self.previous_trace_id = get_trace_id()
        set_trace_id(self.trace_id)
        return self.trace_id

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self.previous_trace_id is not None:
            set_trace_id(self.previous_trace_id)
        else:
            clear_trace_id()
