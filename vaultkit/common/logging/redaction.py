"""Masking of Vault credentials in log output.

Two layers:
- Values under sensitive keys (``token``, ``password``, ``secret_key``, ...)
  are replaced with ``***`` regardless of type.
- Strings are scanned for Vault token literals (``hvs.``/``hvb.``/``hvr.``
  service, batch and recovery tokens, and legacy ``s.`` tokens).

Lease IDs, paths and token accessors are not masked.
"""

import logging
import re
from typing import Any

MASK = "***"

TOKEN_PATTERN = re.compile(r"\b(?:hv[sbr]|[sbr])\.[A-Za-z0-9_-]{20,}")

SENSITIVE_KEY_MARKERS = (
    "password",
    "secret_key",
    "secret_access_key",
    "security_token",
    "client_token",
    "private_key",
    "plaintext",
)
SENSITIVE_KEYS = frozenset({"token", "secret", "vault_token", "x_vault_token", "value"})

RESERVED_LOGGING_FIELDS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "asctime",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "trace_id",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)


def is_sensitive_key(key: str) -> bool:
    """True when values stored under ``key`` must never be logged."""
    normalized = str(key).lower().replace("-", "_")
    if normalized in SENSITIVE_KEYS:
        return True
    return any(marker in normalized for marker in SENSITIVE_KEY_MARKERS)


def redact_string(text: str) -> str:
    """Mask Vault token literals embedded in ``text``."""
    return TOKEN_PATTERN.sub(MASK, text)


def redact_value(value: Any) -> Any:
    """Recursively mask sensitive content, preserving container types."""
    if isinstance(value, dict):
        return {
            key: MASK if is_sensitive_key(key) else redact_value(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [redact_value(item) for item in value]
    if isinstance(value, tuple):
        return tuple(redact_value(item) for item in value)
    if isinstance(value, str):
        return redact_string(value)
    return value


class RedactionFilter(logging.Filter):
    """Logging filter that masks credentials on the record in place.

    Applies to the message template, its args and every ``extra`` field, so
    it works with any formatter. Always lets the record through.

    Example:
        >>> handler.addFilter(RedactionFilter())
        >>> logger.info("Token rotated", extra={"token": "hvs.CAESI..."})
        # context: {"token": "***"}
    """

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003 - matches logging API
        if isinstance(record.msg, str):
            record.msg = redact_string(record.msg)
        if record.args:
            if isinstance(record.args, dict):
                record.args = redact_value(record.args)
            elif isinstance(record.args, tuple):
                record.args = tuple(redact_value(arg) for arg in record.args)

        for key, value in list(record.__dict__.items()):
            if key in RESERVED_LOGGING_FIELDS:
                continue
            record.__dict__[key] = MASK if is_sensitive_key(key) else redact_value(value)
        return True
