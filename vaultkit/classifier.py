"""
Error classification for Vault transport outcomes.

``classify`` is the single source of truth the retry policy and callers rely
on. It is a pure, total function: every transport outcome (a response that
reached the backend, or an exception raised on the way) maps to exactly one
``VaultClientError`` subclass.

Rules (first match wins):
    - Already classified errors pass through unchanged
    - Network timeouts / connection failures → TransientError
    - 401 / 403 / "permission denied" body → AuthenticationError
    - Lease operation + lease-shaped 400 or any 404 → LeaseExpiredError
    - 404 / "no such secret" body → SecretNotFoundError
    - 429 / 5xx → TransientError
    - Everything else (other 4xx, undecodable success body, unexpected
      exceptions) → PermanentError
"""

import json
from typing import Any

import httpx

from vaultkit.exceptions import (
    AuthenticationError,
    LeaseExpiredError,
    PermanentError,
    SecretNotFoundError,
    TransientError,
    VaultClientError,
)
from vaultkit.transport import TransportResponse

_PERMISSION_DENIED_MARKERS = ("permission denied",)
_NOT_FOUND_MARKERS = ("no such secret", "no value found")
_LEASE_INVALID_MARKERS = (
    "lease not found",
    "invalid lease",
    "lease is not renewable",
    "lease expired",
)


def backend_errors(body: str) -> list[str]:
    """Extract the ``errors`` list from a Vault error body, if any."""
    try:
        payload = json.loads(body) if body else None
    except ValueError:
        return [body.strip()] if body.strip() else []
    if isinstance(payload, dict):
        errors = payload.get("errors")
        if isinstance(errors, list):
            return [str(error) for error in errors]
    return []


def _describe(response: TransportResponse) -> str:
    errors = backend_errors(response.body)
    if errors:
        return "; ".join(errors)
    return f"HTTP {response.status}"


def _contains(text: str, markers: tuple[str, ...]) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in markers)


def classify_response(
    response: TransportResponse,
    *,
    path: str | None = None,
    lease_operation: bool = False,
) -> VaultClientError:
    """Classify a response that reached the backend."""
    status = response.status
    detail = _describe(response)

    if status in (401, 403) or _contains(detail, _PERMISSION_DENIED_MARKERS):
        return AuthenticationError(
            f"Vault denied access: {detail}", path=path, status=status, cause=response
        )

    if lease_operation and (
        status == 404 or (400 <= status < 500 and _contains(detail, _LEASE_INVALID_MARKERS))
    ):
        return LeaseExpiredError(
            f"Lease is no longer valid: {detail}", path=path, status=status, cause=response
        )

    if status == 404 or (400 <= status < 500 and _contains(detail, _NOT_FOUND_MARKERS)):
        return SecretNotFoundError(
            f"Secret not found: {detail}", path=path, status=status, cause=response
        )

    if status == 429 or 500 <= status < 600:
        return TransientError(
            f"Vault temporarily unavailable: {detail}", path=path, status=status, cause=response
        )

    if 200 <= status < 300:
        return PermanentError(
            "Unexpected success response body from Vault", path=path, status=status, cause=response
        )

    return PermanentError(
        f"Vault rejected request: {detail}", path=path, status=status, cause=response
    )


def classify_exception(
    error: BaseException,
    *,
    path: str | None = None,
) -> VaultClientError:
    """Classify an exception raised while sending or decoding."""
    if isinstance(error, VaultClientError):
        return error
    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
        return TransientError(
            f"Vault unreachable: {type(error).__name__}: {error}", path=path, cause=error
        )
    if isinstance(error, (ConnectionError, TimeoutError)):
        return TransientError(
            f"Vault unreachable: {type(error).__name__}: {error}", path=path, cause=error
        )
    if isinstance(error, (ValueError, KeyError, TypeError)):
        return PermanentError(
            f"Malformed response from Vault: {type(error).__name__}: {error}",
            path=path,
            cause=error,
        )
    return PermanentError(
        f"Unexpected transport failure: {type(error).__name__}: {error}", path=path, cause=error
    )


def classify(
    outcome: TransportResponse | BaseException,
    *,
    path: str | None = None,
    lease_operation: bool = False,
) -> VaultClientError:
    """
    Map a transport outcome to exactly one error kind.

    Args:
        outcome: The response that reached the backend, or the exception
            raised by the transport (or while decoding its body)
        path: Backend path or lease ID, kept as error context
        lease_operation: True for renew/revoke calls, where a missing or
            invalid lease means LeaseExpiredError rather than NotFound

    Returns:
        The classified error instance (not raised)

    Example:
        >>> classify(TransportResponse(403, '{"errors": ["permission denied"]}'))
        AuthenticationError('Vault denied access: permission denied')
    """
    if isinstance(outcome, TransportResponse):
        return classify_response(outcome, path=path, lease_operation=lease_operation)
    return classify_exception(outcome, path=path)


def decode_body(response: TransportResponse, *, path: str | None = None) -> dict[str, Any] | None:
    """
    Decode a successful response body.

    Returns None for empty bodies (204 responses). A body that is not a JSON
    object is classified as PermanentError.
    """
    try:
        payload = response.json()
    except ValueError as e:
        raise PermanentError(
            f"Vault returned a non-JSON body: {e}", path=path, status=response.status, cause=e
        ) from e
    if payload is None:
        return None
    if not isinstance(payload, dict):
        raise PermanentError(
            f"Vault returned a {type(payload).__name__} body, expected an object",
            path=path,
            status=response.status,
            cause=response,
        )
    return payload
