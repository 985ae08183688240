"""
Vault Client Exception Hierarchy.

Every failure surfaced by vaultkit is one of a closed set of error kinds, so
callers can decide how to react without inspecting HTTP details.

Exception hierarchy:
    VaultClientError (base, carries ErrorKind + cause)
    ├── AuthenticationError - Bad/expired/missing token (never retried)
    ├── SecretNotFoundError - No such secret or path (never retried)
    ├── TransientError - Network failure, 5xx, rate limit (retried)
    ├── PermanentError - Malformed response, misuse, other 4xx (never retried)
    └── LeaseExpiredError - Lease no longer valid on the backend

All exceptions include structured context (path, HTTP status) without
exposing secret values or tokens.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Tag identifying which branch of the taxonomy an error belongs to."""

    AUTHENTICATION = "authentication"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    PERMANENT = "permanent"
    LEASE_EXPIRED = "lease_expired"


class VaultClientError(Exception):
    """
    Base exception for all vaultkit errors.

    Subclasses fix ``kind``; callers that need to branch on the taxonomy can
    either catch the subclass or switch on ``error.kind``.

    Attributes:
        message: Human-readable error message (MUST NOT include secret values)
        path: Backend path or lease ID the failing operation targeted
        status: HTTP status code, when the failure came from a response
        cause: Original exception or response, kept for diagnostics

    Example:
        >>> try:
        ...     secret = client.read_secret("database/password")
        ... except VaultClientError as e:
        ...     logger.error("Vault error", extra={"kind": e.kind, "path": e.path})
    """

    kind: ErrorKind = ErrorKind.PERMANENT

    def __init__(
        self,
        message: str,
        path: str | None = None,
        status: int | None = None,
        cause: object | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.path = path
        self.status = status
        self.cause = cause

    @property
    def retryable(self) -> bool:
        """Only transient failures are worth another attempt."""
        return self.kind is ErrorKind.TRANSIENT

    def __str__(self) -> str:
        """
        Format error message with context (path + status).

        Example:
            >>> str(TransientError("Vault unavailable", "secret/data/db", 503))
            'Vault unavailable (path: secret/data/db, status: 503)'
        """
        context_parts = []
        if self.path:
            context_parts.append(f"path: {self.path}")
        if self.status is not None:
            context_parts.append(f"status: {self.status}")

        if context_parts:
            context = ", ".join(context_parts)
            return f"{self.message} ({context})"
        return self.message


class AuthenticationError(VaultClientError):
    """
    Raised when the token is missing, invalid, expired or lacks permission.

    Never retried: the caller must re-authenticate (rotate the token) before
    the operation can succeed.

    Common causes:
    - Token TTL exceeded (renew earlier or rotate)
    - Policy does not grant the capability on the path
    - No token was ever established
    """

    kind = ErrorKind.AUTHENTICATION


class SecretNotFoundError(VaultClientError):
    """
    Raised when a requested secret or path doesn't exist in the backend.

    Common causes:
    - Typo in secret path or wrong mount point
    - Secret was deleted (KV v2 soft delete of latest version)
    - Role name for dynamic credentials does not exist
    """

    kind = ErrorKind.NOT_FOUND


class TransientError(VaultClientError):
    """
    Raised for failures that may succeed on a later attempt.

    Covers network timeouts, connection resets, HTTP 5xx and rate limiting
    (429). The retry policy retries these; when the attempt budget is
    exhausted the last TransientError is surfaced unchanged.
    """

    kind = ErrorKind.TRANSIENT


class PermanentError(VaultClientError):
    """
    Raised for failures that will not go away by retrying.

    Covers malformed or unexpected response bodies, HTTP 4xx other than
    401/403/404, and programming misuse (e.g. registering a lease twice).
    """

    kind = ErrorKind.PERMANENT


class LeaseExpiredError(VaultClientError):
    """
    Raised when a lease is no longer valid.

    Either the backend reported the lease as invalid/unknown during a renew
    or revoke call, or the lease manager already dropped the lease after a
    failed renewal. Holders of the credential must request a new one.
    """

    kind = ErrorKind.LEASE_EXPIRED


_KIND_TO_CLASS: dict[ErrorKind, type[VaultClientError]] = {
    ErrorKind.AUTHENTICATION: AuthenticationError,
    ErrorKind.NOT_FOUND: SecretNotFoundError,
    ErrorKind.TRANSIENT: TransientError,
    ErrorKind.PERMANENT: PermanentError,
    ErrorKind.LEASE_EXPIRED: LeaseExpiredError,
}


def error_for_kind(
    kind: ErrorKind,
    message: str,
    path: str | None = None,
    status: int | None = None,
    cause: object | None = None,
) -> VaultClientError:
    """Build the exception class matching ``kind``."""
    return _KIND_TO_CLASS[kind](message, path=path, status=status, cause=cause)
