"""
Value types shared across vaultkit.

``Token``, ``LeaseInfo`` and ``Secret`` are immutable: rotation replaces a
token wholesale, renewal produces new lease bookkeeping inside the lease
manager, and secrets handed to callers never change underneath them.

None of these types include secret material in ``repr()``/``str()``, so they
are safe to pass to loggers.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from types import MappingProxyType
from typing import Any

REDACTED = "***"


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class Token:
    """
    Bearer credential sent with every request.

    Attributes:
        value: The token string (never shown in repr)
        ttl: Remaining validity at issue time; None for root/periodic tokens
            without an expiry
        renewable: Whether ``auth/token/renew-self`` may extend it
        issued_at: When the TTL started counting
        accessor: Token accessor (safe to log)
        policies: Policies attached to the token
    """

    value: str = field(repr=False)
    ttl: timedelta | None = None
    renewable: bool = False
    issued_at: datetime = field(default_factory=utcnow)
    accessor: str | None = None
    policies: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not self.value:
            raise ValueError("Token value must be a non-empty string")

    @property
    def expires_at(self) -> datetime | None:
        if self.ttl is None:
            return None
        return self.issued_at + self.ttl

    def is_expired(self, now: datetime | None = None) -> bool:
        expires_at = self.expires_at
        if expires_at is None:
            return False
        return (now or utcnow()) >= expires_at

    def __str__(self) -> str:
        return REDACTED

    @classmethod
    def from_auth_response(cls, auth: Mapping[str, Any], issued_at: datetime | None = None) -> "Token":
        """
        Build a token from the ``auth`` block of a Vault login/renew response.

        A ``lease_duration`` of 0 means the token never expires.

        Raises:
            KeyError: If ``client_token`` is missing
        """
        lease_duration = int(auth.get("lease_duration") or 0)
        return cls(
            value=auth["client_token"],
            ttl=timedelta(seconds=lease_duration) if lease_duration > 0 else None,
            renewable=bool(auth.get("renewable", False)),
            issued_at=issued_at or utcnow(),
            accessor=auth.get("accessor"),
            policies=tuple(auth.get("policies") or ()),
        )


@dataclass(frozen=True)
class LeaseInfo:
    """
    Backend-granted validity window for a dynamic secret.

    Attributes:
        lease_id: Backend-assigned unique ID (e.g. "aws/creds/deploy/abc123")
        ttl: Granted duration (Vault ``lease_duration``)
        renewable: Whether ``sys/leases/renew`` may extend it
        issued_at: When the lease was granted
    """

    lease_id: str
    ttl: timedelta
    renewable: bool
    issued_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if not isinstance(self.lease_id, str) or not self.lease_id:
            raise ValueError("lease_id must be a non-empty string")
        if self.ttl < timedelta(0):
            raise ValueError("Lease ttl must not be negative")

    @property
    def expires_at(self) -> datetime:
        return self.issued_at + self.ttl

    @classmethod
    def from_response(cls, payload: Mapping[str, Any], issued_at: datetime | None = None) -> "LeaseInfo | None":
        """
        Extract lease metadata from a Vault response, or None if it has none.

        Vault sends ``lease_id: ""`` for secrets without a lease (e.g. KV).
        """
        lease_id = payload.get("lease_id") or ""
        if not lease_id:
            return None
        return cls(
            lease_id=lease_id,
            ttl=timedelta(seconds=int(payload.get("lease_duration") or 0)),
            renewable=bool(payload.get("renewable", False)),
            issued_at=issued_at or utcnow(),
        )


def _freeze(data: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(data))


@dataclass(frozen=True)
class Secret(Mapping[str, Any]):
    """
    Result of a read or issue: field name → value, plus optional lease.

    Behaves as a read-only mapping over ``data``. Callers may cache a Secret
    but must not assume validity beyond ``remaining_ttl()`` when it carries
    a lease.

    Example:
        >>> creds = client.issue_dynamic_secret(EngineKind.AWS, "deploy")
        >>> creds["access_key"]
        'AKIA...'
        >>> creds.lease.lease_id
        'aws/creds/deploy/abc123'
    """

    path: str
    data: Mapping[str, Any] = field(default_factory=dict, repr=False)
    lease: LeaseInfo | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", _freeze(self.data))
        object.__setattr__(self, "metadata", _freeze(self.metadata))

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.data)

    def __len__(self) -> int:
        return len(self.data)

    @property
    def lease_id(self) -> str | None:
        return self.lease.lease_id if self.lease else None

    def remaining_ttl(self, now: datetime | None = None) -> timedelta | None:
        """Time left on the lease as granted at issue; None for unleased secrets."""
        if self.lease is None:
            return None
        return max(self.lease.expires_at - (now or utcnow()), timedelta(0))
