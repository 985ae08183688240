"""Lease lifecycle types used by the LeaseManager."""

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from vaultkit.exceptions import VaultClientError
from vaultkit.models import LeaseInfo

DEFAULT_RENEW_THRESHOLD = 2 / 3

ExpiryCallback = Callable[[str, VaultClientError], None]


class LeaseState(str, Enum):
    """
    Lifecycle of a tracked lease.

    ACTIVE → RENEWING → ACTIVE   (renewal loop)
    ACTIVE → EXPIRED             (renewal failed, or non-renewable TTL elapsed)
    ACTIVE/RENEWING → REVOKED    (explicit revoke or shutdown)
    """

    ACTIVE = "active"
    RENEWING = "renewing"
    EXPIRED = "expired"
    REVOKED = "revoked"


@dataclass(frozen=True)
class LeasePolicy:
    """
    Tunables for lease renewal.

    Attributes:
        renew_threshold: Fraction of the TTL after which renewal is attempted
            (0 < x < 1). The default 2/3 leaves a third of the TTL for one
            full retry cycle.
        renew_increment: Extension requested on renew; None lets the backend
            choose its default.
        auth_retry_floor: After an authentication failure during renewal the
            lease is retried halfway to expiry, as long as at least this much
            time remains; otherwise it expires.
        worker_threads: Size of the renewal thread pool.
        tombstone_limit: How many finished (expired/revoked) leases are
            remembered for status queries.
    """

    renew_threshold: float = DEFAULT_RENEW_THRESHOLD
    renew_increment: timedelta | None = None
    auth_retry_floor: timedelta = timedelta(seconds=5)
    worker_threads: int = 10
    tombstone_limit: int = 1024

    def __post_init__(self) -> None:
        if not 0 < self.renew_threshold < 1:
            raise ValueError(f"renew_threshold must be in (0, 1), got {self.renew_threshold}")
        if self.worker_threads < 1:
            raise ValueError(f"worker_threads must be >= 1, got {self.worker_threads}")
        if self.tombstone_limit < 0:
            raise ValueError(f"tombstone_limit must be >= 0, got {self.tombstone_limit}")

    def next_check(self, issued_at: datetime, ttl: timedelta) -> datetime:
        return issued_at + ttl * self.renew_threshold


@dataclass(frozen=True)
class LeaseStatus:
    """Immutable snapshot of a lease, safe to hand to callers."""

    lease_id: str
    state: LeaseState
    expires_at: datetime
    renewable: bool
    renew_count: int = 0
    next_check_at: datetime | None = None
    last_error: VaultClientError | None = None

    @property
    def is_finished(self) -> bool:
        return self.state in (LeaseState.EXPIRED, LeaseState.REVOKED)


@dataclass(eq=False)
class TrackedLease:
    """
    LeaseManager's internal record; never exposed outside the manager.

    ``lock`` serializes lifecycle operations (renew, revoke, expire) on this
    lease only. ``cancelled`` is set before a revoke waits for that lock so
    an in-flight renewal discards its result. ``generation`` invalidates
    scheduled jobs that were superseded by a reschedule.
    """

    info: LeaseInfo
    expires_at: datetime
    on_expired: ExpiryCallback | None = None
    state: LeaseState = LeaseState.ACTIVE
    cancelled: bool = False
    renew_count: int = 0
    generation: int = 0
    next_check_at: datetime | None = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def lease_id(self) -> str:
        return self.info.lease_id

    def snapshot(self, last_error: VaultClientError | None = None) -> LeaseStatus:
        return LeaseStatus(
            lease_id=self.info.lease_id,
            state=self.state,
            expires_at=self.expires_at,
            renewable=self.info.renewable,
            renew_count=self.renew_count,
            next_check_at=self.next_check_at,
            last_error=last_error,
        )
