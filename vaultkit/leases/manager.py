"""
APScheduler-based lease manager.

Tracks every outstanding lease, renews renewable leases well before expiry,
drops non-renewable leases when their TTL elapses, and revokes leases on
request or shutdown.

Scheduling:
    - One APScheduler "date" job per lease, id "lease:{lease_id}"
    - Renewable leases: job at issued_at + ttl × renew_threshold
    - Non-renewable leases: expiry job at issued_at + ttl
    - Jobs run on the scheduler's thread pool, so a slow renewal for one
      lease never stalls renewals of unrelated leases or foreground calls

Concurrency:
    - ``_lock`` guards the lease table and tombstones; it is never held
      across a network call
    - Each TrackedLease has its own lock serializing renew/revoke/expire
      on that lease only
    - Revoke sets ``cancelled`` and removes the job BEFORE waiting on the
      lease lock; a renewal already on the network finishes, sees the flag
      and discards its result, so it cannot resurrect a revoked lease

Example:
    >>> manager = LeaseManager(requester)
    >>> manager.start()
    >>> manager.register(secret.lease)
    >>> manager.is_valid(secret.lease.lease_id)
    True
    >>> failures = manager.shutdown()  # revokes everything, stops scheduler
"""

import logging
import threading
from collections import OrderedDict
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from apscheduler.executors.pool import ThreadPoolExecutor  # type: ignore[import-untyped]
from apscheduler.jobstores.base import JobLookupError  # type: ignore[import-untyped]
from apscheduler.schedulers.background import BackgroundScheduler  # type: ignore[import-untyped]

from vaultkit.exceptions import (
    AuthenticationError,
    LeaseExpiredError,
    PermanentError,
    VaultClientError,
)
from vaultkit.leases.models import (
    ExpiryCallback,
    LeasePolicy,
    LeaseState,
    LeaseStatus,
    TrackedLease,
)
from vaultkit.models import LeaseInfo, utcnow
from vaultkit.requester import Requester

logger = logging.getLogger(__name__)

RENEW_PATH = "sys/leases/renew"
REVOKE_PATH = "sys/leases/revoke"


def _job_id(lease_id: str) -> str:
    return f"lease:{lease_id}"


class LeaseManager:
    """
    Owner of all tracked leases and their background renewal.

    Attributes:
        policy: Renewal tunables (threshold, increment, pool size)
        scheduler: APScheduler BackgroundScheduler (UTC timezone)

    Notes:
        - register() completes before the issuing engine returns the secret,
          so callers never hold an untracked credential
        - Registering the same lease_id twice raises PermanentError
        - renew() is driven by the scheduler; it is public for manual use
    """

    def __init__(
        self,
        requester: Requester,
        policy: LeasePolicy | None = None,
        scheduler: BackgroundScheduler | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.policy = policy or LeasePolicy()
        self._requester = requester
        self._clock = clock
        self._lock = threading.Lock()
        self._leases: dict[str, TrackedLease] = {}
        self._tombstones: OrderedDict[str, LeaseStatus] = OrderedDict()
        self.scheduler = scheduler or BackgroundScheduler(
            timezone="UTC",
            executors={"default": ThreadPoolExecutor(self.policy.worker_threads)},
            # Renewal jobs reschedule their own id while still running.
            job_defaults={"coalesce": True, "max_instances": 3, "misfire_grace_time": None},
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the background scheduler thread (idempotent)."""
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("LeaseManager started", extra={"tracked": len(self)})

    def shutdown(self, revoke: bool = True, wait: bool = True) -> dict[str, VaultClientError]:
        """
        Revoke all leases (optional) and stop the scheduler.

        Args:
            revoke: Revoke every tracked lease first (default: True)
            wait: Wait for running renewal jobs to finish

        Returns:
            Revocation failures keyed by lease ID (empty on full success)
        """
        failures = self.revoke_all() if revoke else {}
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
        logger.info(
            "LeaseManager shutdown complete",
            extra={"revocation_failures": len(failures)},
        )
        return failures

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, lease: LeaseInfo, on_expired: ExpiryCallback | None = None) -> LeaseStatus:
        """
        Start tracking a lease.

        Renewable leases are scheduled for renewal at
        ``issued_at + ttl × renew_threshold``; non-renewable leases are
        scheduled for removal at ``issued_at + ttl``.

        Args:
            lease: Lease metadata from the issuing response
            on_expired: Called with (lease_id, error) if the lease is lost
                because renewal failed or its TTL elapsed

        Returns:
            Snapshot of the newly tracked lease

        Raises:
            PermanentError: lease_id is already tracked
        """
        with self._lock:
            if lease.lease_id in self._leases:
                raise PermanentError(
                    "Lease is already registered; refusing to overwrite tracked state",
                    path=lease.lease_id,
                )
            record = TrackedLease(info=lease, expires_at=lease.expires_at, on_expired=on_expired)
            self._leases[lease.lease_id] = record
            self._tombstones.pop(lease.lease_id, None)

            if lease.renewable and lease.ttl > timedelta(0):
                self._schedule(record, self.policy.next_check(lease.issued_at, lease.ttl), self._run_renewal)
            else:
                self._schedule(record, record.expires_at, self._run_expiry)
            status = record.snapshot()

        logger.info(
            "Lease registered",
            extra={
                "lease_id": lease.lease_id,
                "ttl_seconds": lease.ttl.total_seconds(),
                "renewable": lease.renewable,
                "next_check_at": status.next_check_at.isoformat() if status.next_check_at else None,
            },
        )
        return status

    # ------------------------------------------------------------------
    # Renewal
    # ------------------------------------------------------------------

    def renew(self, lease_id: str) -> LeaseStatus | None:
        """
        Extend a lease via ``sys/leases/renew`` and schedule the next check.

        Normally invoked by the scheduler. On LeaseExpiredError, or on a
        TransientError/PermanentError that survives the retry budget, the
        lease transitions to EXPIRED, is removed from tracking and its
        ``on_expired`` callback fires. On AuthenticationError the lease stays
        ACTIVE and is retried halfway to expiry when time allows.

        Returns:
            Snapshot after renewal, or None if the lease was revoked while
            the renewal was in flight (result discarded)

        Raises:
            LeaseExpiredError: Lease is not tracked (already expired/revoked)
            PermanentError: Lease is not renewable
            VaultClientError: The renewal failure (after local bookkeeping)
        """
        record = self._get_tracked(lease_id)
        with record.lock:
            if record.cancelled:
                logger.debug("Skipping renewal of revoked lease", extra={"lease_id": lease_id})
                return None
            if record.state in (LeaseState.EXPIRED, LeaseState.REVOKED):
                raise LeaseExpiredError(f"Lease is {record.state.value}", path=lease_id)
            if not record.info.renewable:
                raise PermanentError("Lease is not renewable", path=lease_id)

            record.state = LeaseState.RENEWING
            body: dict[str, Any] = {"lease_id": lease_id}
            if self.policy.renew_increment is not None:
                body["increment"] = int(self.policy.renew_increment.total_seconds())

            try:
                payload = self._requester.put(
                    RENEW_PATH, body, lease_operation=True, error_path=lease_id
                )
                granted_ttl, still_renewable = self._parse_renewal(lease_id, payload)
            except AuthenticationError as e:
                record.state = LeaseState.ACTIVE
                if record.cancelled:
                    return None
                self._handle_auth_failure(record, e)
                raise
            except VaultClientError as e:
                if record.cancelled:
                    return None
                self._expire(record, e)
                raise

            if record.cancelled:
                logger.info(
                    "Discarding renewal result for lease revoked during renewal",
                    extra={"lease_id": lease_id},
                )
                return None

            now = self._clock()
            new_expires_at = now + granted_ttl
            previous_expires_at = record.expires_at
            record.info = LeaseInfo(
                lease_id=lease_id, ttl=granted_ttl, renewable=still_renewable, issued_at=now
            )
            record.expires_at = new_expires_at
            record.renew_count += 1
            record.state = LeaseState.ACTIVE

            with self._lock:
                if granted_ttl <= timedelta(0):
                    self._schedule(record, new_expires_at, self._run_expiry)
                elif not still_renewable or new_expires_at <= previous_expires_at:
                    # Backend hit the lease's max TTL; further renewals cannot extend it.
                    logger.warning(
                        "Lease can no longer be extended, tracking until expiry",
                        extra={"lease_id": lease_id, "expires_at": new_expires_at.isoformat()},
                    )
                    self._schedule(record, new_expires_at, self._run_expiry)
                else:
                    self._schedule(record, self.policy.next_check(now, granted_ttl), self._run_renewal)
                status = record.snapshot()

        logger.info(
            "Lease renewed",
            extra={
                "lease_id": lease_id,
                "ttl_seconds": granted_ttl.total_seconds(),
                "renew_count": status.renew_count,
            },
        )
        return status

    @staticmethod
    def _parse_renewal(lease_id: str, payload: dict[str, Any] | None) -> tuple[timedelta, bool]:
        if not payload or "lease_duration" not in payload:
            raise PermanentError("Lease renewal response has no lease_duration", path=lease_id)
        try:
            seconds = int(payload["lease_duration"])
        except (TypeError, ValueError) as e:
            raise PermanentError(
                f"Lease renewal response has invalid lease_duration: {e}", path=lease_id, cause=e
            ) from e
        return timedelta(seconds=max(seconds, 0)), bool(payload.get("renewable", False))

    def _handle_auth_failure(self, record: TrackedLease, error: AuthenticationError) -> None:
        now = self._clock()
        remaining = record.expires_at - now
        if remaining < self.policy.auth_retry_floor * 2:
            self._expire(record, error)
            return
        retry_at = now + remaining / 2
        with self._lock:
            if self._leases.get(record.lease_id) is record:
                self._schedule(record, retry_at, self._run_renewal)
        logger.warning(
            "Lease renewal denied, retrying before expiry",
            extra={"lease_id": record.lease_id, "retry_at": retry_at.isoformat(), "error": str(error)},
        )

    # ------------------------------------------------------------------
    # Revocation
    # ------------------------------------------------------------------

    def revoke(self, lease_id: str) -> None:
        """
        Revoke a lease on the backend and stop tracking it.

        Local bookkeeping never gets stuck on an unreachable backend: the
        record is removed whether or not the backend call succeeds, and the
        backend error (if any) is raised afterwards. A backend reporting the
        lease as already invalid counts as success. Untracked IDs are still
        revoked on the backend.

        Raises:
            VaultClientError: Backend revocation failed (record already removed)
        """
        with self._lock:
            record = self._leases.get(lease_id)
            if record is not None:
                record.cancelled = True
        self._unschedule(lease_id)

        if record is None:
            self._revoke_on_backend(lease_id)
            return

        error: VaultClientError | None = None
        with record.lock:
            try:
                self._revoke_on_backend(lease_id)
            except VaultClientError as e:
                error = e
                logger.warning(
                    "Lease revocation failed on backend, dropping local tracking anyway",
                    extra={"lease_id": lease_id, "error": str(e), "error_kind": e.kind.value},
                )
            finally:
                record.state = LeaseState.REVOKED
                with self._lock:
                    self._forget(record, error)

        if error is not None:
            raise error
        logger.info("Lease revoked", extra={"lease_id": lease_id})

    def _revoke_on_backend(self, lease_id: str) -> None:
        try:
            self._requester.put(
                REVOKE_PATH, {"lease_id": lease_id}, lease_operation=True, error_path=lease_id
            )
        except LeaseExpiredError:
            logger.info("Lease already invalid on backend", extra={"lease_id": lease_id})

    def revoke_all(self) -> dict[str, VaultClientError]:
        """
        Revoke every tracked lease; individual failures do not stop the sequence.

        All scheduled renewals are cancelled before the first revoke call.

        Returns:
            Failures keyed by lease ID; every lease is untracked either way
        """
        with self._lock:
            records = list(self._leases.values())
            for record in records:
                record.cancelled = True
        for record in records:
            self._unschedule(record.lease_id)

        failures: dict[str, VaultClientError] = {}
        for record in records:
            try:
                self.revoke(record.lease_id)
            except VaultClientError as e:
                failures[record.lease_id] = e

        if failures:
            logger.error(
                "Some leases could not be revoked on the backend",
                extra={"revoked": len(records) - len(failures), "failed": sorted(failures)},
            )
        else:
            logger.info("All leases revoked", extra={"revoked": len(records)})
        return failures

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_valid(self, lease_id: str) -> bool:
        """True while the lease is tracked, not revoked and not past expires_at."""
        with self._lock:
            record = self._leases.get(lease_id)
            if record is None or record.cancelled:
                return False
            return record.state in (LeaseState.ACTIVE, LeaseState.RENEWING) and (
                self._clock() < record.expires_at
            )

    def ensure_valid(self, lease_id: str) -> None:
        """
        Raise if the lease can no longer be relied on.

        Raises:
            LeaseExpiredError: Lease expired, was revoked, or is unknown; the
                recorded renewal failure (if any) is attached as ``cause``
        """
        if self.is_valid(lease_id):
            return
        status = self.status(lease_id)
        cause = status.last_error if status else None
        state = status.state.value if status else "unknown"
        raise LeaseExpiredError(f"Lease is no longer valid ({state})", path=lease_id, cause=cause)

    def status(self, lease_id: str) -> LeaseStatus | None:
        """Snapshot of a tracked or recently finished lease; None if unknown."""
        with self._lock:
            record = self._leases.get(lease_id)
            if record is not None:
                return record.snapshot()
            return self._tombstones.get(lease_id)

    def tracked_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._leases)

    def __len__(self) -> int:
        with self._lock:
            return len(self._leases)

    def __contains__(self, lease_id: object) -> bool:
        with self._lock:
            return lease_id in self._leases

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_tracked(self, lease_id: str) -> TrackedLease:
        with self._lock:
            record = self._leases.get(lease_id)
            if record is not None:
                return record
            tombstone = self._tombstones.get(lease_id)
        cause = tombstone.last_error if tombstone else None
        raise LeaseExpiredError("Lease is not tracked", path=lease_id, cause=cause)

    def _schedule(self, record: TrackedLease, when: datetime, job: Callable[[str, int], None]) -> None:
        """Replace the lease's job. Caller holds ``_lock``."""
        record.generation += 1
        record.next_check_at = when
        self.scheduler.add_job(
            func=job,
            trigger="date",
            run_date=when,
            id=_job_id(record.lease_id),
            args=[record.lease_id, record.generation],
            replace_existing=True,
        )

    def _unschedule(self, lease_id: str) -> None:
        try:
            self.scheduler.remove_job(_job_id(lease_id))
        except JobLookupError:
            # Job already ran or was never scheduled.
            logger.debug("No scheduled job to cancel", extra={"lease_id": lease_id})

    def _forget(self, record: TrackedLease, error: VaultClientError | None) -> None:
        """Move a record from the table to the tombstones. Caller holds ``_lock``."""
        if self._leases.get(record.lease_id) is record:
            del self._leases[record.lease_id]
        record.next_check_at = None
        if self.policy.tombstone_limit:
            self._tombstones[record.lease_id] = record.snapshot(last_error=error)
            self._tombstones.move_to_end(record.lease_id)
            while len(self._tombstones) > self.policy.tombstone_limit:
                self._tombstones.popitem(last=False)

    def _expire(self, record: TrackedLease, error: VaultClientError) -> None:
        """Drop a lease that is lost. Caller holds ``record.lock``."""
        record.state = LeaseState.EXPIRED
        with self._lock:
            self._forget(record, error)
        self._unschedule(record.lease_id)
        logger.warning(
            "Lease expired and is no longer tracked",
            extra={"lease_id": record.lease_id, "error": str(error), "error_kind": error.kind.value},
        )
        if record.on_expired is not None:
            try:
                record.on_expired(record.lease_id, error)
            except Exception:
                logger.exception(
                    "Lease expiry callback raised", extra={"lease_id": record.lease_id}
                )

    def _is_current(self, lease_id: str, generation: int) -> TrackedLease | None:
        with self._lock:
            record = self._leases.get(lease_id)
            if record is None or record.cancelled or record.generation != generation:
                return None
            return record

    def _run_renewal(self, lease_id: str, generation: int) -> None:
        """Scheduler job: renew, keeping failures out of APScheduler's error log."""
        if self._is_current(lease_id, generation) is None:
            return
        try:
            self.renew(lease_id)
        except VaultClientError as e:
            logger.debug(
                "Scheduled renewal failed",
                extra={"lease_id": lease_id, "error_kind": e.kind.value},
            )

    def _run_expiry(self, lease_id: str, generation: int) -> None:
        """Scheduler job: a non-renewable lease reached the end of its TTL."""
        record = self._is_current(lease_id, generation)
        if record is None:
            return
        with record.lock:
            if record.cancelled or record.generation != generation:
                return
            self._expire(
                record,
                LeaseExpiredError("Lease reached the end of its TTL", path=lease_id),
            )
