"""Lease tracking, renewal and revocation."""

from vaultkit.leases.manager import LeaseManager
from vaultkit.leases.models import (
    DEFAULT_RENEW_THRESHOLD,
    ExpiryCallback,
    LeasePolicy,
    LeaseState,
    LeaseStatus,
)

__all__ = [
    "LeaseManager",
    "LeasePolicy",
    "LeaseState",
    "LeaseStatus",
    "ExpiryCallback",
    "DEFAULT_RENEW_THRESHOLD",
]
