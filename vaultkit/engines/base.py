"""
Shared helpers for secret engines.

Dynamic engines funnel issuance through ``issue_leased_secret`` so the
ordering rule holds for every engine kind: a leased secret is registered
with the LeaseManager before it is returned to the caller.
"""

import logging
from enum import Enum
from typing import Any

from vaultkit.exceptions import PermanentError, VaultClientError
from vaultkit.leases import ExpiryCallback, LeaseManager
from vaultkit.models import LeaseInfo, Secret, utcnow
from vaultkit.requester import Requester

logger = logging.getLogger(__name__)


class EngineKind(str, Enum):
    """Closed set of secret engine variants."""

    KV = "kv"
    AWS = "aws"
    DATABASE = "database"


def join_path(*parts: str) -> str:
    """Join path segments, tolerating stray slashes."""
    return "/".join(part.strip("/") for part in parts if part and part.strip("/"))


def response_data(payload: dict[str, Any] | None, path: str) -> dict[str, Any]:
    """
    Return ``payload["data"]`` as a dict.

    Raises:
        PermanentError: Body is empty or ``data`` is not an object
    """
    data = (payload or {}).get("data")
    if not isinstance(data, dict):
        raise PermanentError("Vault response has no data object", path=path)
    return data


def issue_leased_secret(
    requester: Requester,
    leases: LeaseManager,
    method: str,
    path: str,
    body: dict[str, Any] | None = None,
    on_expired: ExpiryCallback | None = None,
) -> Secret:
    """
    Request a dynamic secret and register its lease before returning it.

    If the response is malformed or registration fails the secret is never
    returned; the error propagates instead. A lease the manager does not
    already track is revoked first so the withheld credential does not
    outlive the call.

    Raises:
        VaultClientError: Issuance or registration failure
    """
    issued_at = utcnow()
    payload = requester.request(method, path, body)
    lease_id = (payload or {}).get("lease_id")
    try:
        data = response_data(payload, path)
        try:
            lease = LeaseInfo.from_response(payload or {}, issued_at=issued_at)
        except (TypeError, ValueError) as e:
            raise PermanentError(f"Invalid lease metadata: {e}", path=path, cause=e) from e
        if lease is not None:
            leases.register(lease, on_expired=on_expired)
    except VaultClientError:
        logger.error(
            "Dynamic secret rejected, secret withheld from caller",
            extra={"path": path, "lease_id": lease_id},
        )
        _revoke_withheld(leases, lease_id, path)
        raise

    logger.info(
        "Dynamic secret issued",
        extra={
            "path": path,
            "lease_id": lease.lease_id if lease else None,
            "ttl_seconds": lease.ttl.total_seconds() if lease else None,
        },
    )
    return Secret(path=path, data=data, lease=lease)


def _revoke_withheld(leases: LeaseManager, lease_id: Any, path: str) -> None:
    """Best-effort revoke of a credential the caller never received."""
    if not isinstance(lease_id, str) or not lease_id or lease_id in leases:
        return
    try:
        leases.revoke(lease_id)
    except VaultClientError as e:
        logger.warning(
            "Could not revoke lease of withheld secret, it stays valid until its TTL ends",
            extra={"path": path, "lease_id": lease_id, "error_kind": e.kind.value},
        )
