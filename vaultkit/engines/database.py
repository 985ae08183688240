"""Database secret engine: per-request database users."""

from typing import ClassVar

from vaultkit.engines.base import EngineKind, issue_leased_secret, join_path
from vaultkit.leases import ExpiryCallback, LeaseManager
from vaultkit.models import Secret
from vaultkit.requester import Requester


class DatabaseEngine:
    """
    Dynamic database credentials from ``{mount}/creds/{role}``.

    The returned Secret holds ``username`` and ``password``; the lease is
    registered before the secret is returned.
    """

    kind: ClassVar[EngineKind] = EngineKind.DATABASE

    def __init__(
        self, requester: Requester, leases: LeaseManager, mount_point: str = "database"
    ) -> None:
        self._requester = requester
        self._leases = leases
        self.mount_point = mount_point.strip("/")

    def issue(self, role: str, *, on_expired: ExpiryCallback | None = None) -> Secret:
        path = join_path(self.mount_point, "creds", role)
        return issue_leased_secret(
            self._requester, self._leases, "GET", path, on_expired=on_expired
        )
