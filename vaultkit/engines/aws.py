"""
AWS secret engine: short-lived IAM user or STS credentials.

    creds: GET  {mount}/creds/{role}   (POST when ttl/role_arn are given)
    sts:   POST {mount}/sts/{role}

Every response carries a lease; the secret is registered with the
LeaseManager before it is returned.
"""

from typing import Any, ClassVar, Literal

from vaultkit.engines.base import EngineKind, issue_leased_secret, join_path
from vaultkit.exceptions import PermanentError
from vaultkit.leases import ExpiryCallback, LeaseManager
from vaultkit.models import Secret
from vaultkit.requester import Requester

CredentialType = Literal["creds", "sts"]


class AwsEngine:
    """
    Dynamic AWS credentials.

    Example:
        >>> aws = AwsEngine(requester, leases)
        >>> creds = aws.issue("deploy")
        >>> creds["access_key"], creds.lease.ttl
        ('AKIA...', datetime.timedelta(seconds=3600))
    """

    kind: ClassVar[EngineKind] = EngineKind.AWS

    def __init__(self, requester: Requester, leases: LeaseManager, mount_point: str = "aws") -> None:
        self._requester = requester
        self._leases = leases
        self.mount_point = mount_point.strip("/")

    def issue(
        self,
        role: str,
        *,
        credential_type: CredentialType = "creds",
        ttl: str | None = None,
        role_arn: str | None = None,
        on_expired: ExpiryCallback | None = None,
    ) -> Secret:
        """
        Generate credentials for ``role``.

        Args:
            role: Vault AWS role name
            credential_type: "creds" (IAM user / assumed role) or "sts"
                (federation token / assumed role via STS)
            ttl: Requested TTL (Vault duration string, e.g. "15m")
            role_arn: ARN to assume when the role allows several
            on_expired: Notified if the lease is lost before release

        Returns:
            Secret with access_key, secret_key, security_token and its lease

        Raises:
            PermanentError: Unknown credential_type
            SecretNotFoundError: Role does not exist
        """
        if credential_type not in ("creds", "sts"):
            raise PermanentError(
                f"Unsupported AWS credential type: {credential_type}",
                path=join_path(self.mount_point, role),
            )
        path = join_path(self.mount_point, credential_type, role)

        body: dict[str, Any] = {}
        if ttl is not None:
            body["ttl"] = ttl
        if role_arn is not None:
            body["role_arn"] = role_arn

        method = "POST" if credential_type == "sts" or body else "GET"
        return issue_leased_secret(
            self._requester,
            self._leases,
            method,
            path,
            body or None,
            on_expired=on_expired,
        )
