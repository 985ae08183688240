"""
Caller-facing Vault client.

VaultClient wires the layers together (transport → token manager →
requester → engines, plus the lease manager) and exposes the operations
applications use directly.

Example:
    >>> from vaultkit import EngineKind, VaultClient
    >>> with VaultClient.from_settings() as vault:
    ...     db = vault.read_secret("database/primary")
    ...     creds = vault.issue_dynamic_secret(EngineKind.AWS, "deploy")
    ...     vault.is_lease_valid(creds.lease_id)
    True

Leaving the ``with`` block revokes every outstanding lease and stops the
renewal scheduler.
"""

import logging
import time
from collections.abc import Callable
from datetime import timedelta
from types import TracebackType
from typing import Any

from vaultkit.auth import TokenManager
from vaultkit.config import VaultSettings
from vaultkit.engines import AwsEngine, DatabaseEngine, EngineKind, KvEngine, TransitEngine
from vaultkit.exceptions import PermanentError, VaultClientError
from vaultkit.leases import ExpiryCallback, LeaseManager, LeasePolicy, LeaseStatus
from vaultkit.models import Secret, Token
from vaultkit.requester import Requester
from vaultkit.retry import RetryPolicy
from vaultkit.sys import MountAdmin
from vaultkit.transport import HttpxTransport, Transport

logger = logging.getLogger(__name__)

AWS_ISSUE_OPTIONS = frozenset({"credential_type", "ttl", "role_arn"})


class VaultClient:
    """
    Authenticated access to static and dynamic secrets with lease tracking.

    Args:
        transport: Transport to the Vault API (HttpxTransport in production)
        token: Initial token; may be supplied later via rotate_token()
        retry_policy: Attempt budget and backoff for transient failures
        lease_policy: Renewal tunables
        kv_mount: Mount point of the KV v2 engine
        aws_mount: Mount point of the AWS engine
        database_mount: Mount point of the database engine
        transit_mount: Mount point of the transit engine
        start: Start the lease renewal scheduler immediately
        sleep: Sleep function used between retries (injectable for tests)
        lease_manager: Pre-built LeaseManager (tests inject one with a mock
            scheduler); built from ``lease_policy`` when omitted
    """

    def __init__(
        self,
        transport: Transport,
        token: Token | None = None,
        *,
        retry_policy: RetryPolicy | None = None,
        lease_policy: LeasePolicy | None = None,
        kv_mount: str = "secret",
        aws_mount: str = "aws",
        database_mount: str = "database",
        transit_mount: str = "transit",
        start: bool = True,
        sleep: Callable[[float], None] = time.sleep,
        lease_manager: LeaseManager | None = None,
    ) -> None:
        self._transport = transport
        self._closed = False
        self.tokens = TokenManager(transport, token, retry_policy, sleep=sleep)
        self._requester = Requester(transport, self.tokens, retry_policy, sleep=sleep)
        self.leases = lease_manager or LeaseManager(self._requester, lease_policy)

        self.kv = KvEngine(self._requester, kv_mount)
        self.aws = AwsEngine(self._requester, self.leases, aws_mount)
        self.database = DatabaseEngine(self._requester, self.leases, database_mount)
        self.transit = TransitEngine(self._requester, transit_mount)
        self.mounts = MountAdmin(self._requester)

        if start:
            self.leases.start()

    @classmethod
    def from_settings(cls, settings: VaultSettings | None = None, **kwargs: Any) -> "VaultClient":
        """
        Build a client from VaultSettings (environment variables by default).

        Raises:
            pydantic.ValidationError: Settings are missing or invalid
        """
        settings = settings or VaultSettings()
        transport = HttpxTransport(
            settings.addr,
            namespace=settings.namespace,
            verify=settings.tls_verify,
            timeout=settings.timeout,
        )
        token = Token(settings.token.get_secret_value()) if settings.token else None
        logger.info(
            "Creating Vault client",
            extra={
                "vault_addr": settings.addr,
                "namespace": settings.namespace,
                "has_token": token is not None,
            },
        )
        return cls(
            transport,
            token,
            retry_policy=settings.retry_policy(),
            lease_policy=settings.lease_policy(),
            kv_mount=settings.kv_mount,
            aws_mount=settings.aws_mount,
            database_mount=settings.database_mount,
            transit_mount=settings.transit_mount,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Static secrets
    # ------------------------------------------------------------------

    def read_secret(self, path: str, version: int | None = None) -> Secret:
        return self.kv.read(path, version)

    def write_secret(self, path: str, data: dict[str, Any], cas: int | None = None) -> dict[str, Any]:
        return self.kv.write(path, data, cas)

    def delete_secret(self, path: str) -> None:
        self.kv.delete(path)

    def list_secrets(self, path: str = "") -> list[str]:
        return self.kv.list(path)

    # ------------------------------------------------------------------
    # Dynamic secrets
    # ------------------------------------------------------------------

    def issue_dynamic_secret(
        self,
        engine_kind: EngineKind | str,
        role: str,
        *,
        on_expired: ExpiryCallback | None = None,
        **options: Any,
    ) -> Secret:
        """
        Issue a leased credential from a dynamic engine.

        The lease is already tracked (and scheduled for renewal) when this
        returns.

        Args:
            engine_kind: EngineKind.AWS or EngineKind.DATABASE
            role: Role name on that engine
            on_expired: Called with (lease_id, error) if the lease is lost
            **options: Engine-specific options (AWS: credential_type, ttl, role_arn)

        Raises:
            PermanentError: Engine kind has no dynamic issuance, or unknown options
        """
        try:
            kind = EngineKind(engine_kind)
        except ValueError as e:
            raise PermanentError(f"Unknown engine kind: {engine_kind}", path=role, cause=e) from e

        if kind is EngineKind.AWS:
            unknown = set(options) - AWS_ISSUE_OPTIONS
            if unknown:
                raise PermanentError(f"Unknown AWS issue options: {sorted(unknown)}", path=role)
            return self.aws.issue(role, on_expired=on_expired, **options)
        if kind is EngineKind.DATABASE:
            if options:
                raise PermanentError(
                    f"Database engine takes no options, got {sorted(options)}", path=role
                )
            return self.database.issue(role, on_expired=on_expired)
        raise PermanentError(f"{kind.value} engine does not issue dynamic secrets", path=role)

    def revoke_lease(self, lease_id: str) -> None:
        self.leases.revoke(lease_id)

    def lease_status(self, lease_id: str) -> LeaseStatus | None:
        return self.leases.status(lease_id)

    def is_lease_valid(self, lease_id: str) -> bool:
        return self.leases.is_valid(lease_id)

    # ------------------------------------------------------------------
    # Token
    # ------------------------------------------------------------------

    def rotate_token(self, token: Token) -> None:
        self.tokens.rotate(token)

    def renew_token(self, increment: timedelta | None = None) -> Token:
        return self.tokens.renew_self(increment)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def shutdown(self, revoke: bool = True) -> dict[str, VaultClientError]:
        """
        Revoke every outstanding lease, stop renewals and close the transport.

        Individual revocation failures do not abort shutdown; they are logged
        and returned keyed by lease ID. Calling shutdown twice is a no-op.
        """
        if self._closed:
            return {}
        self._closed = True
        failures = self.leases.shutdown(revoke=revoke)
        for lease_id, error in failures.items():
            logger.error(
                "Lease revocation failed during shutdown",
                extra={"lease_id": lease_id, "error": str(error), "error_kind": error.kind.value},
            )
        self._transport.close()
        return failures

    def __enter__(self) -> "VaultClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.shutdown()
