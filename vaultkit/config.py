"""
Configuration for the Vault client.

Settings are read from environment variables prefixed with ``VAULT_`` (the
same names the Vault CLI uses) or a ``.env`` file. The core never reads the
environment itself: ``VaultClient.from_settings()`` turns a VaultSettings
into fully formed transport, retry and lease objects.

Example:
    >>> # export VAULT_ADDR=https://vault.company.com:8200
    >>> # export VAULT_TOKEN=hvs.CAESI...
    >>> settings = VaultSettings()
    >>> settings.addr
    'https://vault.company.com:8200'
    >>> settings.token
    SecretStr('**********')
"""

from datetime import timedelta
from pathlib import Path

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from vaultkit.leases.models import DEFAULT_RENEW_THRESHOLD, LeasePolicy
from vaultkit.retry import (
    DEFAULT_BASE_DELAY,
    DEFAULT_JITTER,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_DELAY,
    RetryPolicy,
)


class VaultSettings(BaseSettings):
    """
    Vault client settings.

    Attributes:
        addr: Vault server URL (VAULT_ADDR)
        token: Initial client token (VAULT_TOKEN)
        cacert: CA bundle used to verify the server certificate (VAULT_CACERT)
        namespace: Enterprise namespace (VAULT_NAMESPACE)
        verify: Verify TLS certificates; ignored when cacert is set
        timeout: Per-request timeout in seconds
        kv_mount: Mount point of the KV v2 engine
        retry_max_attempts: Attempts per request, including the first
        retry_base_delay: First backoff delay in seconds
        retry_max_delay: Backoff cap in seconds
        retry_jitter: Uniform jitter (+/-) in seconds added to each delay
        lease_renew_threshold: Fraction of the lease TTL after which renewal runs
        lease_renew_increment: Seconds requested per renewal (None = backend default)
        lease_worker_threads: Renewal thread pool size
    """

    # ========================================================================
    # Connection
    # ========================================================================

    addr: str
    token: SecretStr | None = None
    cacert: Path | None = None
    namespace: str | None = None
    verify: bool = True
    timeout: float = Field(default=10.0, gt=0)

    # ========================================================================
    # Engines
    # ========================================================================

    kv_mount: str = "secret"
    aws_mount: str = "aws"
    database_mount: str = "database"
    transit_mount: str = "transit"

    # ========================================================================
    # Retry / Lease Tuning
    # ========================================================================

    retry_max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    retry_base_delay: float = Field(default=DEFAULT_BASE_DELAY, ge=0)
    retry_max_delay: float = Field(default=DEFAULT_MAX_DELAY, ge=0)
    retry_jitter: float = Field(default=DEFAULT_JITTER, ge=0)

    lease_renew_threshold: float = Field(default=DEFAULT_RENEW_THRESHOLD, gt=0, lt=1)
    lease_renew_increment: int | None = Field(default=None, gt=0)
    lease_worker_threads: int = Field(default=10, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="VAULT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("addr")
    @classmethod
    def addr_has_scheme(cls, v: str) -> str:
        """Require an http(s) URL and drop any trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("addr must start with http:// or https://")
        return v.rstrip("/")

    @property
    def tls_verify(self) -> bool | str:
        """Value for the transport's ``verify`` argument."""
        if self.cacert is not None:
            return str(self.cacert)
        return self.verify

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            jitter=self.retry_jitter,
        )

    def lease_policy(self) -> LeasePolicy:
        increment = self.lease_renew_increment
        return LeasePolicy(
            renew_threshold=self.lease_renew_threshold,
            renew_increment=timedelta(seconds=increment) if increment else None,
            worker_threads=self.lease_worker_threads,
        )
