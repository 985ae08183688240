"""
Vault client core with lease management.

Reads and writes static KV secrets, issues dynamic (leased) credentials,
renews leases in the background and revokes them on shutdown.

Usage:
    from vaultkit import EngineKind, VaultClient

    with VaultClient.from_settings() as vault:
        creds = vault.issue_dynamic_secret(EngineKind.AWS, "deploy")
"""

from vaultkit.auth import TokenManager
from vaultkit.client import VaultClient
from vaultkit.config import VaultSettings
from vaultkit.engines import (
    AwsEngine,
    DatabaseEngine,
    EngineKind,
    KeyType,
    KvEngine,
    SecretEngine,
    TransitEngine,
)
from vaultkit.exceptions import (
    AuthenticationError,
    ErrorKind,
    LeaseExpiredError,
    PermanentError,
    SecretNotFoundError,
    TransientError,
    VaultClientError,
)
from vaultkit.leases import LeaseManager, LeasePolicy, LeaseState, LeaseStatus
from vaultkit.models import LeaseInfo, Secret, Token
from vaultkit.retry import RetryPolicy
from vaultkit.sys import MountAdmin
from vaultkit.transport import HttpxTransport, Transport, TransportResponse

__all__ = [
    # Client
    "VaultClient",
    "VaultSettings",
    "TokenManager",
    # Engines
    "AwsEngine",
    "DatabaseEngine",
    "EngineKind",
    "KeyType",
    "KvEngine",
    "MountAdmin",
    "SecretEngine",
    "TransitEngine",
    # Leases
    "LeaseManager",
    "LeasePolicy",
    "LeaseState",
    "LeaseStatus",
    # Values
    "LeaseInfo",
    "Secret",
    "Token",
    "RetryPolicy",
    # Transport
    "HttpxTransport",
    "Transport",
    "TransportResponse",
    # Exceptions
    "AuthenticationError",
    "ErrorKind",
    "LeaseExpiredError",
    "PermanentError",
    "SecretNotFoundError",
    "TransientError",
    "VaultClientError",
]
