"""Secret engine variants."""

from vaultkit.engines.aws import AwsEngine
from vaultkit.engines.base import EngineKind, issue_leased_secret, join_path
from vaultkit.engines.database import DatabaseEngine
from vaultkit.engines.kv import KvEngine
from vaultkit.engines.transit import KeyType, TransitEngine

SecretEngine = KvEngine | AwsEngine | DatabaseEngine

__all__ = [
    "AwsEngine",
    "DatabaseEngine",
    "EngineKind",
    "KeyType",
    "KvEngine",
    "SecretEngine",
    "TransitEngine",
    "issue_leased_secret",
    "join_path",
]
