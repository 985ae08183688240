"""
KV v2 secret engine.

Static secrets have no lease: a read returns the current version and the
caller may cache it at their own risk. Path convention mirrors the Vault API:

    read/write/delete: {mount}/data/{path}
    list:              {mount}/metadata/{path}
"""

import logging
from typing import Any, ClassVar

from vaultkit.engines.base import EngineKind, join_path, response_data
from vaultkit.exceptions import PermanentError, SecretNotFoundError
from vaultkit.models import Secret
from vaultkit.requester import Requester

logger = logging.getLogger(__name__)


class KvEngine:
    """
    Versioned key/value secrets (KV v2).

    Example:
        >>> kv = KvEngine(requester, mount_point="secret")
        >>> kv.write("database/primary", {"username": "app", "password": "..."})
        {'version': 3, ...}
        >>> kv.read("database/primary")["username"]
        'app'
    """

    kind: ClassVar[EngineKind] = EngineKind.KV

    def __init__(self, requester: Requester, mount_point: str = "secret") -> None:
        self._requester = requester
        self.mount_point = mount_point.strip("/")

    def _data_path(self, path: str) -> str:
        return join_path(self.mount_point, "data", path)

    def read(self, path: str, version: int | None = None) -> Secret:
        """
        Read a secret (latest version unless ``version`` is given).

        Raises:
            SecretNotFoundError: Path missing, or the version was deleted
            AuthenticationError: Token lacks read capability
        """
        api_path = self._data_path(path)
        request_path = f"{api_path}?version={int(version)}" if version is not None else api_path
        payload = self._requester.get(request_path, error_path=api_path)
        envelope = response_data(payload, api_path)

        data = envelope.get("data")
        metadata = envelope.get("metadata") or {}
        if data is None:
            # Soft-deleted or destroyed version: metadata present, data null.
            raise SecretNotFoundError("Secret version has been deleted", path=api_path)
        if not isinstance(data, dict):
            raise PermanentError("KV secret data is not an object", path=api_path)

        logger.info(
            "Secret read from KV",
            extra={"secret_path": api_path, "version": metadata.get("version")},
        )
        return Secret(path=api_path, data=data, metadata=metadata)

    def write(self, path: str, data: dict[str, Any], cas: int | None = None) -> dict[str, Any]:
        """
        Create or update a secret, producing a new version.

        Args:
            path: Secret path below the mount
            data: Field → value mapping to store
            cas: Check-and-set version; the write fails unless the current
                version matches (0 = only create)

        Returns:
            Version metadata ({"version": ..., "created_time": ...})
        """
        if not isinstance(data, dict):
            raise PermanentError(
                f"Secret data must be a dict, got {type(data).__name__}", path=path
            )
        api_path = self._data_path(path)
        body: dict[str, Any] = {"data": data}
        if cas is not None:
            body["options"] = {"cas": int(cas)}

        payload = self._requester.post(api_path, body)
        metadata = (payload or {}).get("data") or {}
        if not isinstance(metadata, dict):
            raise PermanentError("KV write response data is not an object", path=api_path)
        logger.info(
            "Secret written to KV",
            extra={"secret_path": api_path, "version": metadata.get("version")},
        )
        return dict(metadata)

    def delete(self, path: str) -> None:
        """Soft-delete the latest version of a secret."""
        api_path = self._data_path(path)
        self._requester.delete(api_path)
        logger.info("Secret deleted from KV", extra={"secret_path": api_path})

    def list(self, path: str = "") -> list[str]:
        """
        List keys under a path; folders end with "/".

        An empty or missing folder returns [].
        """
        api_path = join_path(self.mount_point, "metadata", path)
        try:
            payload = self._requester.list(api_path)
        except SecretNotFoundError:
            logger.info("No secrets found under path", extra={"secret_path": api_path})
            return []
        keys = response_data(payload, api_path).get("keys") or []
        if not isinstance(keys, list):
            raise PermanentError("KV list response keys is not a list", path=api_path)
        return sorted(str(key) for key in keys)
