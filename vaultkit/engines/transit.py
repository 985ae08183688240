"""
Transit engine: encryption as a service.

Keys never leave Vault; callers send plaintext and receive ciphertext of the
form ``vault:v1:...``. Plaintext travels base64-encoded on the wire, which
this module handles so callers deal in bytes.
"""

import base64
import binascii
import logging
from enum import Enum
from typing import Any

from vaultkit.engines.base import join_path, response_data
from vaultkit.exceptions import PermanentError, SecretNotFoundError
from vaultkit.requester import Requester

logger = logging.getLogger(__name__)


class KeyType(str, Enum):
    """Key types supported by the transit engine."""

    AES256_GCM96 = "aes256-gcm96"
    CHACHA20_POLY1305 = "chacha20-poly1305"
    ED25519 = "ed25519"
    ECDSA_P256 = "ecdsa-p256"
    RSA_2048 = "rsa-2048"
    RSA_4096 = "rsa-4096"


class TransitEngine:
    """
    Named encryption keys and encrypt/decrypt operations.

    Example:
        >>> transit = TransitEngine(requester)
        >>> transit.create_key("orders")
        >>> ciphertext = transit.encrypt("orders", b"card=4111")
        >>> transit.decrypt("orders", ciphertext)
        b'card=4111'
    """

    def __init__(self, requester: Requester, mount_point: str = "transit") -> None:
        self._requester = requester
        self.mount_point = mount_point.strip("/")

    def _key_path(self, name: str) -> str:
        return join_path(self.mount_point, "keys", name)

    def create_key(
        self,
        name: str,
        key_type: KeyType = KeyType.AES256_GCM96,
        *,
        exportable: bool = False,
        derived: bool = False,
        convergent_encryption: bool = False,
    ) -> None:
        body = {
            "type": KeyType(key_type).value,
            "exportable": exportable,
            "derived": derived,
            "convergent_encryption": convergent_encryption,
        }
        self._requester.post(self._key_path(name), body)
        logger.info(
            "Transit key created",
            extra={"key_name": name, "key_type": KeyType(key_type).value},
        )

    def read_key(self, name: str) -> dict[str, Any]:
        """Return key metadata (type, versions, deletion_allowed, ...)."""
        path = self._key_path(name)
        return dict(response_data(self._requester.get(path), path))

    def list_keys(self) -> list[str]:
        """List key names; an engine with no keys returns []."""
        path = join_path(self.mount_point, "keys")
        try:
            payload = self._requester.list(path)
        except SecretNotFoundError:
            return []
        return sorted(str(key) for key in response_data(payload, path).get("keys") or [])

    def configure_key(self, name: str, **settings: Any) -> None:
        """
        Update key configuration.

        Accepts the backend's config fields, e.g. ``deletion_allowed``,
        ``min_decryption_version``, ``exportable``.
        """
        if not settings:
            raise PermanentError("No key settings given", path=self._key_path(name))
        self._requester.post(join_path(self._key_path(name), "config"), settings)

    def delete_key(self, name: str) -> None:
        """Delete a key; deletion is enabled on the key first."""
        self.configure_key(name, deletion_allowed=True)
        self._requester.delete(self._key_path(name))
        logger.warning("Transit key deleted", extra={"key_name": name})

    def encrypt(self, name: str, plaintext: bytes, *, context: bytes | None = None) -> str:
        """
        Encrypt ``plaintext`` with the named key.

        Args:
            name: Transit key name
            plaintext: Raw bytes to encrypt
            context: Derivation context, required for derived keys

        Returns:
            Ciphertext string ("vault:v<N>:...")
        """
        path = join_path(self.mount_point, "encrypt", name)
        body: dict[str, Any] = {"plaintext": base64.b64encode(plaintext).decode("ascii")}
        if context is not None:
            body["context"] = base64.b64encode(context).decode("ascii")
        ciphertext = response_data(self._requester.post(path, body), path).get("ciphertext")
        if not isinstance(ciphertext, str):
            raise PermanentError("Encrypt response has no ciphertext", path=path)
        return ciphertext

    def decrypt(self, name: str, ciphertext: str, *, context: bytes | None = None) -> bytes:
        path = join_path(self.mount_point, "decrypt", name)
        body: dict[str, Any] = {"ciphertext": ciphertext}
        if context is not None:
            body["context"] = base64.b64encode(context).decode("ascii")
        encoded = response_data(self._requester.post(path, body), path).get("plaintext")
        if not isinstance(encoded, str):
            raise PermanentError("Decrypt response has no plaintext", path=path)
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise PermanentError("Decrypt response plaintext is not base64", path=path, cause=e) from e
