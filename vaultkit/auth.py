"""
Token management for the Vault client.

The active token is the one piece of state read by every foreground request
and by the background lease scheduler. It lives in a single versioned slot:

    - Readers grab the current ``(version, token)`` tuple with one attribute
      read, so they always see a complete token, never a partial update
    - Writers (rotate, renew_self, clear) serialize on a lock and replace
      the tuple wholesale, bumping the version
    - renew_self only installs its result if no rotation happened while the
      renewal was on the network (compare-and-swap on the version)

Requests already in flight keep the token they read; rotation never
affects them retroactively.
"""

import logging
import threading
import time
from collections.abc import Callable
from datetime import timedelta
from typing import Any

from vaultkit.exceptions import AuthenticationError, PermanentError
from vaultkit.models import Token, utcnow
from vaultkit.requester import Requester
from vaultkit.retry import RetryPolicy
from vaultkit.transport import Transport

logger = logging.getLogger(__name__)


class TokenManager:
    """
    Holds the active token and performs token self-management calls.

    Example:
        >>> tokens = TokenManager(transport, Token("hvs.CAESI..."))
        >>> tokens.current_token().renewable
        True
        >>> tokens.renew_self()
        >>> tokens.rotate(Token("hvs.new..."))
    """

    def __init__(
        self,
        transport: Transport,
        token: Token | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._write_lock = threading.Lock()
        self._slot: tuple[int, Token | None] = (0, token)
        self._requester = Requester(transport, self, retry_policy, sleep=sleep)

    @property
    def version(self) -> int:
        """Incremented on every change of the active token."""
        return self._slot[0]

    def has_token(self) -> bool:
        return self._slot[1] is not None

    def current_token(self) -> Token:
        """
        Return the active token.

        Raises:
            AuthenticationError: If no token has been established
        """
        token = self._slot[1]
        if token is None:
            raise AuthenticationError("No Vault token has been established", path="auth/token")
        return token

    def rotate(self, new_token: Token) -> None:
        """Atomically replace the active token."""
        if not isinstance(new_token, Token):
            raise PermanentError(
                f"rotate() expects a Token, got {type(new_token).__name__}", path="auth/token"
            )
        with self._write_lock:
            version, _ = self._slot
            self._slot = (version + 1, new_token)
        logger.info(
            "Vault token rotated",
            extra={"token_version": version + 1, "accessor": new_token.accessor},
        )

    def clear(self) -> None:
        with self._write_lock:
            version, _ = self._slot
            self._slot = (version + 1, None)
        logger.info("Vault token cleared", extra={"token_version": version + 1})

    def renew_self(self, increment: timedelta | None = None) -> Token:
        """
        Extend the active token's TTL via ``auth/token/renew-self``.

        Args:
            increment: Requested extension; the backend may grant less

        Returns:
            The token as renewed (same value, new TTL and issue time)

        Raises:
            AuthenticationError: No token, or the backend rejected it
            PermanentError: Token is not renewable, or the response is malformed
            TransientError: Backend unreachable after retries
        """
        version, token = self._slot
        if token is None:
            raise AuthenticationError("No Vault token has been established", path="auth/token")
        if not token.renewable:
            raise PermanentError("Vault token is not renewable", path="auth/token/renew-self")

        body: dict[str, Any] = {}
        if increment is not None:
            body["increment"] = f"{int(increment.total_seconds())}s"

        payload = self._requester.post("auth/token/renew-self", body or None)
        auth = (payload or {}).get("auth")
        if not isinstance(auth, dict) or "client_token" not in auth:
            raise PermanentError(
                "Token renewal response has no auth block", path="auth/token/renew-self"
            )

        try:
            renewed = Token.from_auth_response(auth, issued_at=utcnow())
        except (KeyError, TypeError, ValueError) as e:
            raise PermanentError(
                f"Token renewal response has an invalid auth block: {e}",
                path="auth/token/renew-self",
                cause=e,
            ) from e
        with self._write_lock:
            current_version, _ = self._slot
            if current_version != version:
                # Token was rotated mid-flight; keep the newer token.
                logger.info(
                    "Discarding token renewal result, token rotated during renewal",
                    extra={"token_version": current_version},
                )
                return self.current_token()
            self._slot = (version + 1, renewed)

        logger.info(
            "Vault token renewed",
            extra={
                "token_version": version + 1,
                "ttl_seconds": renewed.ttl.total_seconds() if renewed.ttl else None,
                "accessor": renewed.accessor,
            },
        )
        return renewed

    def lookup_self(self) -> dict[str, Any]:
        """
        Return the backend's view of the active token (policies, ttl, ...).

        The stored token's ttl, renewable flag, accessor and policies are
        refreshed from the result, so a bare token loaded from VAULT_TOKEN
        becomes renewable through renew_self() once looked up.
        """
        version, token = self._slot
        payload = self._requester.get("auth/token/lookup-self")
        data = (payload or {}).get("data")
        if not isinstance(data, dict):
            raise PermanentError("Token lookup response has no data", path="auth/token/lookup-self")

        if token is not None:
            try:
                ttl = int(data.get("ttl") or 0)
                refreshed = Token(
                    value=token.value,
                    ttl=timedelta(seconds=ttl) if ttl > 0 else None,
                    renewable=bool(data.get("renewable", False)),
                    issued_at=utcnow(),
                    accessor=data.get("accessor") or token.accessor,
                    policies=tuple(data.get("policies") or token.policies),
                )
            except (TypeError, ValueError) as e:
                raise PermanentError(
                    f"Token lookup response has invalid metadata: {e}",
                    path="auth/token/lookup-self",
                    cause=e,
                ) from e
            with self._write_lock:
                if self._slot[0] == version:
                    self._slot = (version + 1, refreshed)
        return data

    def revoke_self(self) -> None:
        """
        Revoke the active token on the backend and clear the slot.

        After this call every request fails with AuthenticationError until
        a new token is rotated in.
        """
        self._requester.post("auth/token/revoke-self")
        logger.info("Vault token revoked")
        self.clear()
