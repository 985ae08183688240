"""
Request pipeline shared by every Vault operation.

One logical request = read the current token, send through the transport,
classify any failure, decode the JSON body, and retry transient failures
according to the retry policy. The token is re-read on every attempt so a
rotation between retries is picked up.
"""

import time
from collections.abc import Callable
from typing import Any, Protocol

from vaultkit.classifier import classify, classify_exception, decode_body
from vaultkit.models import Token
from vaultkit.retry import RetryPolicy
from vaultkit.transport import Transport


class TokenSource(Protocol):
    def current_token(self) -> Token: ...


class Requester:
    """
    Authenticated, classified, retried access to the Vault HTTP API.

    Args:
        transport: Leaf transport sending raw requests
        tokens: Source of the active token (usually the TokenManager)
        retry_policy: Attempt budget and backoff for transient failures
        sleep: Sleep function used between retries (injectable for tests)
    """

    def __init__(
        self,
        transport: Transport,
        tokens: TokenSource,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._transport = transport
        self._tokens = tokens
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    def request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        *,
        lease_operation: bool = False,
        retry: bool = True,
        error_path: str | None = None,
    ) -> dict[str, Any] | None:
        """
        Perform one logical request.

        Args:
            method: HTTP method ("GET", "POST", "PUT", "DELETE", "LIST")
            path: API path below /v1/ (e.g. "secret/data/database")
            body: JSON body, if any
            lease_operation: Classify missing/invalid leases as LeaseExpiredError
            retry: Apply the retry policy (False = single attempt)
            error_path: Context recorded on errors instead of ``path``
                (e.g. the lease ID for lease calls)

        Returns:
            Decoded JSON object, or None for empty (204) responses

        Raises:
            VaultClientError: Classified failure (TransientError only after
                the retry budget is exhausted)
        """
        context = error_path or path

        def attempt() -> dict[str, Any] | None:
            token = self._tokens.current_token()
            try:
                response = self._transport.send(method, path, body, token.value)
            except Exception as e:
                raise classify_exception(e, path=context) from e
            if not response.ok:
                raise classify(response, path=context, lease_operation=lease_operation)
            return decode_body(response, path=context)

        if not retry:
            return attempt()
        return self._retry_policy.call(attempt, sleep=self._sleep)

    def get(self, path: str, **kwargs: Any) -> dict[str, Any] | None:
        return self.request("GET", path, **kwargs)

    def list(self, path: str, **kwargs: Any) -> dict[str, Any] | None:
        return self.request("LIST", path, **kwargs)

    def post(self, path: str, body: dict[str, Any] | None = None, **kwargs: Any) -> dict[str, Any] | None:
        return self.request("POST", path, body, **kwargs)

    def put(self, path: str, body: dict[str, Any] | None = None, **kwargs: Any) -> dict[str, Any] | None:
        return self.request("PUT", path, body, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> dict[str, Any] | None:
        return self.request("DELETE", path, **kwargs)
