"""
HTTP transport for the Vault API.

The transport is the leaf of the stack: it sends one authenticated request
and hands back the raw status and body. It does not interpret status codes,
retry or decode JSON; that is the job of the classifier and requester.

Network failures propagate as ``httpx.TransportError`` subclasses
(``ConnectTimeout``, ``ReadTimeout``, ``ConnectError``, ...), which the
classifier maps to ``TransientError``.

Example:
    >>> transport = HttpxTransport("https://vault.company.com:8200")
    >>> response = transport.send("GET", "secret/data/database", None, token)
    >>> response.status
    200
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from vaultkit.common.logging.context import TRACE_ID_HEADER, get_trace_id

logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-Vault-Token"
NAMESPACE_HEADER = "X-Vault-Namespace"


@dataclass(frozen=True)
class TransportResponse:
    """Raw outcome of a request that reached the backend."""

    status: int
    body: str = ""
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        """Decode the body; an empty body decodes to None."""
        if not self.body.strip():
            return None
        return json.loads(self.body)


class Transport(Protocol):
    """Capability to send one request to the secrets backend."""

    def send(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None,
        token: str | None,
    ) -> TransportResponse: ...

    def close(self) -> None: ...


class HttpxTransport:
    """
    Synchronous Vault transport backed by a pooled ``httpx.Client``.

    Requests go to ``{address}/v1/{path}`` with the token in the
    ``X-Vault-Token`` header and, when set, the namespace in
    ``X-Vault-Namespace``. The current trace ID from the logging context is
    propagated so backend audit entries can be correlated with client logs.

    TLS trust material is supplied fully formed: ``verify`` may be a bool or
    a path to a CA bundle (VAULT_CACERT).
    """

    def __init__(
        self,
        address: str,
        *,
        namespace: str | None = None,
        verify: bool | str = True,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._address = address.rstrip("/")
        self._namespace = namespace
        self._client = client or httpx.Client(
            base_url=f"{self._address}/v1/",
            verify=verify,
            timeout=timeout,
        )

    @property
    def address(self) -> str:
        return self._address

    def send(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None,
        token: str | None,
    ) -> TransportResponse:
        headers: dict[str, str] = {}
        if token:
            headers[TOKEN_HEADER] = token
        if self._namespace:
            headers[NAMESPACE_HEADER] = self._namespace
        trace_id = get_trace_id()
        if trace_id:
            headers[TRACE_ID_HEADER] = trace_id

        logger.debug(
            "Sending Vault request",
            extra={"method": method, "path": path},
        )
        response = self._client.request(
            method,
            path.lstrip("/"),
            json=body,
            headers=headers,
        )
        logger.debug(
            "Vault response received",
            extra={"method": method, "path": path, "status": response.status_code},
        )
        return TransportResponse(
            status=response.status_code,
            body=response.text,
            headers=dict(response.headers),
        )

    def close(self) -> None:
        self._client.close()
