"""
Shared fixtures for vaultkit tests.

FakeTransport scripts backend outcomes per (method, path) and records every
request, so tests exercise the real requester, classifier and retry stack
without a Vault server.
"""

import json
import threading
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import MagicMock

import pytest

from vaultkit.auth import TokenManager
from vaultkit.leases import LeaseManager, LeasePolicy
from vaultkit.models import LeaseInfo, Token
from vaultkit.requester import Requester
from vaultkit.retry import RetryPolicy
from vaultkit.transport import TransportResponse

TEST_TOKEN_VALUE = "hvs.CAESIJtestTokenValue0123456789abcdef"
T0 = datetime(2025, 1, 15, 12, 0, 0, tzinfo=UTC)


@dataclass(frozen=True)
class SentRequest:
    method: str
    path: str
    body: dict[str, Any] | None
    token: str | None


class FakeTransport:
    """
    Scripted stand-in for HttpxTransport.

    Outcomes are queued per (method, path) and consumed in order. An outcome
    added with ``times=None`` is returned forever once reached. A request with
    no scripted outcome fails the test.
    """

    def __init__(self) -> None:
        self.calls: list[SentRequest] = []
        self.closed = False
        self._routes: dict[tuple[str, str], deque[list[Any]]] = {}
        self._lock = threading.Lock()

    def add(
        self,
        method: str,
        path: str,
        status: int = 200,
        body: dict[str, Any] | str | None = None,
        *,
        times: int | None = 1,
    ) -> "FakeTransport":
        text = json.dumps(body) if isinstance(body, dict) else (body or "")
        return self._push(method, path, TransportResponse(status=status, body=text), times)

    def fail(
        self, method: str, path: str, error: BaseException, *, times: int | None = 1
    ) -> "FakeTransport":
        return self._push(method, path, error, times)

    def _push(self, method: str, path: str, outcome: Any, times: int | None) -> "FakeTransport":
        with self._lock:
            self._routes.setdefault((method, path), deque()).append([outcome, times])
        return self

    def send(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None,
        token: str | None,
    ) -> TransportResponse:
        with self._lock:
            self.calls.append(SentRequest(method, path, body, token))
            queue = self._routes.get((method, path))
            if not queue:
                raise AssertionError(f"Unexpected request: {method} {path}")
            entry = queue[0]
            outcome, remaining = entry
            if remaining is not None:
                entry[1] = remaining - 1
                if entry[1] <= 0:
                    queue.popleft()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def calls_to(self, method: str, path: str) -> list[SentRequest]:
        with self._lock:
            return [c for c in self.calls if c.method == method and c.path == path]

    def close(self) -> None:
        self.closed = True


class FakeClock:
    """Manually advanced UTC clock for lease timing."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def lease_payload(
    lease_id: str,
    lease_duration: int = 3600,
    renewable: bool = True,
    data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Vault response body for a leased secret."""
    return {
        "request_id": "req-1",
        "lease_id": lease_id,
        "lease_duration": lease_duration,
        "renewable": renewable,
        "data": data if data is not None else {"username": "v-app-1", "password": "pw-1"},
        "warnings": None,
    }


def make_lease(
    lease_id: str = "database/creds/app/abc123",
    ttl_seconds: int = 3600,
    renewable: bool = True,
    issued_at: datetime = T0,
) -> LeaseInfo:
    return LeaseInfo(
        lease_id=lease_id,
        ttl=timedelta(seconds=ttl_seconds),
        renewable=renewable,
        issued_at=issued_at,
    )


# ================================================================================
# Fixtures
# ================================================================================


@pytest.fixture(autouse=True)
def fast_retry_sleep(monkeypatch):
    """Eliminate any tenacity backoff that is not routed through an injected sleep."""
    monkeypatch.setattr("tenacity.nap.sleep", lambda *args, **kwargs: None)


@pytest.fixture()
def fake_transport():
    return FakeTransport()


@pytest.fixture()
def sleeps():
    """Recorded retry delays; pass ``sleeps.append`` as the sleep function."""
    return []


@pytest.fixture()
def token():
    return Token(
        value=TEST_TOKEN_VALUE,
        ttl=timedelta(hours=1),
        renewable=True,
        issued_at=T0,
        accessor="acc-123",
        policies=("default", "app"),
    )


@pytest.fixture()
def retry_policy():
    return RetryPolicy(max_attempts=3, base_delay=0.5, max_delay=10.0, jitter=0.0)


@pytest.fixture()
def token_manager(fake_transport, token, retry_policy, sleeps):
    return TokenManager(fake_transport, token, retry_policy, sleep=sleeps.append)


@pytest.fixture()
def requester(fake_transport, token_manager, retry_policy, sleeps):
    return Requester(fake_transport, token_manager, retry_policy, sleep=sleeps.append)


@pytest.fixture()
def mock_scheduler():
    scheduler = MagicMock()
    scheduler.running = False
    return scheduler


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def lease_manager(requester, mock_scheduler, clock):
    return LeaseManager(requester, LeasePolicy(), scheduler=mock_scheduler, clock=clock)


@pytest.fixture()
def lease_body():
    """Factory for leased-secret response bodies."""
    return lease_payload


@pytest.fixture()
def new_lease():
    """Factory for LeaseInfo values issued at T0."""
    return make_lease
