"""Tests for the shared request pipeline."""

import httpx
import pytest

from vaultkit.auth import TokenManager
from vaultkit.exceptions import (
    AuthenticationError,
    LeaseExpiredError,
    PermanentError,
    SecretNotFoundError,
    TransientError,
)
from vaultkit.models import Token
from vaultkit.requester import Requester
from vaultkit.retry import RetryPolicy

PATH = "secret/data/db"


@pytest.mark.unit()
class TestRequester:
    """Test token use, classification and retries end to end."""

    def test_success_decodes_body(self, requester, fake_transport, token):
        fake_transport.add("GET", PATH, 200, {"data": {"data": {"a": 1}}})
        assert requester.get(PATH) == {"data": {"data": {"a": 1}}}
        assert fake_transport.calls[0].token == token.value

    def test_empty_body_returns_none(self, requester, fake_transport):
        fake_transport.add("DELETE", PATH, 204)
        assert requester.delete(PATH) is None

    def test_transient_retried_then_success(self, requester, fake_transport, sleeps):
        """503, 503, 200 → success after two backoff sleeps."""
        fake_transport.add("GET", PATH, 503, {"errors": []}, times=2)
        fake_transport.add("GET", PATH, 200, {"data": {}})
        assert requester.get(PATH) == {"data": {}}
        assert len(fake_transport.calls) == 3
        assert sleeps == [0.5, 1.0]

    def test_transient_exhaustion_surfaces_transient(self, requester, fake_transport, sleeps):
        fake_transport.add("GET", PATH, 503, {"errors": ["sealed"]}, times=None)
        with pytest.raises(TransientError) as exc_info:
            requester.get(PATH)
        assert exc_info.value.status == 503
        assert len(fake_transport.calls) == 3
        assert len(sleeps) == 2

    def test_auth_failure_not_retried(self, requester, fake_transport, sleeps):
        """403 → AuthenticationError after exactly one attempt."""
        fake_transport.add("GET", PATH, 403, {"errors": ["permission denied"]})
        with pytest.raises(AuthenticationError):
            requester.get(PATH)
        assert len(fake_transport.calls) == 1
        assert sleeps == []

    def test_not_found_not_retried(self, requester, fake_transport):
        fake_transport.add("GET", PATH, 404, {"errors": []})
        with pytest.raises(SecretNotFoundError) as exc_info:
            requester.get(PATH)
        assert exc_info.value.path == PATH
        assert len(fake_transport.calls) == 1

    def test_network_error_retried(self, requester, fake_transport):
        fake_transport.fail("GET", PATH, httpx.ConnectError("refused"))
        fake_transport.add("GET", PATH, 200, {"data": {}})
        assert requester.get(PATH) == {"data": {}}

    def test_malformed_body_is_permanent(self, requester, fake_transport):
        fake_transport.add("GET", PATH, 200, "not json")
        with pytest.raises(PermanentError):
            requester.get(PATH)
        assert len(fake_transport.calls) == 1

    def test_lease_operation_classification(self, requester, fake_transport):
        fake_transport.add("PUT", "sys/leases/renew", 400, {"errors": ["invalid lease ID"]})
        with pytest.raises(LeaseExpiredError) as exc_info:
            requester.put(
                "sys/leases/renew",
                {"lease_id": "aws/creds/x/1"},
                lease_operation=True,
                error_path="aws/creds/x/1",
            )
        assert exc_info.value.path == "aws/creds/x/1"

    def test_retry_disabled(self, requester, fake_transport):
        fake_transport.add("GET", PATH, 503, times=None)
        with pytest.raises(TransientError):
            requester.get(PATH, retry=False)
        assert len(fake_transport.calls) == 1

    def test_token_reread_on_each_attempt(self, fake_transport, token, sleeps):
        """A rotation between retries is used by the next attempt."""
        tokens = TokenManager(fake_transport, token)
        new_token = Token("hvs.rotated-token")

        def rotate_then_sleep(delay):
            sleeps.append(delay)
            tokens.rotate(new_token)

        requester = Requester(
            fake_transport, tokens, RetryPolicy(jitter=0.0), sleep=rotate_then_sleep
        )
        fake_transport.add("GET", PATH, 502)
        fake_transport.add("GET", PATH, 200, {"data": {}})
        requester.get(PATH)

        assert [c.token for c in fake_transport.calls] == [token.value, "hvs.rotated-token"]

    def test_no_token_is_authentication_error(self, fake_transport):
        requester = Requester(fake_transport, TokenManager(fake_transport))
        with pytest.raises(AuthenticationError):
            requester.get(PATH)
        assert fake_transport.calls == []
