"""Tests for TokenManager: versioned token slot and token self-management."""

import threading
from datetime import timedelta

import pytest

from vaultkit.auth import TokenManager
from vaultkit.exceptions import AuthenticationError, PermanentError
from vaultkit.models import Token

RENEW_PATH = "auth/token/renew-self"


def _auth_body(client_token: str, lease_duration: int = 7200, renewable: bool = True) -> dict:
    return {
        "auth": {
            "client_token": client_token,
            "accessor": "acc-123",
            "policies": ["default", "app"],
            "lease_duration": lease_duration,
            "renewable": renewable,
        }
    }


@pytest.mark.unit()
class TestTokenSlot:
    """Test reading, rotating and clearing the active token."""

    def test_current_token(self, token_manager, token):
        assert token_manager.current_token() is token
        assert token_manager.has_token() is True

    def test_no_token_raises_authentication_error(self, fake_transport):
        tokens = TokenManager(fake_transport)
        assert tokens.has_token() is False
        with pytest.raises(AuthenticationError):
            tokens.current_token()

    def test_rotate_replaces_token_and_bumps_version(self, token_manager):
        new_token = Token("hvs.rotated")
        version = token_manager.version
        token_manager.rotate(new_token)
        assert token_manager.current_token() is new_token
        assert token_manager.version == version + 1

    def test_rotate_rejects_non_token(self, token_manager):
        with pytest.raises(PermanentError):
            token_manager.rotate("hvs.raw-string")  # type: ignore[arg-type]

    def test_clear(self, token_manager):
        token_manager.clear()
        assert token_manager.has_token() is False

    def test_concurrent_readers_see_complete_tokens(self, fake_transport):
        """Readers racing rotations only ever observe fully formed tokens."""
        tokens_seen: list[Token] = []
        candidates = [Token(f"hvs.token-{i}", ttl=timedelta(seconds=i + 1)) for i in range(50)]
        tokens = TokenManager(fake_transport, candidates[0])
        stop = threading.Event()

        def reader():
            while not stop.is_set():
                tokens_seen.append(tokens.current_token())

        threads = [threading.Thread(target=reader) for _ in range(4)]
        for thread in threads:
            thread.start()
        for candidate in candidates[1:]:
            tokens.rotate(candidate)
        stop.set()
        for thread in threads:
            thread.join()

        assert tokens.current_token() is candidates[-1]
        for seen in tokens_seen:
            assert seen in candidates
            assert seen.ttl == timedelta(seconds=int(seen.value.rsplit("-", 1)[1]) + 1)


@pytest.mark.unit()
class TestRenewSelf:
    """Test auth/token/renew-self handling."""

    def test_renew_installs_new_ttl(self, token_manager, fake_transport, token):
        fake_transport.add("POST", RENEW_PATH, 200, _auth_body(token.value, 7200))
        renewed = token_manager.renew_self(timedelta(hours=2))

        assert renewed.value == token.value
        assert renewed.ttl == timedelta(hours=2)
        assert token_manager.current_token() is renewed
        assert fake_transport.calls[0].body == {"increment": "7200s"}

    def test_renew_without_increment_sends_no_body(self, token_manager, fake_transport, token):
        fake_transport.add("POST", RENEW_PATH, 200, _auth_body(token.value))
        token_manager.renew_self()
        assert fake_transport.calls[0].body is None

    def test_not_renewable_token(self, fake_transport):
        tokens = TokenManager(fake_transport, Token("hvs.fixed", renewable=False))
        with pytest.raises(PermanentError):
            tokens.renew_self()
        assert fake_transport.calls == []

    def test_missing_auth_block(self, token_manager, fake_transport):
        fake_transport.add("POST", RENEW_PATH, 200, {"data": {}})
        with pytest.raises(PermanentError):
            token_manager.renew_self()

    @pytest.mark.parametrize(
        "auth",
        [
            {"client_token": "hvs.renewed", "lease_duration": "1h", "renewable": True},
            {"client_token": "", "lease_duration": 3600, "renewable": True},
        ],
    )
    def test_malformed_auth_block_is_permanent(self, token_manager, fake_transport, token, auth):
        fake_transport.add("POST", RENEW_PATH, 200, {"auth": auth})

        with pytest.raises(PermanentError) as exc_info:
            token_manager.renew_self()

        assert isinstance(exc_info.value.cause, ValueError)
        assert token_manager.current_token() is token

    def test_backend_rejection(self, token_manager, fake_transport, token):
        fake_transport.add("POST", RENEW_PATH, 403, {"errors": ["permission denied"]})
        with pytest.raises(AuthenticationError):
            token_manager.renew_self()
        assert token_manager.current_token() is token

    def test_rotation_during_renewal_wins(self, fake_transport, token):
        """A renewal result never overwrites a token rotated while it was in flight."""
        rotated = Token("hvs.rotated-mid-flight")
        tokens = TokenManager(fake_transport, token)
        original_send = fake_transport.send

        def send_and_rotate(method, path, body, value):
            response = original_send(method, path, body, value)
            tokens.rotate(rotated)
            return response

        fake_transport.send = send_and_rotate
        fake_transport.add("POST", RENEW_PATH, 200, _auth_body(token.value))

        result = tokens.renew_self()
        assert result is rotated
        assert tokens.current_token() is rotated


@pytest.mark.unit()
class TestLookupAndRevoke:
    """Test lookup-self and revoke-self."""

    def test_lookup_refreshes_metadata(self, fake_transport):
        tokens = TokenManager(fake_transport, Token("hvs.from-env"))
        fake_transport.add(
            "GET",
            "auth/token/lookup-self",
            200,
            {"data": {"ttl": 1800, "renewable": True, "accessor": "acc-7", "policies": ["app"]}},
        )

        data = tokens.lookup_self()

        assert data["accessor"] == "acc-7"
        current = tokens.current_token()
        assert current.value == "hvs.from-env"
        assert current.renewable is True
        assert current.ttl == timedelta(seconds=1800)
        assert current.policies == ("app",)

    def test_lookup_missing_data(self, token_manager, fake_transport):
        fake_transport.add("GET", "auth/token/lookup-self", 200, {})
        with pytest.raises(PermanentError):
            token_manager.lookup_self()

    def test_lookup_bad_ttl_is_permanent(self, token_manager, fake_transport, token):
        fake_transport.add("GET", "auth/token/lookup-self", 200, {"data": {"ttl": "30m", "renewable": True}})

        with pytest.raises(PermanentError, match="invalid metadata"):
            token_manager.lookup_self()

        assert token_manager.current_token() is token

    def test_revoke_self_clears_slot(self, token_manager, fake_transport):
        fake_transport.add("POST", "auth/token/revoke-self", 204)
        token_manager.revoke_self()
        assert token_manager.has_token() is False
        with pytest.raises(AuthenticationError):
            token_manager.current_token()
