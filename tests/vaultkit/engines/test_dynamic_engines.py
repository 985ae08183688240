"""Tests for the AWS and database engines and leased issuance."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from vaultkit.engines import AwsEngine, DatabaseEngine, issue_leased_secret
from vaultkit.exceptions import PermanentError, SecretNotFoundError
from vaultkit.leases.manager import REVOKE_PATH
from vaultkit.models import utcnow


@pytest.fixture()
def aws(requester, lease_manager):
    return AwsEngine(requester, lease_manager)


@pytest.fixture()
def database(requester, lease_manager):
    return DatabaseEngine(requester, lease_manager)


def _aws_data():
    return {"access_key": "AKIAEXAMPLE", "secret_key": "wJalr", "security_token": None}


@pytest.mark.unit()
class TestAwsEngine:
    """Test AWS credential issuance."""

    def test_issue_creds_registers_lease_before_return(self, aws, fake_transport, lease_manager, lease_body):
        """aws/creds/role-x/abc123 with 3600s → tracked, expires about an hour from now."""
        fake_transport.add(
            "GET", "aws/creds/role-x", 200, lease_body("aws/creds/role-x/abc123", 3600, True, _aws_data())
        )
        before = utcnow()

        secret = aws.issue("role-x")

        assert secret["access_key"] == "AKIAEXAMPLE"
        assert secret.lease_id == "aws/creds/role-x/abc123"
        assert "aws/creds/role-x/abc123" in lease_manager
        assert before + timedelta(seconds=3599) <= secret.lease.expires_at <= utcnow() + timedelta(seconds=3600)
        status = lease_manager.status("aws/creds/role-x/abc123")
        assert status.expires_at == secret.lease.expires_at

    def test_issue_sts_uses_post(self, aws, fake_transport, lease_body):
        fake_transport.add("POST", "aws/sts/deploy", 200, lease_body("aws/sts/deploy/1", 900, False, _aws_data()))
        secret = aws.issue("deploy", credential_type="sts", ttl="15m")
        assert secret.lease.renewable is False
        assert fake_transport.calls[0].body == {"ttl": "15m"}

    def test_creds_with_options_uses_post(self, aws, fake_transport, lease_body):
        fake_transport.add("POST", "aws/creds/deploy", 200, lease_body("aws/creds/deploy/2", 900))
        aws.issue("deploy", role_arn="arn:aws:iam::123456789012:role/deploy")
        assert fake_transport.calls[0].body == {"role_arn": "arn:aws:iam::123456789012:role/deploy"}

    def test_unknown_credential_type(self, aws, fake_transport):
        with pytest.raises(PermanentError):
            aws.issue("deploy", credential_type="federation")  # type: ignore[arg-type]
        assert fake_transport.calls == []

    def test_unknown_role(self, aws, fake_transport, lease_manager):
        fake_transport.add("GET", "aws/creds/nope", 400, {"errors": ["no value found at path"]})
        with pytest.raises(SecretNotFoundError):
            aws.issue("nope")
        assert len(lease_manager) == 0


@pytest.mark.unit()
class TestDatabaseEngine:
    def test_issue(self, database, fake_transport, lease_manager, lease_body):
        fake_transport.add("GET", "database/creds/readonly", 200, lease_body("database/creds/readonly/xyz"))
        secret = database.issue("readonly")
        assert secret["username"] == "v-app-1"
        assert lease_manager.tracked_ids() == ["database/creds/readonly/xyz"]

    def test_on_expired_callback_is_registered(self, database, fake_transport, lease_manager, lease_body):
        callback = MagicMock()
        fake_transport.add("GET", "database/creds/readonly", 200, lease_body("database/creds/readonly/xyz"))
        database.issue("readonly", on_expired=callback)

        lease_manager.ensure_valid("database/creds/readonly/xyz")
        callback.assert_not_called()


@pytest.mark.unit()
class TestIssueLeasedSecret:
    """Test the shared issuance path."""

    def test_unleased_response_is_not_registered(self, requester, lease_manager, fake_transport):
        fake_transport.add("GET", "database/static-creds/app", 200, {"lease_id": "", "data": {"password": "p"}})
        secret = issue_leased_secret(requester, lease_manager, "GET", "database/static-creds/app")
        assert secret.lease is None
        assert len(lease_manager) == 0

    def test_registration_failure_withholds_secret(self, requester, fake_transport, lease_body):
        leases = MagicMock()
        leases.__contains__.return_value = False
        leases.register.side_effect = PermanentError("scheduler rejected job", path="database/creds/app/1")
        fake_transport.add("GET", "database/creds/app", 200, lease_body("database/creds/app/1"))

        with pytest.raises(PermanentError):
            issue_leased_secret(requester, leases, "GET", "database/creds/app")
        leases.revoke.assert_called_once_with("database/creds/app/1")

    def test_duplicate_lease_id_rejected(self, requester, lease_manager, fake_transport, lease_body):
        """The already tracked lease is neither revoked nor replaced."""
        fake_transport.add("GET", "database/creds/app", 200, lease_body("database/creds/app/1"), times=2)
        issue_leased_secret(requester, lease_manager, "GET", "database/creds/app")
        with pytest.raises(PermanentError):
            issue_leased_secret(requester, lease_manager, "GET", "database/creds/app")
        assert lease_manager.tracked_ids() == ["database/creds/app/1"]
        assert fake_transport.calls_to("PUT", REVOKE_PATH) == []

    def test_invalid_lease_metadata_revokes_lease(self, requester, lease_manager, fake_transport):
        fake_transport.add(
            "GET",
            "database/creds/app",
            200,
            {"lease_id": "database/creds/app/1", "lease_duration": -5, "data": {"a": "b"}},
        )
        fake_transport.add("PUT", REVOKE_PATH, 204)

        with pytest.raises(PermanentError):
            issue_leased_secret(requester, lease_manager, "GET", "database/creds/app")

        assert len(lease_manager) == 0
        assert fake_transport.calls_to("PUT", REVOKE_PATH)[0].body == {"lease_id": "database/creds/app/1"}

    def test_missing_data_revokes_lease(self, requester, lease_manager, fake_transport):
        fake_transport.add(
            "GET",
            "aws/creds/deploy",
            200,
            {"lease_id": "aws/creds/deploy/1", "lease_duration": 3600, "renewable": True, "data": None},
        )
        fake_transport.add("PUT", REVOKE_PATH, 204)

        with pytest.raises(PermanentError, match="no data object"):
            issue_leased_secret(requester, lease_manager, "GET", "aws/creds/deploy")

        assert len(fake_transport.calls_to("PUT", REVOKE_PATH)) == 1
        assert "aws/creds/deploy/1" not in lease_manager

    def test_revoke_failure_keeps_original_error(self, requester, lease_manager, fake_transport):
        fake_transport.add(
            "GET", "aws/creds/deploy", 200, {"lease_id": "aws/creds/deploy/1", "lease_duration": 60, "data": []}
        )
        fake_transport.add("PUT", REVOKE_PATH, 403, {"errors": ["permission denied"]})

        with pytest.raises(PermanentError):
            issue_leased_secret(requester, lease_manager, "GET", "aws/creds/deploy")
