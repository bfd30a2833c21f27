"""Unit tests for auth/sessions.py -- bearer parsing and lazy expiry.

Covers:
- Malformed headers are rejected without any store access
- Unknown tokens are rejected
- Expired tokens are rejected AND deleted, and stay rejected (idempotent)
- The identity returned is the snapshot stored at issuance
"""

from unittest.mock import MagicMock

import pytest

from auth.models import Plan, Role
from auth.sessions import SessionVerifier, parse_bearer
from auth.store import AccountRepository
from core.errors import AuthError, ValidationError

THIRTY_DAYS = 30 * 24 * 3600


def _signup(services, email="a@b.com"):
    return services.accounts.signup(email, "longenough1")


class TestParseBearer:
    @pytest.mark.parametrize("header", [None, "", "Basic abc", "bearer abc", "Bearer ", "Bearer    "])
    def test_malformed(self, header):
        assert parse_bearer(header) is None

    def test_extracts_token(self):
        assert parse_bearer("Bearer abc123 ") == "abc123"


class TestVerifyHeader:
    @pytest.mark.parametrize("header", [None, "Token abc", "Bearer "])
    def test_malformed_header_never_touches_store(self, header):
        repo = MagicMock(spec=AccountRepository)
        verifier = SessionVerifier(repo)
        with pytest.raises(AuthError, match="Unauthorized"):
            verifier.verify_header(header)
        repo.get_session.assert_not_called()

    def test_unknown_token(self, services):
        with pytest.raises(AuthError, match="Unauthorized"):
            services.sessions.verify_header("Bearer " + "0" * 64)

    def test_valid_token_returns_snapshot(self, services):
        session = _signup(services)
        verified = services.sessions.verify_header("Bearer " + session.token)
        assert verified.identity.email == "a@b.com"
        assert verified.identity.role == Role.user
        assert verified.identity.plan == Plan.free


class TestVerifyToken:
    def test_missing_token_is_validation_error(self, services):
        with pytest.raises(ValidationError, match="Token required"):
            services.sessions.verify_token(None)

    def test_unknown_token_message(self, services):
        with pytest.raises(AuthError, match="Invalid or expired session"):
            services.sessions.verify_token("not-a-real-token")


class TestLazyExpiry:
    def test_valid_right_up_to_expiry(self, services, clock):
        session = _signup(services)
        clock.advance(THIRTY_DAYS)
        assert services.sessions.verify_token(session.token).token == session.token

    def test_expired_token_rejected_and_removed(self, services, clock, kv):
        session = _signup(services)
        clock.advance(THIRTY_DAYS + 1)

        with pytest.raises(AuthError):
            services.sessions.verify_token(session.token)
        assert kv.get("token:" + session.token) is None

        # Second attempt fails the same way; nothing left to delete.
        with pytest.raises(AuthError):
            services.sessions.verify_token(session.token)
        assert kv.get("token:" + session.token) is None

    def test_expired_via_header_also_removed(self, services, clock, kv):
        session = _signup(services)
        clock.advance(THIRTY_DAYS + 1)
        with pytest.raises(AuthError, match="Unauthorized"):
            services.sessions.verify_header("Bearer " + session.token)
        assert kv.get("token:" + session.token) is None

    def test_record_without_expires_relies_on_store_ttl(self, services, kv, clock):
        kv.set_json("token:legacy", {"userId": "u1", "email": "old@b.com", "name": "old", "plan": "free"})
        clock.advance(10 * THIRTY_DAYS)
        identity = services.sessions.verify_token("legacy").identity
        assert identity.user_id == "u1"
        assert identity.role == Role.user  # legacy records predate roles


class TestSnapshotSemantics:
    def test_role_change_not_visible_through_old_session(self, services):
        session = _signup(services)
        account = services.repo.get_account("a@b.com")
        account.role = Role.admin
        account.plan = Plan.adviser
        services.repo.save_account(account)

        identity = services.sessions.verify_token(session.token).identity
        assert identity.role == Role.user
        assert identity.plan == Plan.free
