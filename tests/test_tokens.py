"""Unit tests for auth/tokens.py -- password digests, tokens, and session issuing."""

import hashlib
import hmac
import re

import pytest

from auth.models import Account, Plan, Role
from auth.tokens import PasswordHasher, encode_password, generate_token, new_account_id, utf16_length

THIRTY_DAYS = 30 * 24 * 3600


def _account(**overrides) -> Account:
    fields = dict(id="acc1", email="a@b.com", name="a", password_hash="x", role=Role.user, plan=Plan.free)
    fields.update(overrides)
    return Account(**fields)


class TestPasswordHasher:
    def test_digest_is_hmac_sha256_hex(self):
        hasher = PasswordHasher("pepper")
        expected = hmac.new(b"pepper", b"longenough1", hashlib.sha256).hexdigest()
        assert hasher.hash("longenough1") == expected

    def test_deterministic(self):
        assert PasswordHasher("s").hash("pw123456") == PasswordHasher("s").hash("pw123456")

    def test_secret_changes_digest(self):
        assert PasswordHasher("s1").hash("pw123456") != PasswordHasher("s2").hash("pw123456")

    def test_verify(self):
        hasher = PasswordHasher("s")
        digest = hasher.hash("correct horse")
        assert hasher.verify("correct horse", digest) is True
        assert hasher.verify("wrong horse", digest) is False

    def test_empty_stored_digest_never_matches(self):
        assert PasswordHasher("s").verify("", "") is False

    def test_empty_secret_rejected(self):
        with pytest.raises(ValueError):
            PasswordHasher("")


class TestTokens:
    def test_token_is_64_hex_chars(self):
        assert re.fullmatch(r"[0-9a-f]{64}", generate_token())

    def test_tokens_do_not_repeat(self):
        assert len({generate_token() for _ in range(200)}) == 200

    def test_account_id_shape(self):
        account_id = new_account_id(lambda: 1_704_067_200.0)
        # base36(1704067200000) + 8 hex chars
        assert account_id[:-8] == "lqu5m2o0"
        assert re.fullmatch(r"[0-9a-z]+[0-9a-f]{8}", account_id)


class TestTokenIssuer:
    def test_issue_persists_snapshot_with_expiry(self, services, clock):
        account = _account(role=Role.admin, plan=Plan.pro)
        session = services.issuer.issue(account)

        assert session.expires == int(clock() * 1000) + THIRTY_DAYS * 1000
        stored = services.repo.get_session(session.token)
        assert stored == session
        assert stored.identity.role == Role.admin
        assert stored.identity.plan == Plan.pro

    def test_issue_uses_store_ttl(self, services, kv):
        session = services.issuer.issue(_account())
        # The SQL backend records the TTL as an absolute expiry on the row.
        with kv.engine.connect() as conn:
            row = conn.exec_driver_sql("SELECT expires_at FROM kv WHERE key = ?", ("token:" + session.token,)).fetchone()
        assert row[0] is not None

    def test_issue_does_not_revoke_previous_sessions(self, services):
        account = _account()
        first = services.issuer.issue(account)
        second = services.issuer.issue(account)
        assert first.token != second.token
        assert services.repo.get_session(first.token) is not None
        assert services.repo.get_session(second.token) is not None


def test_utf16_length_counts_surrogate_pairs():
    assert utf16_length("abc") == 3
    assert utf16_length("\U0001F600") == 2
    assert utf16_length("\ud800") == 1


def test_encode_password_replaces_lone_surrogates():
    assert encode_password("a\ud800b") == "a\ufffdb".encode("utf-8")
    assert encode_password("\U0001F600") == "\U0001F600".encode("utf-8")
