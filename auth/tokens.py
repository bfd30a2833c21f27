"""
auth/tokens.py -- Password digests, opaque session tokens, and account ids.

Security design decisions:
  Passwords: HMAC-SHA256(AUTH_SALT, password) as hex. Deterministic so the
       stored digests of existing accounts keep verifying. Comparison goes
       through hmac.compare_digest so response time does not depend on how
       many leading characters of a guess match.

  Session tokens: secrets.token_hex(32) gives 256 bits of entropy as 64 hex
       characters. Tokens are opaque: the store record is the only place the
       identity lives. No uniqueness check -- a collision at this size is not
       a practical concern.

  Expiry: the store entry is written with a native TTL and the record also
       carries "expires", so a session dies even if one of the two mechanisms
       is missing (e.g. a store without TTL support).

Strings are measured and encoded as UTF-16 text, the way browser clients
see them: lengths count UTF-16 code units and a lone surrogate is hashed as
U+FFFD, so digests match those written by the JavaScript clients.

Configuration is injected at construction. Nothing here reads settings.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import time
from collections.abc import Callable

from auth.models import Account, Identity, Session
from auth.store import AccountRepository

Clock = Callable[[], float]


def now_ms(clock: Clock = time.time) -> int:
    return int(clock() * 1000)


def generate_token() -> str:
    """Return a new 64-hex-char session token (256 bits of entropy)."""
    return secrets.token_hex(32)


def _base36(n: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    while True:
        n, r = divmod(n, 36)
        out = digits[r] + out
        if n == 0:
            return out


def new_account_id(clock: Clock = time.time) -> str:
    """Base-36 millisecond timestamp followed by 8 random hex chars."""
    return _base36(now_ms(clock)) + secrets.token_hex(4)


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def utf16_length(text: str) -> int:
    """Length in UTF-16 code units (an emoji outside the BMP counts as 2)."""
    return len(text.encode("utf-16-le", "surrogatepass")) // 2


def encode_password(password: str) -> bytes:
    """UTF-8 bytes of the password with unpaired surrogates replaced by U+FFFD."""
    return password.encode("utf-16-le", "surrogatepass").decode("utf-16-le", "replace").encode("utf-8")


class PasswordHasher:
    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("PasswordHasher requires a non-empty secret")
        self._secret = secret.encode("utf-8")

    def hash(self, password: str) -> str:
        return hmac.new(self._secret, encode_password(password), hashlib.sha256).hexdigest()

    def verify(self, password: str, stored_digest: str) -> bool:
        """Re-hash and compare in constant time. An empty stored digest never matches."""
        if not stored_digest:
            return False
        return hmac.compare_digest(self.hash(password), stored_digest)


# ---------------------------------------------------------------------------
# Session issuing
# ---------------------------------------------------------------------------


class TokenIssuer:
    """Creates sessions and persists them with a fixed TTL."""

    def __init__(self, repo: AccountRepository, ttl_seconds: int, clock: Clock = time.time) -> None:
        self.repo = repo
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def issue(self, account: Account) -> Session:
        """Issue a fresh session carrying the account's current role and plan.

        Existing sessions for the account are left alone; any number may be
        outstanding at once.
        """
        session = Session(
            token=generate_token(),
            identity=Identity(
                user_id=account.id,
                email=account.email,
                name=account.name,
                plan=account.plan,
                role=account.role,
            ),
            expires=now_ms(self._clock) + self.ttl_seconds * 1000,
        )
        self.repo.save_session(session, ttl=self.ttl_seconds)
        return session
