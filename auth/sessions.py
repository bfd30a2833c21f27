"""
auth/sessions.py -- Resolve a bearer token to the identity it was issued for.

Every privileged operation starts here. The identity returned is the frozen
snapshot written at issuance; it is never re-read from the account record,
so role and plan changes only reach a user after they sign in again.

Expiry is lazy: an expired entry is deleted by the verification that finds
it, not by a sweeper. The store TTL removes entries nobody reads.
"""

from __future__ import annotations

import time

from auth.models import Session
from auth.store import AccountRepository
from auth.tokens import Clock, now_ms
from core.errors import AuthError, ValidationError

_BEARER = "Bearer "

UNAUTHORIZED = "Unauthorized"
INVALID_SESSION = "Invalid or expired session"


def parse_bearer(header: str | None) -> str | None:
    """Return the token from an ``Authorization: Bearer <token>`` header, or None."""
    if not header or not header.startswith(_BEARER):
        return None
    return header[len(_BEARER):].strip() or None


class SessionVerifier:
    def __init__(self, repo: AccountRepository, clock: Clock = time.time) -> None:
        self.repo = repo
        self._clock = clock

    def verify_header(self, header: str | None) -> Session:
        """Verify an Authorization header. Malformed headers never touch the store."""
        token = parse_bearer(header)
        if token is None:
            raise AuthError(UNAUTHORIZED)
        return self.verify_session(token, UNAUTHORIZED)

    def verify_token(self, token: str | None) -> Session:
        """Verify a token passed in a request body rather than a header."""
        if not token:
            raise ValidationError("Token required")
        return self.verify_session(token, INVALID_SESSION)

    def verify_session(self, token: str, message: str = INVALID_SESSION) -> Session:
        session = self.repo.get_session(token)
        if session is None:
            raise AuthError(message)
        if session.is_expired(now_ms(self._clock)):
            self.repo.delete_session(token)
            raise AuthError(message)
        return session
