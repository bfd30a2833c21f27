"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). auth/store.py maps
these to and from the JSON records kept in the backing store; services do
the work.

Timestamps are epoch milliseconds, matching what browser clients already
persist alongside their session token.

Layer rule: no imports from api/ or store/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    user = "user"
    admin = "admin"


class Plan(str, Enum):
    free = "free"
    pro = "pro"
    adviser = "adviser"


@dataclass
class Account:
    """One registered user. Stored under user:<email>, the only identity key.

    email is always normalized (stripped, lowercased) before it reaches this
    class. password_hash is an HMAC-SHA256 hex digest, never the password.
    """

    id: str
    email: str
    name: str
    password_hash: str
    role: Role = Role.user
    plan: Plan = Plan.free
    created_at: int = 0


@dataclass(frozen=True)
class Identity:
    """The verified caller: what SessionVerifier hands to every privileged operation."""

    user_id: str
    email: str
    name: str
    plan: Plan
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.admin


@dataclass(frozen=True)
class Session:
    """A bearer token plus a frozen snapshot of the account at issuance.

    Role and plan changes made after issuance are not visible through this
    session. The holder has to authenticate again to pick them up.
    """

    token: str
    identity: Identity
    expires: int  # epoch ms, 0 = store TTL only

    def is_expired(self, now_ms: int) -> bool:
        return bool(self.expires) and now_ms > self.expires
