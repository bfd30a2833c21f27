"""
auth/store.py -- Key layout and record mapping for auth entities.

Pattern: Repository + Data Mapper. AccountRepository is the repository;
_record_to_account / _record_to_session are the mappers. Services never
build store keys or JSON records themselves.

Key layout (values are JSON):
    user:<normalized email>   -> {id, email, name, hash, role, plan, createdAt}
    token:<token>             -> {userId, email, name, plan, role, expires}   TTL
    profile:<userId>          -> {...settings, never "photo"}
    lock:<name>               -> lock holder id                             TTL

The account record keyed by normalized email is the single writable copy of
an account. Sessions carry a snapshot, not a reference.

Records written before roles existed have no "role" (meaning user) and may
lack "plan" (meaning free); the mappers fill those in.

Layer rule: no imports from api/. store/ is reached only through the
KeyValueStore interface.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, TypeVar

from auth.models import Account, Identity, Plan, Role, Session
from store.base import KeyValueStore, decode_value, encode_value

logger = logging.getLogger("equitysight.auth")

E = TypeVar("E", bound=Enum)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _user_key(email: str) -> str:
    return "user:" + normalize_email(email)


def _token_key(token: str) -> str:
    return "token:" + token


def _profile_key(user_id: str) -> str:
    return "profile:" + user_id


def _lock_key(name: str) -> str:
    return "lock:" + name


def _coerce(enum_cls: type[E], value, default: E) -> E:
    try:
        return enum_cls(value)
    except ValueError:
        return default


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountRepository:
    """Reads and writes accounts, sessions, profiles and locks.

    Usage:
        repo = AccountRepository(SQLStore())
        repo.create_account(account)
        repo.get_account("a@b.com")
    """

    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def get_account(self, email: str) -> Optional[Account]:
        record = self.kv.get_json(_user_key(email))
        if not isinstance(record, dict):
            return None
        return _record_to_account(record, email)

    def create_account(self, account: Account) -> bool:
        """Write a new account only if its email is free. Returns False on conflict.

        SET NX makes the uniqueness check and the write one step, so two
        concurrent signups for the same email cannot both land.
        """
        return self.kv.set_if_absent(_user_key(account.email), encode_value(_account_to_record(account)))

    def save_account(self, account: Account) -> None:
        """Overwrite an existing account record (last writer wins)."""
        self.kv.set_json(_user_key(account.email), _account_to_record(account))

    def list_accounts(self) -> list[Account]:
        keys = self.kv.scan_keys("user:*")
        accounts = []
        for key, raw in zip(keys, self.kv.get_many(keys)):
            if not raw:
                continue  # deleted between SCAN and MGET
            record = decode_value(raw)
            if isinstance(record, dict):
                accounts.append(_record_to_account(record, key[len("user:"):]))
            else:
                logger.warning("Skipping malformed account record %s", key)
        return accounts

    def delete_account(self, account: Account, *extra_keys: str) -> None:
        """Remove the account record and its profile in one best-effort batch."""
        self.kv.delete_many([_user_key(account.email), _profile_key(account.id), *extra_keys])

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def save_session(self, session: Session, ttl: int) -> None:
        self.kv.set_json(_token_key(session.token), _session_to_record(session), ttl=ttl)

    def get_session(self, token: str) -> Optional[Session]:
        record = self.kv.get_json(_token_key(token))
        if not isinstance(record, dict) or "userId" not in record:
            return None
        return _record_to_session(token, record)

    def delete_session(self, token: str) -> None:
        self.kv.delete(_token_key(token))

    @staticmethod
    def session_key(token: str) -> str:
        return _token_key(token)

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def get_profile(self, user_id: str) -> dict:
        profile = self.kv.get_json(_profile_key(user_id))
        return profile if isinstance(profile, dict) else {}

    def save_profile(self, user_id: str, profile: dict) -> None:
        self.kv.set_json(_profile_key(user_id), profile)

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------

    def acquire_lock(self, name: str, holder: str, ttl: int) -> bool:
        return self.kv.set_if_absent(_lock_key(name), holder, ttl=ttl)

    def lock_holder(self, name: str) -> Optional[str]:
        return self.kv.get(_lock_key(name))

    def release_lock(self, name: str) -> None:
        self.kv.delete(_lock_key(name))


# ---------------------------------------------------------------------------
# Record mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _account_to_record(account: Account) -> dict:
    return {
        "id": account.id,
        "email": account.email,
        "name": account.name,
        "hash": account.password_hash,
        "role": account.role.value,
        "plan": account.plan.value,
        "createdAt": account.created_at,
    }


def _record_to_account(record: dict, email: str) -> Account:
    return Account(
        id=record.get("id", ""),
        email=record.get("email") or normalize_email(email),
        name=record.get("name", ""),
        password_hash=record.get("hash", ""),
        role=_coerce(Role, record.get("role"), Role.user),
        plan=_coerce(Plan, record.get("plan"), Plan.free),
        created_at=int(record.get("createdAt") or 0),
    )


def _session_to_record(session: Session) -> dict:
    ident = session.identity
    return {
        "userId": ident.user_id,
        "email": ident.email,
        "name": ident.name,
        "plan": ident.plan.value,
        "role": ident.role.value,
        "expires": session.expires,
    }


def _record_to_session(token: str, record: dict) -> Session:
    return Session(
        token=token,
        identity=Identity(
            user_id=record["userId"],
            email=record.get("email", ""),
            name=record.get("name", ""),
            plan=_coerce(Plan, record.get("plan"), Plan.free),
            role=_coerce(Role, record.get("role"), Role.user),
        ),
        expires=int(record.get("expires") or 0),
    )
