"""
auth/accounts.py -- Account lifecycle: signup, signin, signout, password
change, and self-service deletion.

Per-account state machine: NonExistent -> Active -> Deleted (terminal).

All input validation happens before the first store call, so a request with
a missing field or short password never reaches the backing store.

Signin reports "no account" and "wrong password" as different errors.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from auth.models import Account, Identity, Plan, Role, Session
from auth.store import AccountRepository, normalize_email
from auth.tokens import Clock, PasswordHasher, TokenIssuer, new_account_id, now_ms, utf16_length
from core.errors import AuthError, ConflictError, NotFoundError, ValidationError

logger = logging.getLogger("equitysight.auth")

MIN_PASSWORD_LENGTH = 8


def check_password_length(password: str) -> None:
    if utf16_length(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


def parse_plan(plan: Optional[str]) -> Plan:
    try:
        return Plan(plan)
    except ValueError:
        raise ValidationError("Plan must be one of: " + ", ".join(p.value for p in Plan)) from None


class AccountLifecycleManager:
    def __init__(
        self,
        repo: AccountRepository,
        hasher: PasswordHasher,
        issuer: TokenIssuer,
        clock: Clock = time.time,
    ) -> None:
        self.repo = repo
        self.hasher = hasher
        self.issuer = issuer
        self._clock = clock

    def signup(
        self,
        email: Optional[str],
        password: Optional[str],
        name: Optional[str] = None,
        plan: Optional[str] = None,
    ) -> Session:
        """Create an account with role=user and return its first session.

        Raises:
            ValidationError: email/password missing, password too short, bad plan.
            ConflictError:   the normalized email already has an account.
        """
        if not email or not email.strip() or not password:
            raise ValidationError("Email and password required")
        check_password_length(password)
        plan_value = parse_plan(plan) if plan else Plan.free

        email = normalize_email(email)
        account = Account(
            id=new_account_id(self._clock),
            email=email,
            name=(name or "").strip() or email.split("@")[0],
            password_hash=self.hasher.hash(password),
            role=Role.user,
            plan=plan_value,
            created_at=now_ms(self._clock),
        )
        if not self.repo.create_account(account):
            raise ConflictError("An account with this email already exists")
        logger.info("Account created id=%s plan=%s", account.id, account.plan.value)
        return self.issuer.issue(account)

    def signin(self, email: Optional[str], password: Optional[str]) -> Session:
        """Verify credentials and issue a fresh session with the current role and plan.

        A failed signin neither issues a token nor touches the stored hash.
        """
        if not email or not password:
            raise ValidationError("Email and password required")
        account = self.repo.get_account(email)
        if account is None:
            raise NotFoundError("No account found for this email")
        if not self.hasher.verify(password, account.password_hash):
            logger.info("Signin rejected for id=%s: incorrect password", account.id)
            raise AuthError("Incorrect password")
        return self.issuer.issue(account)

    def signout(self, token: Optional[str]) -> None:
        """Delete the given session. Without a token this is a no-op."""
        if token:
            self.repo.delete_session(token)

    def change_password(self, identity: Identity, current_password: Optional[str], new_password: Optional[str]) -> None:
        """Overwrite the password digest in place.

        Outstanding sessions, including ones held by whoever knew the old
        password, stay valid until they expire or are signed out.
        """
        if not current_password or not new_password:
            raise ValidationError("Current and new password required")
        check_password_length(new_password)
        account = self._own_account(identity)
        if not self.hasher.verify(current_password, account.password_hash):
            raise AuthError("Current password is incorrect")
        account.password_hash = self.hasher.hash(new_password)
        self.repo.save_account(account)
        logger.info("Password changed for id=%s", account.id)

    def delete_account(self, identity: Identity, token: str, password: Optional[str]) -> None:
        """Delete the caller's account, profile, and the session making the request.

        Other sessions for the same account are not tracked and so remain in
        the store until their TTL runs out.
        """
        if not password:
            raise ValidationError("Password required")
        account = self._own_account(identity)
        if not self.hasher.verify(password, account.password_hash):
            raise AuthError("Incorrect password")
        self.repo.delete_account(account, self.repo.session_key(token))
        logger.info("Account deleted by owner id=%s", account.id)

    def _own_account(self, identity: Identity) -> Account:
        account = self.repo.get_account(identity.email)
        if account is None or account.id != identity.user_id:
            raise NotFoundError("Account not found")
        return account
