"""
auth/admin.py -- Admin-gated user management and the bootstrap admin claim.

Every management operation checks the caller's verified identity first and
raises AuthError for non-admins; a non-admin call is never a silent no-op.

Changes made here touch only the target's account record. Sessions already
issued to the target keep their old role and plan until the target signs in
again -- sessions are snapshots, and there is no token index per user to
revoke from.

Bootstrap claim:
  claim_self_admin() lets the first authenticated user promote themselves
  while no admin exists, so a fresh deployment needs no pre-seeded operator.
  The scan-then-promote sequence runs under the "bootstrap-admin" advisory
  lock. Without it two concurrent first callers could both see zero admins
  and both be promoted.
"""

from __future__ import annotations

import logging
from typing import Optional

from auth.accounts import check_password_length, parse_plan
from auth.locks import AdvisoryLock
from auth.models import Account, Identity, Plan, Role, Session
from auth.store import AccountRepository
from auth.tokens import PasswordHasher, TokenIssuer
from core.errors import AuthError, ConflictError, NotFoundError, ValidationError

logger = logging.getLogger("equitysight.auth")

BOOTSTRAP_LOCK = "bootstrap-admin"


def require_admin(identity: Identity) -> None:
    if not identity.is_admin:
        raise AuthError("Admin access required")


def parse_role(role: Optional[str]) -> Role:
    try:
        return Role(role)
    except ValueError:
        raise ValidationError("Role must be one of: " + ", ".join(r.value for r in Role)) from None


class RoleAdministrationService:
    def __init__(self, repo: AccountRepository, hasher: PasswordHasher, issuer: TokenIssuer) -> None:
        self.repo = repo
        self.hasher = hasher
        self.issuer = issuer
        self._bootstrap_lock = AdvisoryLock(repo, BOOTSTRAP_LOCK)

    # ------------------------------------------------------------------
    # Admin-only
    # ------------------------------------------------------------------

    def list_users(self, caller: Identity) -> list[Account]:
        """Return every account, oldest first. Callers must not expose password_hash."""
        require_admin(caller)
        return sorted(self.repo.list_accounts(), key=lambda a: (a.created_at, a.email))

    def reset_password(self, caller: Identity, target_email: Optional[str], new_password: Optional[str]) -> None:
        require_admin(caller)
        if not target_email or not new_password:
            raise ValidationError("targetEmail and newPassword required")
        check_password_length(new_password)
        account = self._target(target_email)
        account.password_hash = self.hasher.hash(new_password)
        self.repo.save_account(account)
        logger.info("Admin %s reset password for id=%s", caller.user_id, account.id)

    def delete_user(self, caller: Identity, target_email: Optional[str]) -> None:
        require_admin(caller)
        if not target_email:
            raise ValidationError("targetEmail required")
        account = self._target(target_email)
        self.repo.delete_account(account)
        logger.info("Admin %s deleted id=%s", caller.user_id, account.id)

    def set_role(self, caller: Identity, target_email: Optional[str], role: Optional[str]) -> Role:
        require_admin(caller)
        if not target_email or not role:
            raise ValidationError("targetEmail and role required")
        new_role = parse_role(role)
        account = self._target(target_email)
        account.role = new_role
        self.repo.save_account(account)
        logger.info("Admin %s set role=%s for id=%s", caller.user_id, new_role.value, account.id)
        return new_role

    def set_plan(self, caller: Identity, target_email: Optional[str], plan: Optional[str]) -> Plan:
        require_admin(caller)
        if not target_email or not plan:
            raise ValidationError("targetEmail and plan required")
        new_plan = parse_plan(plan)
        account = self._target(target_email)
        account.plan = new_plan
        self.repo.save_account(account)
        logger.info("Admin %s set plan=%s for id=%s", caller.user_id, new_plan.value, account.id)
        return new_plan

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    def claim_self_admin(self, caller: Identity) -> Session:
        """Promote the caller to admin if, and only if, no admin exists yet.

        Returns a new session carrying role=admin. The caller's existing
        session keeps reporting role=user.

        Raises:
            ConflictError: an admin already exists, or another claim holds the lock.
            NotFoundError: the caller's account record is gone.
        """
        with self._bootstrap_lock.hold("Admin claim already in progress"):
            if any(a.role == Role.admin for a in self.repo.list_accounts()):
                raise ConflictError("An admin already exists")
            account = self.repo.get_account(caller.email)
            if account is None or account.id != caller.user_id:
                raise NotFoundError("Account not found")
            account.role = Role.admin
            self.repo.save_account(account)
        logger.info("Bootstrap admin claimed by id=%s", account.id)
        return self.issuer.issue(account)

    def _target(self, email: str) -> Account:
        account = self.repo.get_account(email)
        if account is None:
            raise NotFoundError("No account found for this email")
        return account
