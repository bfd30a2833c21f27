"""
auth/dependencies.py -- Service wiring and FastAPI Depends() helpers.

build_auth_services() constructs every auth component from explicit values
(store, secret, TTL, clock). The app lifespan calls it once and parks the
result on app.state.auth; tests call it directly with an in-memory store and
a fake clock.

get_current_session() verifies the Authorization header and raises
AuthError (401) on any failure. Role checks live in the admin service itself.
Errors are core.errors types, not HTTPException, so every failure shares the
{ok: false, error} envelope.

Layer rule: no imports from api/. This module may import from fastapi
because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from fastapi import Request

from auth.accounts import AccountLifecycleManager
from auth.admin import RoleAdministrationService
from auth.models import Session
from auth.profiles import ProfileManager
from auth.sessions import SessionVerifier
from auth.store import AccountRepository
from auth.tokens import Clock, PasswordHasher, TokenIssuer
from store.base import KeyValueStore


@dataclass
class AuthServices:
    store: KeyValueStore
    repo: AccountRepository
    hasher: PasswordHasher
    issuer: TokenIssuer
    sessions: SessionVerifier
    accounts: AccountLifecycleManager
    admin: RoleAdministrationService
    profiles: ProfileManager


def build_auth_services(store: KeyValueStore, secret: str, ttl_seconds: int, clock: Clock = time.time) -> AuthServices:
    repo = AccountRepository(store)
    hasher = PasswordHasher(secret)
    issuer = TokenIssuer(repo, ttl_seconds, clock)
    return AuthServices(
        store=store,
        repo=repo,
        hasher=hasher,
        issuer=issuer,
        sessions=SessionVerifier(repo, clock),
        accounts=AccountLifecycleManager(repo, hasher, issuer, clock),
        admin=RoleAdministrationService(repo, hasher, issuer),
        profiles=ProfileManager(repo),
    )


def get_auth_services(request: Request) -> AuthServices:
    return request.app.state.auth


def get_current_session(request: Request) -> Session:
    """Require a valid bearer session. Raises AuthError (401) otherwise."""
    return get_auth_services(request).sessions.verify_header(request.headers.get("Authorization"))
