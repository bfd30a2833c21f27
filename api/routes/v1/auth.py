"""
api/routes/v1/auth.py -- The single auth endpoint, dispatched by action.

Routes (mounted under /api/v1 and, for existing browser clients, under
/.netlify/functions):
  GET  /auth   -- verified identity for the Authorization: Bearer header
  POST /auth   -- JSON body {"action": ..., ...}; see api.models.Action

Dispatch:
  The body is validated against the AuthRequest discriminated union, then
  routed through _HANDLERS, which maps every Action member to exactly one
  handler. The module refuses to import if a member has no handler, so an
  action can never fall through to an "unknown action" branch at runtime.

Auth policy:
  signup, signin, verify, signout     -- public (verify/signout take the token in the body)
  getProfile .. deleteAccount         -- bearer session
  admin*                              -- bearer session with role=admin (checked by the service)
  setSelfAdmin                        -- bearer session; succeeds only while no admin exists

Handlers are plain functions run in the threadpool because every service call
blocks on the backing store.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool

from api.models import (
    Action,
    AdminClaimResponse,
    AuthRequest,
    IdentityResponse,
    OkResponse,
    PlanResponse,
    ProfileResponse,
    SigninResponse,
    SignupResponse,
    UserListResponse,
    UserSummary,
)
from auth.dependencies import AuthServices, get_auth_services, get_current_session
from auth.models import Session
from core.errors import ValidationError

logger = logging.getLogger("equitysight.api")

router = APIRouter()

_request_adapter: TypeAdapter = TypeAdapter(AuthRequest)

_UNKNOWN_ACTION_ERRORS = {"union_tag_invalid", "union_tag_not_found"}


# ---------------------------------------------------------------------------
# Body parsing
# ---------------------------------------------------------------------------


def parse_auth_request(raw: bytes) -> Any:
    """Decode and validate a POST body. Raises ValidationError with a client-safe message."""
    try:
        data = json.loads(raw or b"{}")
    except ValueError:
        raise ValidationError("Bad request") from None
    try:
        return _request_adapter.validate_python(data)
    except PydanticValidationError as e:
        if any(err["type"] in _UNKNOWN_ACTION_ERRORS for err in e.errors()):
            raise ValidationError("Unknown action") from None
        raise ValidationError("Invalid request") from None


# ---------------------------------------------------------------------------
# Handlers -- one per Action
# ---------------------------------------------------------------------------

Handler = Callable[[AuthServices, Request, Any], dict]


def _signup(svc: AuthServices, request: Request, body) -> dict:
    session = svc.accounts.signup(body.email, body.password, body.name, body.plan)
    return SignupResponse.from_session(session).body()


def _signin(svc: AuthServices, request: Request, body) -> dict:
    session = svc.accounts.signin(body.email, body.password)
    return SigninResponse.from_session(session).body()


def _verify(svc: AuthServices, request: Request, body) -> dict:
    return IdentityResponse.from_session(svc.sessions.verify_token(body.token)).body()


def _signout(svc: AuthServices, request: Request, body) -> dict:
    svc.accounts.signout(body.token)
    return OkResponse().body()


def _get_profile(svc: AuthServices, request: Request, body) -> dict:
    session = get_current_session(request)
    return ProfileResponse(profile=svc.profiles.get(session.identity.user_id)).body()


def _set_profile(svc: AuthServices, request: Request, body) -> dict:
    session = get_current_session(request)
    svc.profiles.set(session.identity.user_id, body.profile)
    return OkResponse().body()


def _change_password(svc: AuthServices, request: Request, body) -> dict:
    session = get_current_session(request)
    svc.accounts.change_password(session.identity, body.current_password, body.new_password)
    return OkResponse().body()


def _delete_account(svc: AuthServices, request: Request, body) -> dict:
    session = get_current_session(request)
    svc.accounts.delete_account(session.identity, session.token, body.password)
    return OkResponse().body()


def _admin_list_users(svc: AuthServices, request: Request, body) -> dict:
    caller = get_current_session(request).identity
    users = [UserSummary.from_account(a) for a in svc.admin.list_users(caller)]
    return UserListResponse(users=users).body()


def _admin_reset_password(svc: AuthServices, request: Request, body) -> dict:
    caller = get_current_session(request).identity
    svc.admin.reset_password(caller, body.target_email, body.new_password)
    return OkResponse().body()


def _admin_delete_user(svc: AuthServices, request: Request, body) -> dict:
    caller = get_current_session(request).identity
    svc.admin.delete_user(caller, body.target_email)
    return OkResponse().body()


def _admin_set_role(svc: AuthServices, request: Request, body) -> dict:
    caller = get_current_session(request).identity
    svc.admin.set_role(caller, body.target_email, body.role)
    return OkResponse().body()


def _admin_set_plan(svc: AuthServices, request: Request, body) -> dict:
    caller = get_current_session(request).identity
    plan = svc.admin.set_plan(caller, body.target_email, body.plan)
    return PlanResponse(plan=plan.value).body()


def _set_self_admin(svc: AuthServices, request: Request, body) -> dict:
    caller = get_current_session(request).identity
    session = svc.admin.claim_self_admin(caller)
    return AdminClaimResponse(token=session.token, role=session.identity.role.value).body()


_HANDLERS: dict[Action, Handler] = {
    Action.signup: _signup,
    Action.signin: _signin,
    Action.verify: _verify,
    Action.signout: _signout,
    Action.get_profile: _get_profile,
    Action.set_profile: _set_profile,
    Action.change_password: _change_password,
    Action.delete_account: _delete_account,
    Action.admin_list_users: _admin_list_users,
    Action.admin_reset_password: _admin_reset_password,
    Action.admin_delete_user: _admin_delete_user,
    Action.admin_set_role: _admin_set_role,
    Action.admin_set_plan: _admin_set_plan,
    Action.set_self_admin: _set_self_admin,
}

_missing = set(Action) - set(_HANDLERS)
if _missing:
    raise RuntimeError(f"No handler registered for actions: {sorted(a.value for a in _missing)}")


def dispatch(svc: AuthServices, request: Request, body) -> dict:
    return _HANDLERS[Action(body.action)](svc, request, body)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/auth", response_model=IdentityResponse)
def whoami(session: Session = Depends(get_current_session)) -> JSONResponse:
    """Return the verified identity behind the Authorization header."""
    return JSONResponse(content=IdentityResponse.from_session(session).body())


@router.post("/auth")
async def auth_action(request: Request) -> JSONResponse:
    """Run one auth action. Every failure is returned as {ok: false, error}."""
    body = parse_auth_request(await request.body())
    svc = get_auth_services(request)
    result = await run_in_threadpool(dispatch, svc, request, body)
    resp = JSONResponse(content=result)
    resp.headers["Cache-Control"] = "no-store"
    return resp
