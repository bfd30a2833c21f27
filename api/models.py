"""
API request and response models for the EquitySight auth endpoint.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

POST bodies are a discriminated union on "action": each Action member has
exactly one request model, and Pydantic rejects any other action value before
a handler runs. JSON field names are camelCase (what browser clients send);
Python attributes are snake_case.

Request fields are all Optional. "Email and password required" and
similar messages are produced by the services, so a missing field yields the
same user-facing error whether it came over HTTP or from another caller.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import Account, Identity, Session

# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class Action(str, Enum):
    signup = "signup"
    signin = "signin"
    verify = "verify"
    signout = "signout"
    get_profile = "getProfile"
    set_profile = "setProfile"
    change_password = "changePassword"
    delete_account = "deleteAccount"
    admin_list_users = "adminListUsers"
    admin_reset_password = "adminResetPassword"
    admin_delete_user = "adminDeleteUser"
    admin_set_role = "adminSetRole"
    admin_set_plan = "adminSetPlan"
    set_self_admin = "setSelfAdmin"


class _Request(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignupRequest(_Request):
    action: Literal["signup"]
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    plan: Optional[str] = None


class SigninRequest(_Request):
    action: Literal["signin"]
    email: Optional[str] = None
    password: Optional[str] = None


class VerifyRequest(_Request):
    action: Literal["verify"]
    token: Optional[str] = None


class SignoutRequest(_Request):
    action: Literal["signout"]
    token: Optional[str] = None


class GetProfileRequest(_Request):
    action: Literal["getProfile"]


class SetProfileRequest(_Request):
    action: Literal["setProfile"]
    profile: Optional[dict[str, Any]] = None


class ChangePasswordRequest(_Request):
    action: Literal["changePassword"]
    current_password: Optional[str] = None
    new_password: Optional[str] = None


class DeleteAccountRequest(_Request):
    action: Literal["deleteAccount"]
    password: Optional[str] = None


class AdminListUsersRequest(_Request):
    action: Literal["adminListUsers"]


class AdminResetPasswordRequest(_Request):
    action: Literal["adminResetPassword"]
    target_email: Optional[str] = None
    new_password: Optional[str] = None


class AdminDeleteUserRequest(_Request):
    action: Literal["adminDeleteUser"]
    target_email: Optional[str] = None


class AdminSetRoleRequest(_Request):
    action: Literal["adminSetRole"]
    target_email: Optional[str] = None
    role: Optional[str] = None


class AdminSetPlanRequest(_Request):
    action: Literal["adminSetPlan"]
    target_email: Optional[str] = None
    plan: Optional[str] = None


class SetSelfAdminRequest(_Request):
    action: Literal["setSelfAdmin"]


AuthRequest = Annotated[
    Union[
        SignupRequest,
        SigninRequest,
        VerifyRequest,
        SignoutRequest,
        GetProfileRequest,
        SetProfileRequest,
        ChangePasswordRequest,
        DeleteAccountRequest,
        AdminListUsersRequest,
        AdminResetPasswordRequest,
        AdminDeleteUserRequest,
        AdminSetRoleRequest,
        AdminSetPlanRequest,
        SetSelfAdminRequest,
    ],
    Field(discriminator="action"),
]


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class _Response(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    ok: bool = True

    def body(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class OkResponse(_Response):
    pass


class SignupResponse(_Response):
    token: str
    id: str
    name: str
    email: str
    plan: str

    @classmethod
    def from_session(cls, session: Session) -> "SignupResponse":
        ident = session.identity
        return cls(token=session.token, id=ident.user_id, name=ident.name, email=ident.email, plan=ident.plan.value)


class SigninResponse(SignupResponse):
    role: str

    @classmethod
    def from_session(cls, session: Session) -> "SigninResponse":
        ident = session.identity
        return cls(
            token=session.token,
            id=ident.user_id,
            name=ident.name,
            email=ident.email,
            plan=ident.plan.value,
            role=ident.role.value,
        )


class IdentityResponse(_Response):
    """Body for the verify action and for GET with a bearer header."""

    user_id: str
    email: str
    name: str
    plan: str
    role: str
    expires: int

    @classmethod
    def from_session(cls, session: Session) -> "IdentityResponse":
        return cls.from_identity(session.identity, session.expires)

    @classmethod
    def from_identity(cls, ident: Identity, expires: int) -> "IdentityResponse":
        return cls(
            user_id=ident.user_id,
            email=ident.email,
            name=ident.name,
            plan=ident.plan.value,
            role=ident.role.value,
            expires=expires,
        )


class ProfileResponse(_Response):
    profile: dict[str, Any]


class UserSummary(BaseModel):
    """One row in adminListUsers. Never carries the password digest."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    email: str
    name: str
    plan: str
    role: str
    created_at: int

    @classmethod
    def from_account(cls, account: Account) -> "UserSummary":
        return cls(
            id=account.id,
            email=account.email,
            name=account.name,
            plan=account.plan.value,
            role=account.role.value,
            created_at=account.created_at,
        )


class UserListResponse(_Response):
    users: list[UserSummary]


class PlanResponse(_Response):
    plan: str


class AdminClaimResponse(_Response):
    token: str
    role: str


class ErrorResponse(BaseModel):
    """Failure envelope shared by every error path."""

    ok: bool = False
    error: str


class HealthResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
