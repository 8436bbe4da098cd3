"""HTTP route definitions for the auth service."""

from __future__ import annotations

from typing import Callable

from fastapi import APIRouter, Depends, Header, Request, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel

from schemas import AccountProfile, Identity, Role

from .. import metrics
from ..domain.contracts import RegisterInput
from ..domain.service import AuthSession, SessionAuthenticator
from ..errors import AuthError
from ..security.guard import RequestAuthenticationGuard, authorize
from ..security.passwords import PASSWORD_MIN_LENGTH
from ..security.rate_limiter import RateLimiter, enforce

router = APIRouter(prefix="/api/auth")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(_CamelModel):
    """Payload accepted when registering a new account."""

    first_name: str = Field(..., min_length=2)
    last_name: str = Field(..., min_length=2)
    username: str = Field(..., min_length=3, pattern=r"^[A-Za-z0-9_]+$")
    email: EmailStr
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH)
    office_id: str = Field(..., min_length=1)
    role: Role | None = None


class LoginRequest(_CamelModel):
    """Credentials for login; either ``email`` or ``username`` identifies the account."""

    email: EmailStr | None = None
    username: str | None = Field(default=None, min_length=1)
    password: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def require_identifier(self) -> "LoginRequest":
        if not self.email and not self.username:
            raise ValueError("email or username is required")
        return self


class RefreshTokenRequest(_CamelModel):
    refresh_token: str = Field(..., min_length=1)


class ChangePasswordRequest(_CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=PASSWORD_MIN_LENGTH)


class AccountStatusRequest(_CamelModel):
    is_active: bool


class SessionData(_CamelModel):
    user: AccountProfile
    access_token: str
    refresh_token: str
    expires_in: int
    refresh_expires_in: int

    @classmethod
    def from_domain(cls, session: AuthSession) -> "SessionData":
        """Build the response payload from a domain session."""
        return cls(
            user=session.account,
            access_token=session.access_token,
            refresh_token=session.refresh_token,
            expires_in=session.access_expires_in,
            refresh_expires_in=session.refresh_expires_in,
        )


class SessionResponse(_CamelModel):
    success: bool = True
    message: str
    data: SessionData


class AccessTokenData(_CamelModel):
    access_token: str
    expires_in: int


class AccessTokenResponse(_CamelModel):
    success: bool = True
    data: AccessTokenData


class UserData(_CamelModel):
    user: AccountProfile


class UserResponse(_CamelModel):
    success: bool = True
    data: UserData


class UsersData(_CamelModel):
    users: list[AccountProfile]


class UsersResponse(_CamelModel):
    success: bool = True
    data: UsersData


class MessageResponse(_CamelModel):
    success: bool = True
    message: str


def get_authenticator(request: Request) -> SessionAuthenticator:
    """Resolve the `SessionAuthenticator` stored on the FastAPI application state."""
    authenticator: SessionAuthenticator = request.app.state.authenticator
    return authenticator


def get_guard(request: Request) -> RequestAuthenticationGuard:
    guard: RequestAuthenticationGuard = request.app.state.guard
    return guard


def get_rate_limiter(request: Request) -> RateLimiter:
    limiter: RateLimiter = request.app.state.rate_limiter
    return limiter


def get_current_identity(
    authorization: str | None = Header(default=None),
    guard: RequestAuthenticationGuard = Depends(get_guard),
) -> Identity:
    """Dependency: require a valid bearer access token for a live account."""
    return guard.authenticate(authorization)


def require_roles(*roles: Role) -> Callable[..., Identity]:
    """Dependency factory gating a route to the given roles."""

    def dependency(identity: Identity = Depends(get_current_identity)) -> Identity:
        return authorize(identity, roles)

    return dependency


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@router.post("/register", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
def register(
    request: Request,
    payload: RegisterRequest,
    authenticator: SessionAuthenticator = Depends(get_authenticator),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> SessionResponse:
    """Create an account and return its first token pair."""
    enforce(limiter, "register", _client_key(request))
    session = authenticator.register(
        RegisterInput(
            first_name=payload.first_name,
            last_name=payload.last_name,
            username=payload.username,
            email=payload.email,
            password=payload.password,
            office_id=payload.office_id,
            role=payload.role,
        )
    )
    metrics.REGISTRATIONS.inc()
    return SessionResponse(message="User registered successfully", data=SessionData.from_domain(session))


@router.post("/login", response_model=SessionResponse)
def login(
    request: Request,
    payload: LoginRequest,
    authenticator: SessionAuthenticator = Depends(get_authenticator),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> SessionResponse:
    """Authenticate by email or username and open a new session."""
    enforce(limiter, "login-client", _client_key(request))
    enforce(limiter, "login", payload.email or payload.username or "")
    try:
        session = authenticator.login(payload.password, email=payload.email, username=payload.username)
    except AuthError as exc:
        metrics.LOGIN_ATTEMPTS.labels(outcome=exc.kind.value).inc()
        raise
    metrics.LOGIN_ATTEMPTS.labels(outcome="success").inc()
    return SessionResponse(message="Login successful", data=SessionData.from_domain(session))


@router.post("/refresh-token", response_model=AccessTokenResponse)
def refresh_token(
    payload: RefreshTokenRequest,
    authenticator: SessionAuthenticator = Depends(get_authenticator),
) -> AccessTokenResponse:
    """Exchange the live refresh token for a new access token."""
    try:
        grant = authenticator.refresh_access(payload.refresh_token)
    except AuthError as exc:
        metrics.TOKEN_REFRESHES.labels(outcome=exc.kind.value).inc()
        raise
    metrics.TOKEN_REFRESHES.labels(outcome="success").inc()
    return AccessTokenResponse(
        data=AccessTokenData(access_token=grant.access_token, expires_in=grant.access_expires_in)
    )


@router.post("/logout", response_model=MessageResponse)
def logout(
    identity: Identity = Depends(get_current_identity),
    authenticator: SessionAuthenticator = Depends(get_authenticator),
) -> MessageResponse:
    authenticator.logout(identity.id)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse)
def current_user(
    identity: Identity = Depends(get_current_identity),
    authenticator: SessionAuthenticator = Depends(get_authenticator),
) -> UserResponse:
    """Return the profile of the authenticated account."""
    return UserResponse(data=UserData(user=authenticator.get_profile(identity.id)))


@router.get("/users", response_model=UsersResponse)
def list_users(
    _identity: Identity = Depends(require_roles(Role.admin, Role.owner, Role.hr)),
    authenticator: SessionAuthenticator = Depends(get_authenticator),
) -> UsersResponse:
    return UsersResponse(data=UsersData(users=authenticator.list_accounts()))


@router.post("/change-password", response_model=SessionResponse)
def change_password(
    payload: ChangePasswordRequest,
    identity: Identity = Depends(get_current_identity),
    authenticator: SessionAuthenticator = Depends(get_authenticator),
) -> SessionResponse:
    """Rotate the caller's password; older access tokens stop working."""
    session = authenticator.change_password(identity.id, payload.current_password, payload.new_password)
    return SessionResponse(message="Password changed successfully", data=SessionData.from_domain(session))


@router.patch("/users/{account_id}/status", response_model=UserResponse)
def set_account_status(
    account_id: str,
    payload: AccountStatusRequest,
    _identity: Identity = Depends(require_roles(Role.admin, Role.owner)),
    authenticator: SessionAuthenticator = Depends(get_authenticator),
) -> UserResponse:
    """Activate or deactivate an account (administrators only)."""
    profile = authenticator.set_active(account_id, payload.is_active)
    return UserResponse(data=UserData(user=profile))
