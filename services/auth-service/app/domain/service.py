"""Session authenticator orchestrating hashing, lockout, persistence, and tokens."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import NoReturn

from pydantic import EmailStr, TypeAdapter, ValidationError

from schemas import AccountProfile, Identity, Role

from .account import Account
from .contracts import Clock, CredentialStore, NewAccount, RegisterInput, SystemClock
from .lockout import LockoutPolicy
from ..errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationFailedError,
)
from ..security.passwords import PasswordHasher
from ..security.tokens import (
    InvalidTokenError,
    TokenIssuer,
    TokenKind,
    hash_refresh_token,
    refresh_token_matches,
)

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"

_EMAIL_ADAPTER = TypeAdapter(EmailStr)


@dataclass(slots=True)
class AuthSession:
    """Profile plus the access/refresh token pair returned to API consumers."""

    account: AccountProfile
    access_token: str
    access_expires_in: int
    refresh_token: str
    refresh_expires_in: int


@dataclass(slots=True)
class AccessGrant:
    access_token: str
    access_expires_in: int


def _normalise(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip().lower()
    return value or None


def _is_valid_email(value: str) -> bool:
    try:
        _EMAIL_ADAPTER.validate_python(value)
    except ValidationError:
        return False
    return True


class SessionAuthenticator:
    """Account workflows: register, login, refresh, logout, and access verification.

    The read-check-write sequence in :meth:`login` is not wrapped in a
    transaction. Two concurrent failed logins for the same account may both
    read the same ``failed_login_attempts`` and the last write wins, so the
    lock can trigger one attempt late. That slack is accepted.
    """

    def __init__(
        self,
        store: CredentialStore,
        tokens: TokenIssuer,
        hasher: PasswordHasher,
        *,
        lockout: LockoutPolicy | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Store dependencies used to orchestrate persistence and token issuance."""
        self._store = store
        self._tokens = tokens
        self._hasher = hasher
        self._lockout = lockout or LockoutPolicy()
        self._clock = clock or SystemClock()

    def register(self, payload: RegisterInput) -> AuthSession:
        """Create an account and open its first session."""
        username = _normalise(payload.username)
        email = _normalise(payload.email)
        if not username or not email:
            raise ValidationFailedError("Username and email are required")
        if not _is_valid_email(email):
            raise ValidationFailedError("Please provide a valid email", detail={"field": "email"})

        existing = self._store.find_by_email_or_username(email, username)
        if existing is not None:
            if existing.email == email:
                raise ConflictError("User with this email already exists", field="email")
            raise ConflictError("Username already taken", field="username")

        password_hash = self._hasher.hash(payload.password)
        account = self._store.insert(
            NewAccount(
                username=username,
                email=email,
                first_name=payload.first_name.strip(),
                last_name=payload.last_name.strip(),
                office_id=payload.office_id.strip(),
                password_hash=password_hash,
                role=payload.role or Role.employee,
            )
        )
        logger.info("account %s registered with role %s", account.account_id, account.role.value)
        return self._open_session(account)

    def login(
        self,
        password: str,
        *,
        email: str | None = None,
        username: str | None = None,
    ) -> AuthSession:
        """Authenticate by email or username and open a new session.

        Lookup failures and wrong passwords share one message so callers cannot
        tell which identifier matched.
        """
        email = _normalise(email)
        username = _normalise(username)
        if email is None and username is None:
            raise UnauthorizedError(INVALID_CREDENTIALS)

        account = self._store.find_by_email_or_username(email, username)
        if account is None:
            raise UnauthorizedError(INVALID_CREDENTIALS)

        now = self._clock.now()
        self._ensure_not_locked(account, now)
        if not account.is_active:
            raise ForbiddenError("Your account has been deactivated. Please contact administrator.")

        if not self._hasher.verify(password, account.password_hash):
            self._record_failure(account, now, INVALID_CREDENTIALS)

        account = self._store.update_fields(
            account.account_id,
            failed_login_attempts=0,
            account_locked_until=None,
            last_login=now,
        )
        logger.info("account %s logged in", account.account_id)
        return self._open_session(account)

    def refresh_access(self, refresh_token: str) -> AccessGrant:
        """Exchange the account's live refresh token for a new access token.

        The refresh token itself is not rotated here; it stays valid until the
        next login, password change, logout, or deactivation overwrites it.
        """
        try:
            claims = self._tokens.verify(refresh_token, TokenKind.refresh)
        except InvalidTokenError as exc:
            raise UnauthorizedError("Invalid or expired refresh token") from exc

        account = self._store.find_by_id(claims.subject)
        if account is None or not refresh_token_matches(refresh_token, account.refresh_token_hash):
            raise UnauthorizedError("Invalid refresh token")

        issued = self._tokens.issue_access(
            account_id=account.account_id,
            username=account.username,
            email=account.email,
            role=account.role.value,
        )
        return AccessGrant(access_token=issued.token, access_expires_in=issued.expires_in)

    def logout(self, account_id: str) -> None:
        """Clear the stored refresh token. A missing account is already logged out."""
        try:
            self._store.update_fields(account_id, refresh_token_hash=None)
        except NotFoundError:
            logger.info("logout for unknown account %s treated as no-op", account_id)
            return
        logger.info("account %s logged out", account_id)

    def verify_access(self, access_token: str) -> Identity:
        """Resolve an access token to the live account it names."""
        try:
            claims = self._tokens.verify(access_token, TokenKind.access)
        except InvalidTokenError as exc:
            if exc.expired:
                raise UnauthorizedError("Token expired. Please log in again.") from exc
            raise UnauthorizedError("Invalid token.") from exc

        account = self._store.find_by_id(claims.subject)
        if account is None:
            raise UnauthorizedError("User no longer exists.")
        if not account.is_active:
            raise ForbiddenError("Your account has been deactivated.")
        if self._password_changed_after(account, claims.issued_at.timestamp()):
            raise UnauthorizedError(
                "Password recently changed. Please log in again.",
                detail={"reason": "stale_token"},
            )
        return account.to_identity()

    def get_profile(self, account_id: str) -> AccountProfile:
        account = self._store.find_by_id(account_id)
        if account is None:
            raise NotFoundError("User not found")
        return account.to_profile()

    def list_accounts(self) -> list[AccountProfile]:
        return [account.to_profile() for account in self._store.list_accounts()]

    def change_password(
        self, account_id: str, current_password: str, new_password: str
    ) -> AuthSession:
        """Rotate the password and open a fresh session.

        Access tokens issued before the change become stale and the previous
        refresh token is overwritten by the new session. A wrong current
        password counts toward the same lockout as a failed login.
        """
        account = self._store.find_by_id(account_id)
        if account is None:
            raise NotFoundError("User not found")
        now = self._clock.now()
        self._ensure_not_locked(account, now)
        if not self._hasher.verify(current_password, account.password_hash):
            self._record_failure(account, now, "Current password is incorrect")

        account = self._store.update_fields(
            account_id,
            password_hash=self._hasher.hash(new_password),
            password_changed_at=now,
            failed_login_attempts=0,
            account_locked_until=None,
        )
        logger.info("account %s changed password", account_id)
        return self._open_session(account)

    def set_active(self, account_id: str, active: bool) -> AccountProfile:
        """Activate or deactivate an account; deactivation ends its session."""
        fields: dict[str, object] = {"is_active": active}
        if not active:
            fields["refresh_token_hash"] = None
        account = self._store.update_fields(account_id, **fields)
        logger.info("account %s %s", account_id, "activated" if active else "deactivated")
        return account.to_profile()

    def _ensure_not_locked(self, account: Account, now: datetime) -> None:
        if self._lockout.is_locked(account, now):
            minutes = self._lockout.minutes_remaining(account, now)
            raise ForbiddenError(
                f"Account is locked. Please try again in {minutes} minutes.",
                detail={"minutesRemaining": minutes},
            )

    def _record_failure(self, account: Account, now: datetime, message: str) -> NoReturn:
        """Persist one more failed password check and raise the matching error."""
        outcome = self._lockout.register_failure(account, now)
        if outcome.locked:
            self._store.update_fields(
                account.account_id,
                failed_login_attempts=outcome.failed_attempts,
                account_locked_until=outcome.locked_until,
            )
            logger.warning(
                "account %s locked after %d failed attempts",
                account.account_id,
                outcome.failed_attempts,
            )
            raise ForbiddenError(
                "Account locked due to multiple failed login attempts. "
                f"Please try again after {self._lockout.lock_minutes} minutes.",
                detail={"minutesRemaining": self._lockout.lock_minutes},
            )
        self._store.update_fields(account.account_id, failed_login_attempts=outcome.failed_attempts)
        raise UnauthorizedError(message, detail={"attemptsRemaining": outcome.attempts_remaining})

    def _open_session(self, account: Account) -> AuthSession:
        access = self._tokens.issue_access(
            account_id=account.account_id,
            username=account.username,
            email=account.email,
            role=account.role.value,
        )
        refresh = self._tokens.issue_refresh(account_id=account.account_id)
        # single session slot: the new refresh token supersedes any previous one
        account = self._store.update_fields(
            account.account_id, refresh_token_hash=hash_refresh_token(refresh.token)
        )
        return AuthSession(
            account=account.to_profile(),
            access_token=access.token,
            access_expires_in=access.expires_in,
            refresh_token=refresh.token,
            refresh_expires_in=refresh.expires_in,
        )

    @staticmethod
    def _password_changed_after(account: Account, issued_at: float) -> bool:
        if account.password_changed_at is None:
            return False
        # tokens carry whole-second iat; compare at the same resolution
        return int(issued_at) < int(account.password_changed_at.timestamp())
