from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api import routes
from app.api.errors import install_error_handlers
from app.config import Settings
from app.domain.account import Account
from app.domain.contracts import NewAccount, RegisterInput
from app.domain.service import SessionAuthenticator
from app.errors import ConflictError, NotFoundError, StoreUnavailableError
from app.security.guard import RequestAuthenticationGuard
from app.security.passwords import PasswordHasher
from app.security.rate_limiter import SlidingWindowRateLimiter
from app.security.tokens import TokenIssuer

PASSWORD = "Correct-Horse-42"


class FrozenClock:
    """Deterministic clock that only moves when a test advances it."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs: float) -> datetime:
        self._now += timedelta(**kwargs)
        return self._now


class FakeRepository:
    """In-memory credential store mimicking the Postgres repository contract."""

    def __init__(self, clock: FrozenClock) -> None:
        self._clock = clock
        self._accounts: dict[str, Account] = {}
        self.unavailable = False

    def _check(self) -> None:
        if self.unavailable:
            raise StoreUnavailableError("credential store unavailable")

    def find_by_email_or_username(self, email, username):
        self._check()
        for account in self._accounts.values():
            if (email and account.email == email) or (username and account.username == username):
                return replace(account)
        return None

    def find_by_id(self, account_id):
        self._check()
        account = self._accounts.get(account_id)
        return replace(account) if account else None

    def insert(self, account: NewAccount) -> Account:
        self._check()
        for existing in self._accounts.values():
            if existing.email == account.email:
                raise ConflictError("User with this email already exists", field="email")
            if existing.username == account.username:
                raise ConflictError("Username already taken", field="username")
        now = self._clock.now()
        record = Account(
            account_id=str(uuid.uuid4()),
            username=account.username,
            email=account.email,
            first_name=account.first_name,
            last_name=account.last_name,
            office_id=account.office_id,
            password_hash=account.password_hash,
            role=account.role,
            is_active=account.is_active,
            created_at=now,
            updated_at=now,
        )
        self._accounts[record.account_id] = record
        return replace(record)

    def update_fields(self, account_id, **fields):
        self._check()
        account = self._accounts.get(account_id)
        if account is None:
            raise NotFoundError("User not found")
        updated = replace(account, **fields, updated_at=self._clock.now())
        self._accounts[account_id] = updated
        return replace(updated)

    def list_accounts(self):
        self._check()
        return [replace(account) for account in self._accounts.values()]

    def get(self, account_id: str) -> Account:
        return self._accounts[account_id]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="test",
        jwt_access_secret="test-access-secret-for-unit-tests-only-0001",
        jwt_refresh_secret="test-refresh-secret-for-unit-tests-only-0002",
        jwt_issuer="auth-service-test",
        access_ttl_seconds=900,
        refresh_ttl_seconds=7 * 24 * 3600,
        bcrypt_rounds=4,
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def repository(clock) -> FakeRepository:
    return FakeRepository(clock)


@pytest.fixture
def tokens(settings, clock) -> TokenIssuer:
    return TokenIssuer.from_settings(settings, clock=clock)


@pytest.fixture
def authenticator(repository, tokens, settings, clock) -> SessionAuthenticator:
    return SessionAuthenticator(
        repository,
        tokens,
        PasswordHasher(rounds=settings.bcrypt_rounds),
        clock=clock,
    )


@pytest.fixture
def password() -> str:
    return PASSWORD


@pytest.fixture
def register_input():
    def build(username: str = "emma_employee", email: str = "emma@company.com", **overrides):
        values = dict(
            first_name="Emma",
            last_name="Brown",
            username=username,
            email=email,
            password=PASSWORD,
            office_id="dev_office_123",
        )
        values.update(overrides)
        return RegisterInput(**values)

    return build


@pytest.fixture
def api_app(settings, authenticator) -> FastAPI:
    app = FastAPI()
    app.include_router(routes.router)
    install_error_handlers(app)
    app.state.settings = settings
    app.state.authenticator = authenticator
    app.state.guard = RequestAuthenticationGuard(authenticator)
    app.state.rate_limiter = SlidingWindowRateLimiter(max_requests=100, window_seconds=60)
    return app


@pytest.fixture
def api_client(api_app):
    """Provide a FastAPI test client with isolated state."""
    with TestClient(api_app) as client:
        yield client
