"""Domain-level contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from schemas import Role

from .account import Account


@dataclass(slots=True)
class RegisterInput:
    """Inputs required to register an account; shape checks happen upstream."""

    first_name: str
    last_name: str
    username: str
    email: str
    password: str
    office_id: str
    role: Role | None = None


@dataclass(slots=True)
class NewAccount:
    """Row handed to the store on insert; the store assigns id and timestamps."""

    username: str
    email: str
    first_name: str
    last_name: str
    office_id: str
    password_hash: str
    role: Role = Role.employee
    is_active: bool = True


class CredentialStore(Protocol):
    """Persistence contract for account records.

    ``find_*`` return ``None`` when nothing matches, ``insert`` raises
    ``ConflictError`` on a unique violation, ``update_fields`` raises
    ``NotFoundError`` for a missing row, and every method raises
    ``StoreUnavailableError`` on transport failure or timeout.
    """

    def find_by_email_or_username(
        self, email: str | None, username: str | None
    ) -> Account | None: ...

    def find_by_id(self, account_id: str) -> Account | None: ...

    def insert(self, account: NewAccount) -> Account: ...

    def update_fields(self, account_id: str, **fields: Any) -> Account: ...

    def list_accounts(self) -> list[Account]: ...


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock returning timezone-aware UTC datetimes."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
