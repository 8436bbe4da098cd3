from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from schemas import AccountProfile, Identity, Role


@dataclass(slots=True)
class Account:
    """Aggregate root for a persisted user identity and its security state."""

    account_id: str
    username: str
    email: str
    first_name: str
    last_name: str
    office_id: str
    password_hash: str
    role: Role = Role.employee
    is_active: bool = True
    failed_login_attempts: int = 0
    account_locked_until: datetime | None = None
    password_changed_at: datetime | None = None
    refresh_token_hash: str | None = None
    last_login: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_profile(self) -> AccountProfile:
        """Project the account onto its public profile (no password material)."""
        return AccountProfile(
            id=self.account_id,
            first_name=self.first_name,
            last_name=self.last_name,
            username=self.username,
            email=self.email,
            office_id=self.office_id,
            role=self.role,
            is_active=self.is_active,
            last_login=self.last_login,
            created_at=self.created_at,
        )

    def to_identity(self) -> Identity:
        return Identity(id=self.account_id, username=self.username, email=self.email, role=self.role)
