"""Account-related DTOs shared across services."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, EmailStr
from pydantic.alias_generators import to_camel


class Role(str, Enum):
    employee = "employee"
    hr = "hr"
    finance = "finance"
    owner = "owner"
    admin = "admin"


class AccountProfile(BaseModel):
    """Outward view of an account. Never carries password material."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    first_name: str
    last_name: str
    username: str
    email: EmailStr
    office_id: str
    role: Role
    is_active: bool = True
    last_login: datetime | None = None
    created_at: datetime | None = None


class Identity(BaseModel):
    """Minimal authenticated principal handed to authorization checks."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    username: str
    email: EmailStr
    role: Role
