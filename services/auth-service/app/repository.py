"""Database repository for account credentials and session state."""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

import psycopg
from psycopg import errors as pg_errors
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool, PoolTimeout
from psycopg import sql

from schemas import Role

from .domain.account import Account
from .domain.contracts import NewAccount
from .errors import ConflictError, NotFoundError, StoreUnavailableError

logger = logging.getLogger(__name__)

_COLUMNS = (
    "account_id",
    "username",
    "email",
    "first_name",
    "last_name",
    "office_id",
    "password_hash",
    "role",
    "is_active",
    "failed_login_attempts",
    "account_locked_until",
    "password_changed_at",
    "refresh_token_hash",
    "last_login",
    "created_at",
    "updated_at",
)

_UPDATABLE = frozenset(
    {
        "first_name",
        "last_name",
        "office_id",
        "password_hash",
        "role",
        "is_active",
        "failed_login_attempts",
        "account_locked_until",
        "password_changed_at",
        "refresh_token_hash",
        "last_login",
    }
)

_SELECT = sql.SQL("SELECT {columns} FROM accounts").format(
    columns=sql.SQL(", ").join(sql.Identifier(column) for column in _COLUMNS)
)

_RETURNING = sql.SQL(" RETURNING {columns}").format(
    columns=sql.SQL(", ").join(sql.Identifier(column) for column in _COLUMNS)
)

# constraint name -> identity field reported to the caller
_UNIQUE_CONSTRAINTS = {
    "accounts_username_key": "username",
    "accounts_email_key": "email",
}


class AccountRepository:
    """Postgres-backed credential store."""

    def __init__(self, pool: ConnectionPool, *, timeout_seconds: float = 5.0) -> None:
        """Store the connection pool and the checkout timeout used for every call."""
        self._pool = pool
        self._timeout = timeout_seconds

    @contextmanager
    def _connection(self) -> Iterator[psycopg.Connection]:
        """Check out a connection, translating transport failures into store errors."""
        try:
            with self._pool.connection(timeout=self._timeout) as conn:
                yield conn
        except PoolTimeout as exc:
            logger.error("credential store checkout timed out after %.1fs", self._timeout)
            raise StoreUnavailableError("credential store unavailable") from exc
        except psycopg.OperationalError as exc:
            logger.error("credential store transport error: %s", exc)
            raise StoreUnavailableError("credential store unavailable") from exc

    def find_by_email_or_username(self, email: str | None, username: str | None) -> Account | None:
        """Return the first account matching either identifier, or ``None``."""
        if email is None and username is None:
            return None
        query = _SELECT + sql.SQL(" WHERE email = %s OR username = %s LIMIT 1")
        with self._connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, (email or "", username or ""))
                row = cur.fetchone()
        return self._map_record(row) if row else None

    def find_by_id(self, account_id: str) -> Account | None:
        """Fetch an account by identifier or return ``None``."""
        try:
            uuid.UUID(account_id)
        except ValueError:
            return None
        query = _SELECT + sql.SQL(" WHERE account_id = %s")
        with self._connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, (account_id,))
                row = cur.fetchone()
        return self._map_record(row) if row else None

    def insert(self, account: NewAccount) -> Account:
        """Persist a new account; unique violations surface as ``ConflictError``."""
        account_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        query = (
            sql.SQL(
                """
                INSERT INTO accounts (
                    account_id, username, email, first_name, last_name, office_id,
                    password_hash, role, is_active, created_at, updated_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """
            )
            + _RETURNING
        )
        with self._connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                try:
                    cur.execute(
                        query,
                        (
                            account_id,
                            account.username,
                            account.email,
                            account.first_name,
                            account.last_name,
                            account.office_id,
                            account.password_hash,
                            account.role.value,
                            account.is_active,
                            now,
                            now,
                        ),
                    )
                except pg_errors.UniqueViolation as exc:
                    conn.rollback()
                    field = _UNIQUE_CONSTRAINTS.get(exc.diag.constraint_name or "", "username")
                    message = (
                        "User with this email already exists"
                        if field == "email"
                        else "Username already taken"
                    )
                    raise ConflictError(message, field=field) from exc
                row = cur.fetchone()
            conn.commit()
        return self._map_record(row)

    def update_fields(self, account_id: str, **fields: Any) -> Account:
        """Apply a partial update and return the updated account."""
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"fields not updatable: {', '.join(sorted(unknown))}")
        try:
            uuid.UUID(account_id)
        except ValueError as exc:
            raise NotFoundError("User not found") from exc

        values = {
            name: value.value if isinstance(value, Role) else value
            for name, value in fields.items()
        }
        values["updated_at"] = datetime.now(timezone.utc)
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(name)) for name in values
        )
        query = (
            sql.SQL("UPDATE accounts SET {assignments} WHERE account_id = %s").format(
                assignments=assignments
            )
            + _RETURNING
        )
        with self._connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, (*values.values(), account_id))
                row = cur.fetchone()
            conn.commit()
        if not row:
            raise NotFoundError("User not found")
        return self._map_record(row)

    def list_accounts(self) -> list[Account]:
        """Return every account ordered by creation time."""
        query = _SELECT + sql.SQL(" ORDER BY created_at, account_id")
        with self._connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query)
                rows = cur.fetchall()
        return [self._map_record(row) for row in rows]

    def _map_record(self, row: dict[str, Any]) -> Account:
        """Convert a raw database row into the domain ``Account`` dataclass."""
        return Account(
            account_id=str(row["account_id"]),
            username=row["username"],
            email=row["email"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            office_id=row["office_id"],
            password_hash=row["password_hash"],
            role=Role(row["role"]),
            is_active=row["is_active"],
            failed_login_attempts=row["failed_login_attempts"],
            account_locked_until=row["account_locked_until"],
            password_changed_at=row["password_changed_at"],
            refresh_token_hash=row["refresh_token_hash"],
            last_login=row["last_login"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
