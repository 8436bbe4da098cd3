"""Tagged error taxonomy shared by the store, security and domain layers.

Every failure an operation can report is an :class:`AuthError` subclass whose
``kind`` the HTTP layer switches on. Messages are stable and safe to show to
clients; ``detail`` carries structured extras (attempts remaining, lock
minutes, colliding field) that are merged into the error envelope.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    conflict = "conflict"
    validation_failed = "validation_failed"
    unauthorized = "unauthorized"
    forbidden = "forbidden"
    not_found = "not_found"
    rate_limited = "rate_limited"
    store_unavailable = "store_unavailable"


class AuthError(Exception):
    """Base class for every failure surfaced by the auth core."""

    kind: ErrorKind = ErrorKind.validation_failed

    def __init__(self, message: str, *, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class ConflictError(AuthError):
    """A unique identity field (username or email) is already taken."""

    kind = ErrorKind.conflict

    def __init__(self, message: str, *, field: str, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message, detail={"field": field, **(detail or {})})
        self.field = field


class ValidationFailedError(AuthError):
    kind = ErrorKind.validation_failed


class UnauthorizedError(AuthError):
    kind = ErrorKind.unauthorized


class ForbiddenError(AuthError):
    kind = ErrorKind.forbidden


class NotFoundError(AuthError):
    kind = ErrorKind.not_found


class RateLimitedError(AuthError):
    kind = ErrorKind.rate_limited


class StoreUnavailableError(AuthError):
    """The credential store could not be reached or timed out."""

    kind = ErrorKind.store_unavailable


__all__ = [
    "AuthError",
    "ConflictError",
    "ErrorKind",
    "ForbiddenError",
    "NotFoundError",
    "RateLimitedError",
    "StoreUnavailableError",
    "UnauthorizedError",
    "ValidationFailedError",
]
