"""Salted, adaptive-cost password hashing backed by bcrypt."""

from __future__ import annotations

import bcrypt

from ..errors import ValidationFailedError

PASSWORD_MIN_LENGTH = 8

# bcrypt only looks at the first 72 bytes of its input.
_BCRYPT_MAX_BYTES = 72


class PasswordHasher:
    """Hash and verify passwords with a configurable bcrypt cost factor."""

    def __init__(self, rounds: int = 12) -> None:
        if not 4 <= rounds <= 31:
            raise ValueError("bcrypt rounds must be between 4 and 31")
        self._rounds = rounds

    @property
    def rounds(self) -> int:
        return self._rounds

    def hash(self, plaintext: str) -> str:
        """Return a bcrypt hash of ``plaintext`` using a fresh random salt."""
        if len(plaintext) < PASSWORD_MIN_LENGTH:
            raise ValidationFailedError(
                f"Password must be at least {PASSWORD_MIN_LENGTH} characters",
                detail={"field": "password"},
            )
        return bcrypt.hashpw(self._encode(plaintext), bcrypt.gensalt(rounds=self._rounds)).decode("utf-8")

    def verify(self, plaintext: str, hashed: str | None) -> bool:
        """Return ``True`` when ``plaintext`` matches ``hashed``; malformed hashes never match."""
        if not hashed:
            return False
        try:
            return bcrypt.checkpw(self._encode(plaintext), hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    @staticmethod
    def _encode(plaintext: str) -> bytes:
        return plaintext.encode("utf-8")[:_BCRYPT_MAX_BYTES]
