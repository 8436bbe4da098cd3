"""Utilities for issuing and validating access and refresh JWTs."""

from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import jwt

from ..config import Settings
from ..domain.contracts import Clock, SystemClock
from ..errors import UnauthorizedError

_ALGORITHM = "HS256"


class TokenKind(str, Enum):
    access = "access"
    refresh = "refresh"


class InvalidTokenError(UnauthorizedError):
    """Raised when a token fails signature, kind, issuer, or expiry checks."""

    def __init__(self, message: str, *, expired: bool = False) -> None:
        super().__init__(message)
        self.expired = expired


@dataclass(frozen=True, slots=True)
class IssuedToken:
    token: str
    expires_in: int


@dataclass(frozen=True, slots=True)
class TokenClaims:
    """Verified claims reconstructed from a token."""

    subject: str
    kind: TokenKind
    issued_at: datetime
    expires_at: datetime
    username: str | None = None
    email: str | None = None
    role: str | None = None


class TokenIssuer:
    """Signs and verifies the two session token kinds with separate secrets."""

    def __init__(
        self,
        *,
        access_secret: str,
        refresh_secret: str,
        issuer: str,
        access_ttl_seconds: int,
        refresh_ttl_seconds: int,
        clock: Clock | None = None,
    ) -> None:
        if access_secret == refresh_secret:
            raise ValueError("access and refresh secrets must differ")
        self._secrets = {TokenKind.access: access_secret, TokenKind.refresh: refresh_secret}
        self._ttls = {TokenKind.access: access_ttl_seconds, TokenKind.refresh: refresh_ttl_seconds}
        self._issuer = issuer
        self._clock = clock or SystemClock()

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock | None = None) -> "TokenIssuer":
        return cls(
            access_secret=settings.jwt_access_secret,
            refresh_secret=settings.jwt_refresh_secret,
            issuer=settings.jwt_issuer,
            access_ttl_seconds=settings.access_ttl_seconds,
            refresh_ttl_seconds=settings.refresh_ttl_seconds,
            clock=clock,
        )

    @property
    def access_ttl_seconds(self) -> int:
        return self._ttls[TokenKind.access]

    @property
    def refresh_ttl_seconds(self) -> int:
        return self._ttls[TokenKind.refresh]

    def issue_access(self, *, account_id: str, username: str, email: str, role: str) -> IssuedToken:
        """Create a signed access token describing an authenticated account.

        Parameters
        ----------
        account_id:
            Account identifier embedded in the ``sub`` claim.
        username, email, role:
            Identity claims downstream services may read without a store lookup.

        Returns
        -------
        IssuedToken
            The encoded JWT and its TTL in seconds.
        """
        return self._issue(
            TokenKind.access,
            account_id,
            {"username": username, "email": email, "role": role},
        )

    def issue_refresh(self, *, account_id: str) -> IssuedToken:
        """Create a signed refresh token; ``jti`` keeps same-second issues distinct."""
        return self._issue(TokenKind.refresh, account_id, {"jti": secrets.token_urlsafe(16)})

    def verify(self, token: str, kind: TokenKind) -> TokenClaims:
        """Decode ``token`` with the secret for ``kind`` and return its claims.

        Raises
        ------
        InvalidTokenError
            When the signature, issuer, token kind, or required claims are wrong,
            or when the token has expired according to the injected clock.
        """
        try:
            payload = jwt.decode(
                token,
                self._secrets[kind],
                algorithms=[_ALGORITHM],
                issuer=self._issuer,
                # expiry is checked below against the injected clock
                options={
                    "require": ["sub", "iat", "exp", "iss"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.PyJWTError as exc:
            raise InvalidTokenError("invalid token") from exc

        if payload.get("token_type") != kind.value:
            raise InvalidTokenError("invalid token")
        try:
            issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError) as exc:
            raise InvalidTokenError("invalid token") from exc
        if expires_at <= self._clock.now():
            raise InvalidTokenError("token expired", expired=True)

        return TokenClaims(
            subject=str(payload["sub"]),
            kind=kind,
            issued_at=issued_at,
            expires_at=expires_at,
            username=payload.get("username"),
            email=payload.get("email"),
            role=payload.get("role"),
        )

    def _issue(self, kind: TokenKind, subject: str, extra: dict[str, Any]) -> IssuedToken:
        now = int(self._clock.now().timestamp())
        expires_in = self._ttls[kind]
        payload: dict[str, Any] = {
            "iss": self._issuer,
            "sub": subject,
            "token_type": kind.value,
            "iat": now,
            "exp": now + expires_in,
            **extra,
        }
        token = jwt.encode(payload, self._secrets[kind], algorithm=_ALGORITHM)
        return IssuedToken(token=token, expires_in=expires_in)


def hash_refresh_token(token: str) -> str:
    """Return the SHA-256 hex digest stored in place of a raw refresh token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def refresh_token_matches(token: str, stored_hash: str | None) -> bool:
    """Compare a presented refresh token with the account's single stored slot."""
    if not stored_hash:
        return False
    return hmac.compare_digest(hash_refresh_token(token), stored_hash)
