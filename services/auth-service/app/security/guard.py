"""Bearer-token request authentication and role checks."""

from __future__ import annotations

from typing import Iterable

from schemas import Identity, Role

from ..domain.service import SessionAuthenticator
from ..errors import ForbiddenError, UnauthorizedError

_BEARER_PREFIX = "bearer "


class RequestAuthenticationGuard:
    """Resolve an ``Authorization`` header to a live account identity."""

    def __init__(self, authenticator: SessionAuthenticator) -> None:
        self._authenticator = authenticator

    @staticmethod
    def extract_bearer(header: str | None) -> str:
        """Return the token from ``Bearer <token>``; anything else is unauthorized."""
        if not header or header[: len(_BEARER_PREFIX)].lower() != _BEARER_PREFIX:
            raise UnauthorizedError("Access denied. No token provided or invalid format.")
        token = header[len(_BEARER_PREFIX):].strip()
        if not token or " " in token:
            raise UnauthorizedError("Access denied. Token is missing.")
        return token

    def authenticate(self, header: str | None) -> Identity:
        return self._authenticator.verify_access(self.extract_bearer(header))


def authorize(identity: Identity | None, allowed_roles: Iterable[Role | str]) -> Identity:
    """Return ``identity`` when its role is one of ``allowed_roles``."""
    if identity is None:
        raise UnauthorizedError("Authentication required.")
    allowed = {Role(role) for role in allowed_roles}
    if Role(identity.role) not in allowed:
        raise ForbiddenError("You do not have permission to perform this action.")
    return identity
