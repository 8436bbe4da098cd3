"""Translate tagged auth errors into the JSON error envelope."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..config import Settings, get_settings
from ..errors import AuthError, ErrorKind

logger = logging.getLogger(__name__)

_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.conflict: status.HTTP_409_CONFLICT,
    ErrorKind.validation_failed: status.HTTP_400_BAD_REQUEST,
    ErrorKind.unauthorized: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.forbidden: status.HTTP_403_FORBIDDEN,
    ErrorKind.not_found: status.HTTP_404_NOT_FOUND,
    ErrorKind.rate_limited: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.store_unavailable: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

_GENERIC_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.store_unavailable: "Server error, please try again later",
}


def status_for(kind: ErrorKind) -> int:
    return _STATUS_BY_KIND[kind]


def _settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def error_body(
    message: str,
    *,
    detail: dict[str, Any] | None = None,
    diagnostic: str | None = None,
    settings: Settings,
) -> dict[str, Any]:
    """Build the ``{"success": false, ...}`` envelope; diagnostics never leave production."""
    body: dict[str, Any] = {"success": False, "message": message}
    if detail:
        body.update(detail)
    if diagnostic and not settings.is_production:
        body["error"] = diagnostic
    return body


def install_error_handlers(app: FastAPI) -> None:
    """Register envelope-producing handlers for auth, validation, and unexpected errors."""

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError) -> JSONResponse:
        status_code = status_for(exc.kind)
        message = _GENERIC_MESSAGES.get(exc.kind, exc.message)
        diagnostic = None
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
            diagnostic = exc.message
        else:
            logger.info(
                "%s %s rejected (%s): %s", request.method, request.url.path, exc.kind.value, exc.message
            )
        headers = {"WWW-Authenticate": "Bearer"} if exc.kind is ErrorKind.unauthorized else None
        return JSONResponse(
            status_code=status_code,
            content=error_body(message, detail=exc.detail, diagnostic=diagnostic, settings=_settings(request)),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {
                "field": ".".join(str(part) for part in error["loc"] if part != "body"),
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=status_for(ErrorKind.validation_failed),
            content=error_body("Validation failed", detail={"errors": errors}, settings=_settings(request)),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(
                "Internal server error",
                diagnostic=f"{type(exc).__name__}: {exc}",
                settings=_settings(request),
            ),
        )
