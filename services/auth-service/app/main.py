"""FastAPI application wiring for the auth service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.errors import install_error_handlers
from .api.routes import router as auth_router
from .config import Settings, get_settings
from .domain.lockout import LockoutPolicy
from .domain.service import SessionAuthenticator
from .repository import AccountRepository
from .security.guard import RequestAuthenticationGuard
from .security.passwords import PasswordHasher
from .security.rate_limiter import RateLimiter, SlidingWindowRateLimiter
from .security.redis_rate_limiter import RedisSlidingWindowRateLimiter
from .security.tokens import TokenIssuer

logger = logging.getLogger(__name__)

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


def build_rate_limiter(settings: Settings) -> RateLimiter:
    """Instantiate the configured rate limiter backend, preferring Redis when configured."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        import redis

        client = redis.from_url(settings.redis_url)
        try:
            client.ping()
        except redis.exceptions.RedisError as exc:
            logger.warning("redis rate limiter unavailable, falling back to in-memory: %s", exc)
        else:
            logger.info("rate limiter configured for redis backend")
            return RedisSlidingWindowRateLimiter(
                client,
                max_requests=settings.rate_limit_requests,
                window_seconds=settings.rate_limit_window_seconds,
            )

    logger.info("rate limiter using in-memory backend")
    return SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


def build_authenticator(repository: AccountRepository, settings: Settings) -> SessionAuthenticator:
    return SessionAuthenticator(
        repository,
        TokenIssuer.from_settings(settings),
        PasswordHasher(rounds=settings.bcrypt_rounds),
        lockout=LockoutPolicy(
            max_attempts=settings.max_failed_logins,
            lock_duration=timedelta(minutes=settings.lockout_minutes),
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, services) for the app lifecycle."""
    statement_timeout_ms = int(settings.store_timeout_seconds * 1000)
    pool = ConnectionPool(
        settings.database_url,
        open=False,
        timeout=settings.store_timeout_seconds,
        kwargs={"options": f"-c statement_timeout={statement_timeout_ms}"},
    )
    pool.open()
    repository = AccountRepository(pool, timeout_seconds=settings.store_timeout_seconds)
    authenticator = build_authenticator(repository, settings)
    app.state.pool = pool
    app.state.settings = settings
    app.state.authenticator = authenticator
    app.state.guard = RequestAuthenticationGuard(authenticator)
    app.state.rate_limiter = build_rate_limiter(settings)
    logger.info("%s %s started (%s)", settings.app_name, settings.version, settings.environment)
    try:
        yield
    finally:
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)
install_error_handlers(app)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics")
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(auth_router)
