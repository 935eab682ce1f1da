from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from .cleanup import AccountCleanupJob
from .database import AuthDatabase, close_auth_database, initialize_auth_database
from .models import UserRecord
from .rate_limit import InMemoryRateLimiter
from .service import LocalAuthService
from .settings import AuthSettings
from .store import SQLiteAuthStore

logger = logging.getLogger(__name__)


@dataclass
class AuthContext:
    """Everything the auth routes need, owned by the application lifespan."""

    settings: AuthSettings
    database: AuthDatabase
    store: SQLiteAuthStore
    service: LocalAuthService
    limiter: InMemoryRateLimiter
    cleanup_job: Optional[AccountCleanupJob] = None


async def initialise_auth(settings: AuthSettings, *, start_cleanup: bool = True) -> AuthContext:
    """Open the auth database and wire the store, service and cleanup job.

    Raises ``StorageUnavailable`` or ``SchemaError``; both abort startup.
    """
    database = await asyncio.to_thread(initialize_auth_database, settings.data_dir, settings.schema_path)
    store = SQLiteAuthStore(database)
    service = LocalAuthService(store, settings)
    limiter = InMemoryRateLimiter(settings.rate_limit_attempts, settings.rate_limit_window_seconds)
    context = AuthContext(
        settings=settings,
        database=database,
        store=store,
        service=service,
        limiter=limiter,
    )
    if start_cleanup and settings.cleanup_enabled:
        context.cleanup_job = AccountCleanupJob(service, settings.cleanup_hour)
        context.cleanup_job.start()
    logger.info("Initialised auth store with DB path %s", database.path)
    return context


async def shutdown_auth(context: Optional[AuthContext]) -> None:
    if context is None:
        return
    if context.cleanup_job is not None:
        await context.cleanup_job.stop()
    await asyncio.to_thread(close_auth_database, context.database)


def get_auth_context(request: Request) -> AuthContext:
    context = getattr(request.app.state, "auth", None)
    if context is None:
        raise RuntimeError("Auth store has not been initialised")
    return context


def get_auth_service(context: AuthContext = Depends(get_auth_context)) -> LocalAuthService:
    return context.service


def get_auth_settings(context: AuthContext = Depends(get_auth_context)) -> AuthSettings:
    return context.settings


def get_session_token(request: Request, settings: AuthSettings = Depends(get_auth_settings)) -> Optional[str]:
    """Session id from the cookie, or from ``Authorization: Bearer`` for non-browser clients."""
    token = request.cookies.get(settings.cookie_name)
    if token:
        return token
    header = request.headers.get("Authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


async def current_user_optional(
    token: Optional[str] = Depends(get_session_token),
    service: LocalAuthService = Depends(get_auth_service),
) -> Optional[UserRecord]:
    return await service.resolve_session(token)


async def require_user(
    user: Optional[UserRecord] = Depends(current_user_optional),
) -> UserRecord:
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="You must be logged in to access this resource",
        )
    return user


def client_key(request: Request, *, trust_proxy: bool = False) -> str:
    """Socket address of the client. X-Forwarded-For only counts behind a trusted proxy."""
    if trust_proxy:
        forwarded = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
        if forwarded:
            return forwarded
    return request.client.host if request.client else "unknown"


def enforce_rate_limit(request: Request, context: AuthContext, username: str) -> None:
    limiter = context.limiter
    limiter.prune()
    client = client_key(request, trust_proxy=context.settings.trust_proxy)
    key = f"{client}-{(username or 'unknown').strip().lower()}"
    retry_after = limiter.hit(key)
    if retry_after is not None:
        logger.warning("Rate limit exceeded for %s on %s", key, request.url.path)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many authentication attempts. Please try again later.",
            headers={"Retry-After": str(retry_after)},
        )
