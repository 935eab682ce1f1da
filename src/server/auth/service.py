from __future__ import annotations

import logging
import re
import secrets
from datetime import datetime
from typing import Optional

from .errors import AuthValidationError, DuplicateUsernameError, InvalidCredentialsError
from .models import SessionRecord, UserRecord
from .passwords import hash_password, needs_rehash, verify_dummy_password, verify_password
from .settings import AuthSettings
from .store import SQLiteAuthStore, utc_now

logger = logging.getLogger(__name__)

MIN_USERNAME_LENGTH = 3
MAX_USERNAME_LENGTH = 50
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128

_USERNAME_RE = re.compile(r"^[A-Za-z0-9_]+$")
_UPPER_RE = re.compile(r"[A-Z]")
_LOWER_RE = re.compile(r"[a-z]")
_DIGIT_RE = re.compile(r"[0-9]")
_INVALID_CREDENTIALS = "Invalid username or password"


def validate_username(username: Optional[str]) -> str:
    """Return the trimmed username or raise :class:`AuthValidationError`."""
    if not username or not isinstance(username, str):
        raise AuthValidationError("Username is required")
    trimmed = username.strip()
    if len(trimmed) < MIN_USERNAME_LENGTH:
        raise AuthValidationError(f"Username must be at least {MIN_USERNAME_LENGTH} characters")
    if len(trimmed) > MAX_USERNAME_LENGTH:
        raise AuthValidationError(f"Username must not exceed {MAX_USERNAME_LENGTH} characters")
    if not _USERNAME_RE.match(trimmed):
        raise AuthValidationError("Username can only contain letters, numbers, and underscores")
    return trimmed


def validate_password(password: Optional[str]) -> str:
    if not password or not isinstance(password, str):
        raise AuthValidationError("Password is required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise AuthValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(password) > MAX_PASSWORD_LENGTH:
        raise AuthValidationError(f"Password must not exceed {MAX_PASSWORD_LENGTH} characters")
    has_upper = _UPPER_RE.search(password)
    has_lower = _LOWER_RE.search(password)
    has_digit = _DIGIT_RE.search(password)
    if not (has_upper and has_lower and has_digit):
        raise AuthValidationError(
            "Password must contain at least one uppercase letter, one lowercase letter, and one number"
        )
    return password


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class LocalAuthService:
    """Username/password accounts with server-side sessions.

    There is no e-mail and no password recovery. Accounts that have not logged
    in for ``settings.account_retention_days`` are removed by the cleanup job.
    """

    def __init__(self, store: SQLiteAuthStore, settings: AuthSettings) -> None:
        self._store = store
        self._settings = settings

    @property
    def settings(self) -> AuthSettings:
        return self._settings

    async def register(self, username: str, password: str) -> UserRecord:
        name = validate_username(username)
        validate_password(password)

        if await self._store.get_user_by_username(name) is not None:
            raise DuplicateUsernameError("Username already exists")

        # The UNIQUE constraint still guards the race between check and insert.
        user = await self._store.create_user(name, hash_password(password))
        logger.info("Registered user %s", user.username)
        return user

    async def login(self, username: str, password: str) -> UserRecord:
        if not username or not password:
            raise InvalidCredentialsError("Username and password are required")

        found = await self._store.get_credentials(username.strip())
        if found is None:
            # Unknown names pay the same argon2 cost as known ones.
            verify_dummy_password(password)
            raise InvalidCredentialsError(_INVALID_CREDENTIALS)
        user, password_hash = found
        if not verify_password(password_hash, password):
            logger.info("Failed login for %s", user.username)
            raise InvalidCredentialsError(_INVALID_CREDENTIALS)

        if needs_rehash(password_hash):
            await self._store.update_password_hash(user.id, hash_password(password))

        user.last_login = await self._store.touch_last_login(user.id)
        return user

    async def get_user(self, user_id: int) -> Optional[UserRecord]:
        return await self._store.get_user(user_id)

    async def open_session(self, user: UserRecord) -> SessionRecord:
        return await self._store.create_session(new_session_id(), user.id, self._settings.session_ttl)

    async def resolve_session(self, sid: Optional[str]) -> Optional[UserRecord]:
        """Return the user behind a live session, or ``None``."""
        if not sid:
            return None
        session = await self._store.get_live_session(sid)
        if session is None:
            return None
        user = await self._store.get_user(session.user_id)
        if user is None:
            await self._store.delete_session(sid)
            return None
        return user

    async def logout(self, sid: Optional[str]) -> bool:
        if not sid:
            return False
        return await self._store.delete_session(sid)

    async def cleanup_inactive_accounts(self, now: Optional[datetime] = None) -> int:
        cutoff = (now or utc_now()) - self._settings.account_retention
        return await self._store.delete_inactive_users(cutoff)

    async def purge_expired_sessions(self, now: Optional[datetime] = None) -> int:
        return await self._store.purge_expired_sessions(now)

    async def user_count(self) -> int:
        return await self._store.count_users()
