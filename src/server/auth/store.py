from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from .database import AuthDatabase
from .errors import DuplicateUsernameError, UnknownUserError
from .models import SessionRecord, UserRecord

logger = logging.getLogger(__name__)

_USER_COLUMNS = "id, username, created_at, last_login"
_SESSION_COLUMNS = "sid, user_id, data, created_at, expires_at, last_access"


class SQLiteAuthStore:
    """Account and session persistence on top of an :class:`AuthDatabase`."""

    def __init__(self, database: AuthDatabase) -> None:
        self._db = database

    @property
    def database(self) -> AuthDatabase:
        return self._db

    # Users

    async def create_user(self, username: str, password_hash: str) -> UserRecord:
        now = _format_ts(utc_now())

        def _insert() -> int:
            try:
                with self._db.transaction() as connection:
                    cursor = connection.execute(
                        "INSERT INTO auth_users (username, password_hash, created_at, last_login)"
                        " VALUES (?, ?, ?, ?)",
                        (username, password_hash, now, now),
                    )
                    return int(cursor.lastrowid)
            except sqlite3.IntegrityError as exc:
                if "UNIQUE" in str(exc).upper():
                    raise DuplicateUsernameError("Username already exists") from exc
                raise

        user_id = await asyncio.to_thread(_insert)
        logger.info("Created user %s (id=%s)", username, user_id)
        return UserRecord(
            id=user_id,
            username=username,
            created_at=_parse_ts(now),
            last_login=_parse_ts(now),
        )

    async def get_user(self, user_id: int) -> Optional[UserRecord]:
        row = await asyncio.to_thread(
            self._db.fetchone,
            f"SELECT {_USER_COLUMNS} FROM auth_users WHERE id = ?",
            (user_id,),
        )
        return self._row_to_user(row)

    async def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        row = await asyncio.to_thread(
            self._db.fetchone,
            f"SELECT {_USER_COLUMNS} FROM auth_users WHERE username = ? COLLATE NOCASE",
            (username,),
        )
        return self._row_to_user(row)

    async def get_credentials(self, username: str) -> Optional[tuple[UserRecord, str]]:
        """Return the user and its password hash, for login checks only."""
        row = await asyncio.to_thread(
            self._db.fetchone,
            f"SELECT {_USER_COLUMNS}, password_hash FROM auth_users WHERE username = ? COLLATE NOCASE",
            (username,),
        )
        if row is None:
            return None
        return self._row_to_user(row), row["password_hash"]

    async def touch_last_login(self, user_id: int, when: Optional[datetime] = None) -> datetime:
        stamp = _format_ts(when or utc_now())
        await asyncio.to_thread(
            self._db.execute,
            "UPDATE auth_users SET last_login = ? WHERE id = ?",
            (stamp, user_id),
        )
        return _parse_ts(stamp)

    async def update_password_hash(self, user_id: int, password_hash: str) -> None:
        await asyncio.to_thread(
            self._db.execute,
            "UPDATE auth_users SET password_hash = ? WHERE id = ?",
            (password_hash, user_id),
        )

    async def count_users(self) -> int:
        row = await asyncio.to_thread(self._db.fetchone, "SELECT COUNT(*) AS count FROM auth_users")
        return int(row["count"]) if row else 0

    async def delete_inactive_users(self, older_than: datetime) -> int:
        """Delete users whose last login is before ``older_than``; sessions cascade."""
        deleted = await asyncio.to_thread(
            self._db.execute,
            "DELETE FROM auth_users WHERE last_login < ?",
            (_format_ts(older_than),),
        )
        if deleted:
            logger.info("Deleted %s inactive accounts", deleted)
        return deleted

    # Sessions

    async def create_session(
        self,
        sid: str,
        user_id: int,
        ttl: timedelta,
        data: Optional[dict[str, Any]] = None,
    ) -> SessionRecord:
        now = utc_now()
        created = _format_ts(now)
        expires = _format_ts(now + ttl)
        data_json = json.dumps(data) if data else None

        def _insert() -> None:
            try:
                with self._db.transaction() as connection:
                    connection.execute(
                        f"INSERT INTO sessions ({_SESSION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                        (sid, user_id, data_json, created, expires, created),
                    )
            except sqlite3.IntegrityError as exc:
                if "FOREIGN KEY" in str(exc).upper():
                    raise UnknownUserError(f"User {user_id} does not exist") from exc
                raise

        await asyncio.to_thread(_insert)
        return SessionRecord(
            sid=sid,
            user_id=user_id,
            data=json.loads(data_json) if data_json else None,
            created_at=_parse_ts(created),
            expires_at=_parse_ts(expires),
            last_access=_parse_ts(created),
        )

    async def get_session(self, sid: str) -> Optional[SessionRecord]:
        """Raw lookup; expired rows are returned as well."""
        row = await asyncio.to_thread(
            self._db.fetchone,
            f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE sid = ?",
            (sid,),
        )
        return self._row_to_session(row)

    async def get_live_session(
        self,
        sid: str,
        *,
        now: Optional[datetime] = None,
        extend_by: Optional[timedelta] = None,
    ) -> Optional[SessionRecord]:
        """Return the session only while it has not expired, and record the access.

        When ``extend_by`` is given the expiry slides to ``now + extend_by``.
        """
        current = now or utc_now()
        stamp = _format_ts(current)

        def _lookup() -> Optional[sqlite3.Row]:
            with self._db.transaction() as connection:
                row = connection.execute(
                    f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE sid = ? AND expires_at > ?",
                    (sid, stamp),
                ).fetchone()
                if row is None:
                    return None
                expires = row["expires_at"]
                if extend_by is not None:
                    expires = _format_ts(current + extend_by)
                connection.execute(
                    "UPDATE sessions SET last_access = ?, expires_at = ? WHERE sid = ?",
                    (stamp, expires, sid),
                )
                return connection.execute(
                    f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE sid = ?",
                    (sid,),
                ).fetchone()

        row = await asyncio.to_thread(_lookup)
        return self._row_to_session(row)

    async def delete_session(self, sid: str) -> bool:
        deleted = await asyncio.to_thread(
            self._db.execute,
            "DELETE FROM sessions WHERE sid = ?",
            (sid,),
        )
        return deleted > 0

    async def purge_expired_sessions(self, now: Optional[datetime] = None) -> int:
        purged = await asyncio.to_thread(
            self._db.execute,
            "DELETE FROM sessions WHERE expires_at <= ?",
            (_format_ts(now or utc_now()),),
        )
        if purged:
            logger.info("Purged %s expired sessions", purged)
        return purged

    @staticmethod
    def _row_to_user(row: sqlite3.Row | None) -> Optional[UserRecord]:
        if row is None:
            return None
        return UserRecord(
            id=int(row["id"]),
            username=row["username"],
            created_at=_parse_ts(row["created_at"]),
            last_login=_parse_ts(row["last_login"]),
        )

    @staticmethod
    def _row_to_session(row: sqlite3.Row | None) -> Optional[SessionRecord]:
        if row is None:
            return None
        return SessionRecord(
            sid=row["sid"],
            user_id=int(row["user_id"]),
            data=json.loads(row["data"]) if row["data"] else None,
            created_at=_parse_ts(row["created_at"]),
            expires_at=_parse_ts(row["expires_at"]),
            last_access=_parse_ts(row["last_access"]),
        )


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def _format_ts(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_ts(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1]
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
