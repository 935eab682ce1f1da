from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from src.config.loader import get_bool_env, get_int_env, get_str_env

from .database import DEFAULT_SCHEMA_PATH


@dataclass(frozen=True)
class AuthSettings:
    data_dir: Path
    schema_path: Path = DEFAULT_SCHEMA_PATH
    cookie_name: str = "music_session"
    cookie_secure: bool = False
    session_ttl_seconds: int = 7 * 24 * 3600
    account_retention_days: int = 7
    cleanup_enabled: bool = True
    cleanup_hour: int = 3
    rate_limit_attempts: int = 5
    rate_limit_window_seconds: int = 600
    trust_proxy: bool = False

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(seconds=self.session_ttl_seconds)

    @property
    def account_retention(self) -> timedelta:
        return timedelta(days=self.account_retention_days)

    @classmethod
    def from_env(cls) -> "AuthSettings":
        data_dir = get_str_env("AUTH_DATA_DIR") or str(Path.cwd() / "data")
        schema_path = get_str_env("AUTH_SCHEMA_PATH") or str(DEFAULT_SCHEMA_PATH)
        cleanup_hour = get_int_env("AUTH_CLEANUP_HOUR", 3)
        if not 0 <= cleanup_hour <= 23:
            raise ValueError(f"AUTH_CLEANUP_HOUR must be between 0 and 23, got {cleanup_hour}")
        return cls(
            data_dir=Path(data_dir),
            schema_path=Path(schema_path),
            cookie_name=get_str_env("AUTH_COOKIE_NAME", "music_session"),
            cookie_secure=get_bool_env("AUTH_COOKIE_SECURE", False),
            session_ttl_seconds=max(60, get_int_env("AUTH_SESSION_TTL_SECONDS", 7 * 24 * 3600)),
            account_retention_days=max(1, get_int_env("AUTH_ACCOUNT_RETENTION_DAYS", 7)),
            cleanup_enabled=get_bool_env("AUTH_CLEANUP_ENABLED", True),
            cleanup_hour=cleanup_hour,
            rate_limit_attempts=max(1, get_int_env("AUTH_RATE_LIMIT_ATTEMPTS", 5)),
            rate_limit_window_seconds=max(1, get_int_env("AUTH_RATE_LIMIT_WINDOW_SECONDS", 600)),
            trust_proxy=get_bool_env("AUTH_TRUST_PROXY", False),
        )
