from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional


@dataclass(slots=True)
class UserRecord:
    id: int
    username: str
    created_at: datetime
    last_login: datetime


@dataclass(slots=True)
class SessionRecord:
    sid: str
    user_id: int
    data: Optional[dict[str, Any]]
    created_at: datetime
    expires_at: datetime
    last_access: datetime
