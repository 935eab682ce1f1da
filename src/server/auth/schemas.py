from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .service import MAX_PASSWORD_LENGTH, MAX_USERNAME_LENGTH, MIN_PASSWORD_LENGTH, MIN_USERNAME_LENGTH

NO_RECOVERY_WARNING = (
    "No password recovery available. Keep your password safe - "
    "there is no way to recover a lost password."
)


class RegisterRequest(BaseModel):
    username: str = Field(min_length=MIN_USERNAME_LENGTH, max_length=MAX_USERNAME_LENGTH)
    password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)

    @field_validator("username")
    @classmethod
    def strip_username(cls, value: str) -> str:
        return value.strip()


class LoginRequest(BaseModel):
    username: str
    password: str


class UserResponse(BaseModel):
    id: int
    username: str
    created_at: datetime
    last_login: Optional[datetime] = None


class RegisterResponse(BaseModel):
    message: str
    user: UserResponse
    warning: str = NO_RECOVERY_WARNING


class LoginResponse(BaseModel):
    message: str
    user: UserResponse


class MessageResponse(BaseModel):
    message: str


class AuthStatsResponse(BaseModel):
    total_users: int
    auth_type: str = "local"
    password_recovery: bool = False
    account_retention_days: int
