from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from .dependencies import (
    AuthContext,
    enforce_rate_limit,
    get_auth_context,
    get_auth_service,
    get_session_token,
    require_user,
)
from .errors import AuthValidationError, DuplicateUsernameError, InvalidCredentialsError
from .models import SessionRecord, UserRecord
from .schemas import (
    AuthStatsResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    UserResponse,
)
from .service import LocalAuthService
from .settings import AuthSettings

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=RegisterResponse)
async def register(
    payload: RegisterRequest,
    request: Request,
    response: Response,
    context: AuthContext = Depends(get_auth_context),
) -> RegisterResponse:
    enforce_rate_limit(request, context, payload.username)
    try:
        user = await context.service.register(payload.username, payload.password)
    except (AuthValidationError, DuplicateUsernameError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    session = await context.service.open_session(user)
    _set_session_cookie(response, context.settings, session)
    return RegisterResponse(message="Registration successful", user=_to_user(user, include_login=False))


@router.post("/login", response_model=LoginResponse)
async def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    context: AuthContext = Depends(get_auth_context),
) -> LoginResponse:
    enforce_rate_limit(request, context, payload.username)
    try:
        user = await context.service.login(payload.username, payload.password)
    except InvalidCredentialsError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc

    session = await context.service.open_session(user)
    _set_session_cookie(response, context.settings, session)
    return LoginResponse(message="Login successful", user=_to_user(user))


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    token: Optional[str] = Depends(get_session_token),
    context: AuthContext = Depends(get_auth_context),
) -> MessageResponse:
    _clear_session_cookie(response, context.settings)
    if not token:
        return MessageResponse(message="Already logged out")
    await context.service.logout(token)
    return MessageResponse(message="Logout successful")


@router.get("/me", response_model=UserResponse)
async def me(user: UserRecord = Depends(require_user)) -> UserResponse:
    return _to_user(user)


@router.get("/stats", response_model=AuthStatsResponse)
async def stats(service: LocalAuthService = Depends(get_auth_service)) -> AuthStatsResponse:
    return AuthStatsResponse(
        total_users=await service.user_count(),
        account_retention_days=service.settings.account_retention_days,
    )


def _to_user(user: UserRecord, *, include_login: bool = True) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        created_at=user.created_at,
        last_login=user.last_login if include_login else None,
    )


def _set_session_cookie(response: Response, settings: AuthSettings, session: SessionRecord) -> None:
    response.set_cookie(
        key=settings.cookie_name,
        value=session.sid,
        max_age=settings.session_ttl_seconds,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )


def _clear_session_cookie(response: Response, settings: AuthSettings) -> None:
    response.delete_cookie(
        key=settings.cookie_name,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )
