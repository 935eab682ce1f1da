# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.config.loader import get_str_env
from src.server.auth.dependencies import initialise_auth, shutdown_auth
from src.server.auth.errors import StoreClosedError
from src.server.auth.router import router as auth_router
from src.server.auth.settings import AuthSettings

logger = logging.getLogger(__name__)

INTERNAL_SERVER_ERROR_DETAIL = "Internal Server Error"


def create_app(settings: Optional[AuthSettings] = None, *, start_cleanup: bool = True) -> FastAPI:
    """Build the API. ``settings`` defaults to the environment."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        auth_settings = settings or AuthSettings.from_env()
        # StorageUnavailable / SchemaError propagate and abort startup.
        app.state.auth = await initialise_auth(auth_settings, start_cleanup=start_cleanup)
        try:
            yield
        finally:
            context = app.state.auth
            app.state.auth = None
            await shutdown_auth(context)

    application = FastAPI(
        title="Music Library Auth API",
        description="Local account authentication for the music library",
        version="0.1.0",
        lifespan=lifespan,
    )

    allowed_origins_str = get_str_env("ALLOWED_ORIGINS", "http://localhost:5000")
    allowed_origins = [origin.strip() for origin in allowed_origins_str.split(",") if origin.strip()]
    logger.info("Allowed origins: %s", allowed_origins)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        # Session cookies have to cross origins in development.
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    application.include_router(auth_router)
    _register_exception_handlers(application)

    @application.get("/api/health")
    async def health(request: Request) -> dict:
        context = getattr(request.app.state, "auth", None)
        database_ok = context is not None and context.database.is_open
        return {"status": "ok" if database_ok else "degraded", "database": database_ok}

    return application


def _register_exception_handlers(application: FastAPI) -> None:
    @application.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        details = [str(error.get("msg", "")) for error in exc.errors()]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": "Validation failed", "errors": details},
        )

    @application.exception_handler(StoreClosedError)
    async def store_closed_handler(request: Request, exc: StoreClosedError) -> JSONResponse:
        logger.error("Auth store unavailable for %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Service Unavailable"},
        )

    @application.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": INTERNAL_SERVER_ERROR_DETAIL},
        )


app = create_app()
