"""Session gateway FastAPI application."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sessiongate import __version__
from sessiongate.api.middleware import RequestLoggingMiddleware
from sessiongate.api.routes import messages, pairing, status
from sessiongate.config.settings import settings
from sessiongate.exceptions import NotConnectedError
from sessiongate.session import SessionManager

logger = logging.getLogger(__name__)


def _log_loop_exception(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    exc = context.get("exception")
    logger.error(
        "stage=unhandled_fault message=%s",
        context.get("message", "unhandled exception in event loop"),
        exc_info=exc,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    asyncio.get_running_loop().set_exception_handler(_log_loop_exception)
    if getattr(app.state, "manager", None) is None:
        app.state.manager = SessionManager.from_settings(settings)
    manager: SessionManager = app.state.manager
    app.state.started_at = time.monotonic()
    await manager.start()
    try:
        yield
    finally:
        await manager.stop()


def create_app(manager: SessionManager | None = None) -> FastAPI:
    """Build the application; a manager is created from settings at startup if none is given."""
    app = FastAPI(
        title=settings.SERVICE_NAME,
        version=__version__,
        lifespan=lifespan,
    )
    app.state.manager = manager
    app.state.started_at = time.monotonic()

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(status.router)
    app.include_router(pairing.router)
    app.include_router(messages.router)

    # --- Exception handlers ---

    @app.exception_handler(NotConnectedError)
    async def not_connected_handler(request: Request, exc: NotConnectedError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "stage=request_failed method=%s path=%s error=%s",
            request.method,
            request.url.path,
            exc,
            exc_info=exc,
        )
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    return app


app = create_app()
