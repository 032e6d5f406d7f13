"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from relayagent.core.errors import (
    ApprovalNotFound,
    InvalidSessionId,
    SandboxViolation,
    StorageError,
)
from relayagent.models.settings import BridgeSettings, load_settings
from relayagent.server.dependencies import AppState
from relayagent.server.routes import register_routes

logger = logging.getLogger(__name__)


def create_app(
    settings: BridgeSettings | None = None, cors_origins: list[str] | None = None
) -> FastAPI:
    """Create and configure the FastAPI application."""
    state = AppState.from_settings(settings or load_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Shutdown: stop any turn still running
        cancelled = state.registry.cancel_all()
        if cancelled:
            logger.info("Cancelled %d active stream(s) on shutdown", cancelled)

    app = FastAPI(
        title="relayagent",
        description="Streaming bridge between a chat UI and a wire-mode agent CLI",
        lifespan=lifespan,
    )
    app.state.relay = state

    # CORS
    origins = cors_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StorageError)
    async def _storage_error(request: Request, exc: StorageError):
        logger.error("Storage error on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    @app.exception_handler(InvalidSessionId)
    async def _invalid_session_id(request: Request, exc: InvalidSessionId):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(ApprovalNotFound)
    async def _approval_not_found(request: Request, exc: ApprovalNotFound):
        logger.info("Stale approval response: %s", exc)
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(SandboxViolation)
    async def _sandbox_violation(request: Request, exc: SandboxViolation):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    register_routes(app)
    return app
