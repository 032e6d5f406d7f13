"""Route registration."""

from fastapi import FastAPI


def register_routes(app: FastAPI) -> None:
    """Register all API routes."""
    from relayagent.server.routes.approvals import router as approvals_router
    from relayagent.server.routes.chat import router as chat_router
    from relayagent.server.routes.files import router as files_router
    from relayagent.server.routes.health import router as health_router
    from relayagent.server.routes.sessions import router as sessions_router
    from relayagent.server.routes.tools import router as tools_router

    app.include_router(health_router)
    app.include_router(chat_router, prefix="/api")
    app.include_router(sessions_router, prefix="/api")
    app.include_router(tools_router, prefix="/api")
    app.include_router(approvals_router, prefix="/api")
    app.include_router(files_router, prefix="/api")
