"""FastAPI application for the HTTP transport."""

from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .mcp.tools import ToolRegistry
from .routes.health import router as health_router
from .routes.mcp import router as mcp_router
from .services.backend import BeansBackend
from .utils.logging import get_logger

logger = get_logger("http")


def create_app(backend: BeansBackend, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="Beans MCP Server",
        version=settings.server_version,
        redirect_slashes=False,
    )
    app.state.settings = settings
    app.state.registry = ToolRegistry(backend)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Internal Server Error",
                "error": {"code": "internal_error", "message": "An unexpected error occurred."},
            },
        )

    app.include_router(health_router, tags=["Monitoring"])
    app.include_router(mcp_router, tags=["MCP"])
    return app
