from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from ..utils.logging import get_logger

router = APIRouter()

logger = get_logger("health")


@router.get(
    "/health",
    tags=["Monitoring"],
    summary="Health check endpoint",
)
async def health_check(request: Request):
    settings = request.app.state.settings
    backend = request.app.state.registry.backend
    # MutableBackend exposes the installed backend as ``inner``
    current = getattr(backend, "inner", backend)
    workspace = getattr(current, "workspace_root", None)

    logger.debug("Health probe received")
    return JSONResponse(
        content={
            "ok": True,
            "status": "ok",
            "server": settings.server_name,
            "version": settings.server_version,
            "workspace": str(workspace) if workspace else None,
        },
        status_code=status.HTTP_200_OK,
    )
