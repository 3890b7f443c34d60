"""Health check endpoints."""

from fastapi import APIRouter, Request, Response, status

from microlearning.config import get_settings


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request, response: Response) -> dict[str, str | bool]:
    """Readiness probe - ready once the microlearning service is wired."""
    settings = get_settings()
    service = getattr(request.app.state, "microlearning_service", None)
    if service is None:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {
        "status": "ready" if service is not None else "starting",
        "environment": settings.environment,
        "debug": settings.debug,
        "store_backend": getattr(request.app.state, "store_backend", "none"),
        "certification_configured": settings.certification_configured,
    }


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
