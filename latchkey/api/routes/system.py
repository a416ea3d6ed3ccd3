"""System health endpoint."""

from fastapi import APIRouter, Depends

from latchkey import __version__
from latchkey.api.deps import get_app_settings
from latchkey.settings import Settings

router = APIRouter(tags=["System"])


@router.get("/health", summary="Health Check (Liveness)")
async def health_check(settings: Settings = Depends(get_app_settings)) -> dict:
    """Liveness probe. Does not touch the record store."""
    return {
        "status": "healthy",
        "version": __version__,
        "environment": settings.environment,
        "store_backend": settings.store_backend,
    }
