"""API route registration.

Aggregates all API routers into a single router
for inclusion in the main application.
"""

from fastapi import APIRouter

from latchkey.api.routes.passkey import router as passkey_router
from latchkey.api.routes.system import router as system_router

# Main API router
api_router = APIRouter()

api_router.include_router(system_router)
api_router.include_router(passkey_router)

__all__ = ["api_router"]
