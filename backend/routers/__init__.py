"""API Routers for the rideshare matching application."""
from fastapi import APIRouter

from .trips import router as trips_router
from .matches import router as matches_router
from .preferences import router as preferences_router
from .notifications import router as notifications_router


def create_api_router() -> APIRouter:
    """Create and configure the main API router."""
    api_router = APIRouter(prefix="/api")

    # Register all routers
    api_router.include_router(trips_router, prefix="/trips", tags=["Trips"])
    api_router.include_router(matches_router, prefix="/matches", tags=["Matches"])
    api_router.include_router(preferences_router, prefix="/preferences", tags=["Preferences"])
    api_router.include_router(notifications_router, prefix="/notifications", tags=["Notifications"])

    @api_router.get("/health")
    async def health_check():
        return {"status": "healthy", "service": "rideshare-matching"}

    return api_router
