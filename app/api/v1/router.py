"""Main API router for v1 endpoints."""

from fastapi import APIRouter

from app.api.v1 import conversations, realtime

router = APIRouter()

# Include all sub-routers
router.include_router(conversations.router)
router.include_router(realtime.router)


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok", "message": "Omnidesk API is running"}
