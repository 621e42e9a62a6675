"""
🧭 Media Uploads • API v1 Router Aggregator
==========================================

Exports the combined `router` (ready to include under `/api/v1`) and a
`build_v1_router()` factory for custom mount points.

    from app.api.v1.routers import router as v1_router
    app.include_router(v1_router, prefix="/api/v1")

Rate limits and cache headers live in the child routers.
"""

from fastapi import APIRouter

from .transcoding import router as transcoding_router
from .uploads import router as uploads_router
from .viewing import router as viewing_router


def build_v1_router() -> APIRouter:
    """Compose uploads, viewing and transcoding into one `APIRouter`."""
    r = APIRouter()
    r.include_router(uploads_router)
    r.include_router(viewing_router)
    r.include_router(transcoding_router)
    return r


router = build_v1_router()

__all__ = ["router", "build_v1_router", "uploads_router", "viewing_router", "transcoding_router"]
