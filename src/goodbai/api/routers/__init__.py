"""API routers."""

from fastapi import APIRouter

from goodbai.api.routers import health, playlists, proxy, scans

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(proxy.router, prefix="/proxy", tags=["proxy"])
api_router.include_router(playlists.router, prefix="/playlists", tags=["playlists"])
api_router.include_router(scans.router, prefix="/scans", tags=["scans"])

__all__ = ["api_router"]
