"""Health check endpoint."""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from goodbai import __version__
from goodbai.api.dependencies import get_inference
from goodbai.application.services.inference_queue import InferenceQueue
from goodbai.config import Settings, get_settings

router = APIRouter()


class HealthStatus(BaseModel):
    """Health status response."""

    status: str = Field(description="healthy or degraded")
    timestamp: str = Field(description="ISO timestamp of health check")
    version: str = Field(default=__version__, description="Application version")
    checks: dict[str, Any] = Field(default_factory=dict, description="Component checks")


@router.get("/health", response_model=HealthStatus)
async def health(
    inference: InferenceQueue = Depends(get_inference),
    settings: Settings = Depends(get_settings),
) -> HealthStatus:
    """Liveness plus whether the classifier is loaded.

    "degraded" means scans still run but every track without a blocklist match stays
    unknown, because audio can't be scored.
    """
    classifier_loaded = inference.is_ready()
    return HealthStatus(
        status="healthy" if classifier_loaded else "degraded",
        timestamp=datetime.now(UTC).isoformat(),
        checks={
            "classifier_loaded": classifier_loaded,
            "spotify_configured": settings.spotify.is_configured,
            "fallback_preview_enabled": settings.deezer.enabled,
        },
    )
