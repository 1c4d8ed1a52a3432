"""API schemas for scans and playlists."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator

from goodbai.application.services.scan_orchestrator import ScanOptions


class StartScanRequest(BaseModel):
    """Request schema for starting a playlist scan."""

    playlist_id: str = Field(..., min_length=1, description='Spotify playlist ID, or "liked"')
    enable_audio_analysis: bool = Field(default=True, description="Run the audio classifier")
    enable_fallback_preview: bool = Field(
        default=True, description="Look up Deezer previews when Spotify has none"
    )
    enable_live_capture: bool = Field(
        default=False, description="Capture audio from playback when no preview exists"
    )

    def to_options(self) -> ScanOptions:
        return ScanOptions(
            enable_audio_analysis=self.enable_audio_analysis,
            enable_fallback_preview=self.enable_fallback_preview,
            enable_live_capture=self.enable_live_capture,
        )


class StartScanResponse(BaseModel):
    """Response schema for a started scan."""

    scan_id: str
    playlist_id: str
    status_url: str
    events_url: str


class SelectionAction(str, Enum):
    """Selection change requested by the client."""

    TOGGLE = "toggle"
    SELECT_ALL_FLAGGED = "select_all_flagged"
    DESELECT_ALL = "deselect_all"


class SelectionUpdate(BaseModel):
    """Request schema for changing which results are selected."""

    action: SelectionAction
    track_id: str | None = Field(default=None, description="Required for toggle")

    @model_validator(mode="after")
    def _require_track_for_toggle(self) -> "SelectionUpdate":
        if self.action == SelectionAction.TOGGLE and not self.track_id:
            raise ValueError("track_id is required for toggle")
        return self


class RemoveSelectedResponse(BaseModel):
    """Response schema for removing selected tracks."""

    removed: int
    uris: list[str]


class PlaylistSummary(BaseModel):
    """A user playlist as listed for scan selection."""

    id: str
    name: str
    tracks_total: int = 0
    image_url: str | None = None
    owner: str | None = None

    @classmethod
    def from_spotify(cls, data: dict[str, Any]) -> "PlaylistSummary":
        images = data.get("images") or []
        owner = data.get("owner") or {}
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            tracks_total=int((data.get("tracks") or {}).get("total") or 0),
            image_url=images[0].get("url") if images else None,
            owner=owner.get("display_name") or owner.get("id"),
        )
