"""API request/response schemas."""

from goodbai.api.schemas.scans import (
    PlaylistSummary,
    RemoveSelectedResponse,
    SelectionAction,
    SelectionUpdate,
    StartScanRequest,
    StartScanResponse,
)

__all__ = [
    "PlaylistSummary",
    "RemoveSelectedResponse",
    "SelectionAction",
    "SelectionUpdate",
    "StartScanRequest",
    "StartScanResponse",
]
