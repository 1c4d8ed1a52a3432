"""Scan lifecycle endpoints: start, inspect, stream, cancel, select, remove, discard."""

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sse_starlette.sse import EventSourceResponse

from goodbai.api.dependencies import (
    build_orchestrator,
    build_spotify_client,
    close_spotify_client,
    get_access_token,
    get_owner_key,
    get_refresh_token,
    get_scan_sessions,
    get_spotify_client,
    refresh_token_source,
    reissue_rotated_refresh_token,
)
from goodbai.api.schemas import (
    RemoveSelectedResponse,
    SelectionAction,
    SelectionUpdate,
    StartScanRequest,
    StartScanResponse,
)
from goodbai.application.services.scan_sessions import ScanSessionManager
from goodbai.config import Settings, get_settings
from goodbai.infrastructure.integrations.spotify_client import SpotifyClient

logger = logging.getLogger(__name__)

router = APIRouter()


# Hey future me - the Spotify client for a scan is NOT the request-scoped one from
# get_spotify_client: the scan runs long after this request returned. The session manager
# closes it via on_finished when the scan task ends (done, error, or replaced).
@router.post("", response_model=StartScanResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_scan(
    body: StartScanRequest,
    request: Request,
    access_token: str = Depends(get_access_token),
    refresh_token: str | None = Depends(get_refresh_token),
    owner: str = Depends(get_owner_key),
    sessions: ScanSessionManager = Depends(get_scan_sessions),
    settings: Settings = Depends(get_settings),
) -> StartScanResponse:
    """Start scanning a playlist in the background.

    A scan already running for the same login is cancelled and awaited first.
    """
    spotify = build_spotify_client(settings, access_token, refresh_token)
    orchestrator = build_orchestrator(request, spotify, settings)

    async def _close_client() -> None:
        await close_spotify_client(spotify)

    session = await sessions.start(
        owner,
        orchestrator,
        body.playlist_id,
        body.to_options(),
        on_finished=_close_client,
        refresh_token_source=refresh_token_source(spotify),
    )
    base = str(request.url_for("get_scan", scan_id=session.scan_id))
    return StartScanResponse(
        scan_id=session.scan_id,
        playlist_id=body.playlist_id,
        status_url=base,
        events_url=f"{base}/events",
    )


@router.get("/{scan_id}", name="get_scan")
async def get_scan(
    scan_id: str,
    response: Response,
    refresh_token: str | None = Depends(get_refresh_token),
    sessions: ScanSessionManager = Depends(get_scan_sessions),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Current scan state, results and stats.

    If Spotify rotated the refresh token during the scan, the new one is set as a cookie
    for the login that started it.
    """
    session = sessions.get(scan_id)
    reissue_rotated_refresh_token(response, session, refresh_token, settings.spotify)
    return session.snapshot()


@router.delete("/{scan_id}", status_code=status.HTTP_204_NO_CONTENT)
async def discard_scan(
    scan_id: str,
    sessions: ScanSessionManager = Depends(get_scan_sessions),
) -> Response:
    """Stop the scan if it is still running and drop its results."""
    await sessions.discard(scan_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{scan_id}/events")
async def scan_events(
    scan_id: str,
    request: Request,
    sessions: ScanSessionManager = Depends(get_scan_sessions),
) -> EventSourceResponse:
    """Server-Sent Events stream of scan progress.

    Sends a "state" snapshot first, then "progress" and "result" events, and finally
    "done" with the terminal state.

    Example JS client:
    ```javascript
    const evtSource = new EventSource(`/api/scans/${scanId}/events`);
    evtSource.addEventListener('result', (event) => upsertRow(JSON.parse(event.data)));
    evtSource.addEventListener('done', () => evtSource.close());
    ```
    """
    session = sessions.get(scan_id)

    async def event_generator():  # type: ignore[no-untyped-def]
        yield {"event": "state", "data": json.dumps(session.snapshot())}
        try:
            async for event in session.events.subscribe():
                if await request.is_disconnected():
                    break
                yield {"event": event.event, "data": json.dumps(event.data)}
        except asyncio.CancelledError:
            logger.debug("SSE connection for scan %s cancelled", scan_id)
            raise

    return EventSourceResponse(event_generator())


@router.post("/{scan_id}/cancel")
async def cancel_scan(
    scan_id: str,
    sessions: ScanSessionManager = Depends(get_scan_sessions),
) -> dict[str, Any]:
    """Request cooperative cancellation; the track being analysed still finishes."""
    session = sessions.cancel(scan_id)
    return {"scan_id": scan_id, "cancel_requested": True, "running": session.is_running}


@router.patch("/{scan_id}/selection")
async def update_selection(
    scan_id: str,
    body: SelectionUpdate,
    sessions: ScanSessionManager = Depends(get_scan_sessions),
) -> dict[str, Any]:
    """Toggle one result, select all flagged results, or clear the selection."""
    state = sessions.get(scan_id).state
    if body.action == SelectionAction.TOGGLE:
        assert body.track_id is not None
        if not state.toggle_selection(body.track_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Track {body.track_id} not in scan results",
            )
    elif body.action == SelectionAction.SELECT_ALL_FLAGGED:
        state.select_all_flagged()
    else:
        state.deselect_all()
    return {"scan_id": scan_id, "selected": state.selected_uris()}


@router.post("/{scan_id}/remove-selected", response_model=RemoveSelectedResponse)
async def remove_selected(
    scan_id: str,
    sessions: ScanSessionManager = Depends(get_scan_sessions),
    spotify: SpotifyClient = Depends(get_spotify_client),
) -> RemoveSelectedResponse:
    """Remove the selected tracks from the scanned playlist (or liked songs)."""
    uris = await sessions.remove_selected(scan_id, spotify)
    return RemoveSelectedResponse(removed=len(uris), uris=uris)
