"""Playlist listing for scan selection."""

from fastapi import APIRouter, Depends

from goodbai.api.dependencies import get_spotify_client
from goodbai.api.schemas import PlaylistSummary
from goodbai.infrastructure.integrations.spotify_client import SpotifyClient

router = APIRouter()


@router.get("", response_model=list[PlaylistSummary])
async def list_playlists(
    spotify: SpotifyClient = Depends(get_spotify_client),
) -> list[PlaylistSummary]:
    """List the current user's playlists.

    Liked songs are not a real playlist; scan them with playlist_id "liked".
    """
    playlists = await spotify.get_all_user_playlists()
    return [PlaylistSummary.from_spotify(p) for p in playlists if p.get("id")]
