"""Audio preview proxy endpoint."""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from goodbai.api.dependencies import get_audio_proxy
from goodbai.infrastructure.integrations.audio_proxy import AudioProxy

router = APIRouter()


# Hey future me - browsers can't fetch Spotify/Deezer CDN audio directly (CORS), so clients go
# through here. Missing/invalid url -> 400, host not allowlisted -> 403, upstream failure ->
# 502; the exception handlers do the mapping.
@router.get("/preview")
async def proxy_preview(
    url: str | None = Query(default=None, description="Preview URL on an allowed audio CDN"),
    proxy: AudioProxy = Depends(get_audio_proxy),
) -> Response:
    """Fetch a preview clip from an allowlisted audio CDN."""
    audio = await proxy.fetch_audio(url)
    return Response(
        content=audio.content,
        media_type=audio.content_type,
        headers={"Cache-Control": "public, max-age=3600"},
    )
