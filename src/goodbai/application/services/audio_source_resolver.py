"""Pick the best available audio source for a track."""

import logging
from dataclasses import dataclass

from goodbai.domain.entities import AudioSource, Track
from goodbai.domain.ports import ILiveCaptureDevice, IPreviewLookup

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedAudio:
    """Where to get audio for a track.

    url is set for preview sources. For LIVE_CAPTURE and NONE it is None: live capture
    needs an active playback session, which the orchestrator drives itself.
    """

    source: AudioSource
    url: str | None = None

    @property
    def is_fetchable(self) -> bool:
        return self.url is not None


UNAVAILABLE = ResolvedAudio(AudioSource.NONE)


class AudioSourceResolver:
    """Cascade: native preview -> fallback preview (ISRC, then text) -> live capture -> none.

    Short-circuits on the first hit. The resolver never fetches audio; any URL it returns
    is dereferenced through the allowlisting proxy.
    """

    def __init__(self, preview_lookup: IPreviewLookup | None = None) -> None:
        self._preview_lookup = preview_lookup

    async def resolve(
        self,
        track: Track,
        enable_fallback: bool = True,
        live_capture: ILiveCaptureDevice | None = None,
    ) -> ResolvedAudio:
        if track.preview_url:
            return ResolvedAudio(AudioSource.NATIVE_PREVIEW, track.preview_url)

        if enable_fallback and self._preview_lookup is not None:
            url = await self._lookup_fallback(track)
            if url:
                return ResolvedAudio(AudioSource.FALLBACK_PREVIEW, url)

        if live_capture is not None and live_capture.is_ready():
            return ResolvedAudio(AudioSource.LIVE_CAPTURE)

        return UNAVAILABLE

    async def _lookup_fallback(self, track: Track) -> str | None:
        assert self._preview_lookup is not None
        if track.isrc:
            url = await self._preview_lookup.lookup_by_code(track.isrc)
            if url:
                return url
            logger.debug("No fallback preview by ISRC %s, trying text search", track.isrc)
        return await self._preview_lookup.lookup_by_text(track.name, track.primary_artist_name)
