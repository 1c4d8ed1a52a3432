"""Deezer public API client used as the fallback preview source."""

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from goodbai.config.settings import DeezerSettings
from goodbai.domain.ports import IPreviewLookup
from goodbai.infrastructure.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

# Deezer reports errors inside a 200 body: {"error": {"type": "...", "code": 4}}
_RATE_LIMIT_ERROR_CODE = 4


@dataclass
class DeezerTrack:
    """The subset of a Deezer track we care about."""

    id: int
    title: str
    artist_name: str
    isrc: str | None  # International Standard Recording Code
    preview: str | None  # 30-second preview URL


class DeezerClient(IPreviewLookup):
    """HTTP client for the Deezer public API.

    No authentication needed for reads. Rate limit is 50 requests per 5 seconds per IP,
    so every call goes through a token bucket.

    Lookups NEVER raise on HTTP trouble or unreadable bodies: a failed fallback must not fail
    the track, it just means "no preview here". Errors are logged and None is returned.
    """

    def __init__(
        self,
        settings: DeezerSettings | None = None,
        rate_limiter: RateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or DeezerSettings()
        self._rate_limiter = rate_limiter or RateLimiter.for_deezer()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.api_base_url,
                headers={"Accept": "application/json"},
                timeout=self.settings.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # Hey future me - CENTRALIZED API REQUEST with rate limiting!
    # Deezer signals its rate limit as error code 4 in a 200 response, not as a 429.
    async def _api_request(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
        max_retries: int = 3,
    ) -> Any:
        """Make a rate-limited GET and return the decoded JSON body.

        Raises:
            httpx.HTTPError: On transport errors or non-2xx status
            ValueError: If the body is not JSON (edge caches answer 200 with HTML)
        """
        client = await self._get_client()
        data: Any = None

        for attempt in range(max_retries + 1):
            async with self._rate_limiter:
                response = await client.get(endpoint, params=params)
            response.raise_for_status()
            data = response.json()

            error = data.get("error") if isinstance(data, dict) else None
            if not isinstance(error, dict) or error.get("code") != _RATE_LIMIT_ERROR_CODE:
                return data

            if attempt >= max_retries:
                logger.error(
                    "Deezer API rate limited after %d retries: %s", max_retries, endpoint
                )
                return data

            wait_time = await self._rate_limiter.handle_rate_limit_response()
            logger.warning(
                "Deezer rate limit (attempt %d/%d): waited %.1fs, retrying %s",
                attempt + 1,
                max_retries,
                wait_time,
                endpoint,
            )

        return data

    async def get_track_by_isrc(self, isrc: str) -> DeezerTrack | None:
        """Get track by ISRC code.

        ISRC identifies a recording, so a hit here is the same audio as the Spotify track.

        Returns:
            DeezerTrack or None if not found
        """
        data = await self._api_request(f"/track/isrc:{quote(isrc, safe='')}")
        if not isinstance(data, dict) or "error" in data or "id" not in data:
            return None
        return self._parse_track(data)

    async def search_tracks(self, query: str, limit: int = 1) -> list[DeezerTrack]:
        """Search tracks with Deezer's advanced query syntax."""
        data = await self._api_request("/search", params={"q": query, "limit": limit})
        if not isinstance(data, dict):
            return []
        return [
            self._parse_track(item)
            for item in data.get("data") or []
            if isinstance(item, dict) and "id" in item
        ]

    async def lookup_by_code(self, code: str) -> str | None:
        if not self.settings.enabled or not code:
            return None
        try:
            track = await self.get_track_by_isrc(code)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Deezer ISRC lookup failed for %s: %s", code, e)
            return None
        return track.preview if track and track.preview else None

    async def lookup_by_text(self, title: str, artist: str) -> str | None:
        if not self.settings.enabled or not title:
            return None
        query = f'track:"{_strip_quotes(title)}" artist:"{_strip_quotes(artist)}"'
        try:
            tracks = await self.search_tracks(query, limit=1)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Deezer search failed for %r: %s", query, e)
            return None
        if not tracks:
            return None
        return tracks[0].preview or None

    def _parse_track(self, data: dict[str, Any]) -> DeezerTrack:
        artist_data = data.get("artist") or {}
        return DeezerTrack(
            id=data["id"],
            title=data.get("title", ""),
            artist_name=artist_data.get("name", ""),
            isrc=data.get("isrc"),
            preview=data.get("preview") or None,
        )


def _strip_quotes(value: str) -> str:
    # A stray quote would end the quoted term early
    return value.replace('"', "")
