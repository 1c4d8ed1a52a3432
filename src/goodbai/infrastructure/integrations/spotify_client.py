"""Rate-limited Spotify Web API client for playlist reads and track removal."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from goodbai.config.settings import RateLimitSettings, SpotifySettings
from goodbai.domain.entities import Album, Artist, Credentials, Track
from goodbai.domain.exceptions import AuthExpired, RateLimited, UpstreamHTTPError
from goodbai.domain.ports import ITokenRefresher, ITrackSource
from goodbai.infrastructure.observability.log_messages import LogMessages
from goodbai.infrastructure.rate_limiter import RetryPolicy

logger = logging.getLogger(__name__)

LIKED_SONGS_ID = "liked"

_PLAYLIST_TRACK_FIELDS = (
    "items(added_at,track(id,name,artists(id,name,uri),album(id,name,images),"
    "duration_ms,preview_url,uri,external_urls,external_ids)),total"
)


@dataclass(frozen=True)
class Page:
    """One page of a paginated Spotify listing."""

    items: list[Any]
    total: int


class SpotifyClient(ITrackSource):
    """HTTP client for the Spotify Web API.

    Holds the current access token. All calls go through _request(), which handles
    401 (single-flight token refresh, retry once) and 429 (Retry-After / backoff with a
    ceiling). Pagination and batched deletes add small fixed delays on top of that so we
    rarely see a 429 in the first place.
    """

    PLAYLIST_PAGE_SIZE = 100
    PLAYLIST_REMOVE_BATCH_SIZE = 100
    LIKED_PAGE_SIZE = 50
    LIKED_REMOVE_BATCH_SIZE = 50
    USER_PLAYLISTS_PAGE_SIZE = 50

    # Hey future me, like the other clients we DON'T create the httpx client here - it's
    # lazily created in _get_client() so the object can be built outside a running loop.
    def __init__(
        self,
        settings: SpotifySettings,
        access_token: str,
        token_refresher: ITokenRefresher | None = None,
        rate_limit: RateLimitSettings | None = None,
        on_token_refresh: Callable[[Credentials], None] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        rate_limit = rate_limit or RateLimitSettings()
        self.settings = settings
        self._access_token = access_token
        self._token_refresher = token_refresher
        self._on_token_refresh = on_token_refresh
        self._retry_policy = RetryPolicy(
            max_attempts=rate_limit.max_attempts,
            max_retry_after_seconds=rate_limit.max_retry_after_seconds,
            backoff_base_seconds=rate_limit.backoff_base_seconds,
        )
        self._page_delay = rate_limit.page_delay_seconds
        self._batch_delay = rate_limit.batch_delay_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._refresh_task: asyncio.Task[None] | None = None

    @property
    def access_token(self) -> str:
        return self._access_token

    @property
    def token_refresher(self) -> ITokenRefresher | None:
        return self._token_refresher

    def update_token(self, access_token: str) -> None:
        self._access_token = access_token

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.settings.timeout, transport=self._transport
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # =========================================================================
    # TOKEN REFRESH (single-flight)
    # =========================================================================

    # Listen up future me: when N requests hit 401 at once, we must refresh ONCE, not N
    # times (Spotify may rotate the refresh token, and a second refresh with the old one
    # fails!). The first caller starts _refresh_task, everybody else awaits the same task.
    # If the token already changed since the caller sent its request, someone else finished
    # a refresh in the meantime - just retry with the new token.
    async def _refresh_access_token(self, stale_token: str) -> None:
        if self._access_token != stale_token:
            return

        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._do_refresh())
        task = self._refresh_task
        try:
            # shield: a caller being cancelled must not cancel the shared refresh
            await asyncio.shield(task)
        finally:
            if task.done() and self._refresh_task is task:
                self._refresh_task = None

    async def _do_refresh(self) -> None:
        if self._token_refresher is None:
            raise AuthExpired()
        try:
            credentials = await self._token_refresher.refresh()
        except AuthExpired as e:
            logger.warning(LogMessages.token_refresh_failed(e.message))
            raise
        except Exception as e:
            logger.warning(LogMessages.token_refresh_failed(str(e)))
            raise AuthExpired() from e

        self._access_token = credentials.access_token
        logger.info("Spotify access token refreshed")
        if self._on_token_refresh is not None:
            self._on_token_refresh(credentials)

    # =========================================================================
    # CENTRAL REQUEST
    # =========================================================================

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Make an authenticated request with 401/429 handling.

        Returns:
            Decoded JSON body, or None for empty/204 responses

        Raises:
            AuthExpired: If the token was rejected and could not be refreshed
            RateLimited: If 429 persisted or the requested wait is above the ceiling
            UpstreamHTTPError: For any other non-2xx status
        """
        url = endpoint if endpoint.startswith("http") else f"{self.settings.api_base_url}{endpoint}"
        client = await self._get_client()
        policy = self._retry_policy

        refreshed = False
        attempt = 0
        while True:
            token = self._access_token
            response = await client.request(
                method,
                url,
                params=params,
                json=json,
                headers={"Authorization": f"Bearer {token}"},
            )

            if response.status_code == 401:
                if refreshed:
                    # New token rejected too - nothing left to try
                    raise AuthExpired(http_status=401)
                await self._refresh_access_token(token)
                refreshed = True
                continue

            if response.status_code == 429:
                wait = policy.wait_for(response.headers.get("Retry-After"), attempt)
                if policy.exceeds_ceiling(wait):
                    logger.warning(
                        LogMessages.rate_limited(url, wait, attempt + 1, policy.max_attempts, True)
                    )
                    raise RateLimited(wait_seconds=wait)
                if not policy.has_attempts_left(attempt):
                    logger.warning(
                        LogMessages.rate_limited(url, wait, attempt + 1, policy.max_attempts, True)
                    )
                    raise RateLimited()
                logger.warning(
                    LogMessages.rate_limited(url, wait, attempt + 1, policy.max_attempts, False)
                )
                await asyncio.sleep(wait)
                attempt += 1
                continue

            if not response.is_success:
                raise UpstreamHTTPError(response.status_code, url, response.reason_phrase)

            if response.status_code == 204 or not response.content:
                return None
            return response.json()

    # =========================================================================
    # PAGINATION / BATCHING
    # =========================================================================

    async def get_page(
        self,
        endpoint: str,
        limit: int,
        offset: int,
        params: dict[str, Any] | None = None,
    ) -> Page:
        """Fetch one page of a limit/offset listing."""
        query: dict[str, Any] = {"limit": limit, "offset": offset}
        if params:
            query.update(params)
        payload = await self._request("GET", endpoint, params=query) or {}
        items = list(payload.get("items") or [])
        return Page(items=items, total=int(payload.get("total") or 0))

    async def get_all(
        self,
        endpoint: str,
        limit: int = 50,
        params: dict[str, Any] | None = None,
    ) -> list[Any]:
        """Fetch every item of a listing.

        Stops when a short page arrives or the accumulated count reaches total.
        """
        items: list[Any] = []
        offset = 0
        while True:
            page = await self.get_page(endpoint, limit, offset, params)
            items.extend(page.items)
            if len(page.items) < limit or len(items) >= page.total:
                break
            offset += limit
            await asyncio.sleep(self._page_delay)
        return items

    async def delete_batch(
        self,
        endpoint: str,
        keys: list[str],
        batch_size: int,
        body_builder: Callable[[list[str]], dict[str, Any]] | None = None,
    ) -> None:
        """Issue DELETE requests for keys in batches of batch_size."""
        build = body_builder or (lambda batch: {"ids": batch})
        for index, start in enumerate(range(0, len(keys), batch_size)):
            if index:
                await asyncio.sleep(self._batch_delay)
            await self._request("DELETE", endpoint, json=build(keys[start : start + batch_size]))

    # =========================================================================
    # PLAYLISTS / TRACKS
    # =========================================================================

    async def get_all_user_playlists(self) -> list[dict[str, Any]]:
        """List the current user's playlists (raw Spotify objects)."""
        playlists = await self.get_all("/me/playlists", limit=self.USER_PLAYLISTS_PAGE_SIZE)
        return [p for p in playlists if p]

    async def list_playlist_tracks(self, playlist_id: str) -> list[Track]:
        """Fetch all tracks of a playlist, or of the user's liked songs for "liked".

        Local files and removed tracks (no track object or no id) are skipped.
        """
        if playlist_id == LIKED_SONGS_ID:
            raw_items = await self.get_all("/me/tracks", limit=self.LIKED_PAGE_SIZE)
        else:
            raw_items = await self.get_all(
                f"/playlists/{quote(playlist_id, safe='')}/tracks",
                limit=self.PLAYLIST_PAGE_SIZE,
                params={"fields": _PLAYLIST_TRACK_FIELDS},
            )

        tracks: list[Track] = []
        for raw in raw_items:
            track_data = raw.get("track") if isinstance(raw, dict) else None
            if not isinstance(track_data, dict) or not track_data.get("id"):
                continue
            tracks.append(parse_track(track_data))
        return tracks

    async def remove_tracks(self, playlist_id: str, uris: list[str]) -> None:
        """Remove tracks from a playlist, or from liked songs for "liked"."""
        if not uris:
            return
        if playlist_id == LIKED_SONGS_ID:
            ids = [uri.rsplit(":", 1)[-1] for uri in uris]
            await self.delete_batch("/me/tracks", ids, self.LIKED_REMOVE_BATCH_SIZE)
            return
        await self.delete_batch(
            f"/playlists/{quote(playlist_id, safe='')}/tracks",
            uris,
            self.PLAYLIST_REMOVE_BATCH_SIZE,
            body_builder=lambda batch: {"tracks": [{"uri": uri} for uri in batch]},
        )


def parse_track(data: dict[str, Any]) -> Track:
    """Parse a Spotify track object into a Track."""
    artists = tuple(
        Artist(id=a.get("id"), name=a.get("name") or "", uri=a.get("uri"))
        for a in data.get("artists") or []
        if isinstance(a, dict)
    )
    album_data = data.get("album")
    album = None
    if isinstance(album_data, dict):
        images = album_data.get("images") or []
        album = Album(
            id=album_data.get("id"),
            name=album_data.get("name") or "",
            image_url=images[0].get("url") if images and isinstance(images[0], dict) else None,
        )
    external_ids = data.get("external_ids") or {}
    return Track(
        id=str(data["id"]),
        name=data.get("name") or "",
        artists=artists,
        album=album,
        duration_ms=int(data.get("duration_ms") or 0),
        uri=data.get("uri") or f"spotify:track:{data['id']}",
        preview_url=data.get("preview_url") or None,
        isrc=external_ids.get("isrc") or None,
    )
