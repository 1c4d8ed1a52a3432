"""Tests for the Spotify API client: pagination, 429 retry and 401 refresh."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from goodbai.config.settings import RateLimitSettings, SpotifySettings
from goodbai.domain.entities import Credentials
from goodbai.domain.exceptions import AuthExpired, RateLimited, UpstreamHTTPError
from goodbai.infrastructure.integrations.spotify_client import (
    LIKED_SONGS_ID,
    SpotifyClient,
    parse_track,
)

SLEEP_PATH = "goodbai.infrastructure.integrations.spotify_client.asyncio.sleep"


@pytest.fixture
def settings() -> SpotifySettings:
    return SpotifySettings(client_id="id", client_secret="secret")


@pytest.fixture
def rate_limit() -> RateLimitSettings:
    return RateLimitSettings(
        max_attempts=3,
        max_retry_after_seconds=30.0,
        backoff_base_seconds=5.0,
        page_delay_seconds=0.15,
        batch_delay_seconds=0.2,
    )


@pytest.fixture
def make_client(settings, rate_limit):
    def _make(handler, token_refresher=None, on_token_refresh=None) -> SpotifyClient:
        return SpotifyClient(
            settings,
            access_token="old-token",
            token_refresher=token_refresher,
            rate_limit=rate_limit,
            on_token_refresh=on_token_refresh,
            transport=httpx.MockTransport(handler),
        )

    return _make


def track_item(track_id: str) -> dict:
    return {
        "track": {
            "id": track_id,
            "name": f"Song {track_id}",
            "artists": [{"id": "a1", "name": "Artist", "uri": "spotify:artist:a1"}],
            "album": {"id": "al1", "name": "Album", "images": [{"url": "https://i/1.jpg"}]},
            "duration_ms": 200000,
            "uri": f"spotify:track:{track_id}",
            "preview_url": None,
            "external_ids": {"isrc": "USRC17607839"},
        }
    }


class TestPagination:
    """Test limit/offset pagination."""

    async def test_fetches_all_pages(self, make_client, mocker):
        """Test that 125 items at limit 50 take exactly three requests."""
        sleep = mocker.patch(SLEEP_PATH, new_callable=AsyncMock)
        offsets: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            offset = int(request.url.params["offset"])
            limit = int(request.url.params["limit"])
            offsets.append(offset)
            count = max(0, min(limit, 125 - offset))
            return httpx.Response(
                200, json={"items": [{"n": offset + i} for i in range(count)], "total": 125}
            )

        client = make_client(handler)
        items = await client.get_all("/me/playlists", limit=50)

        assert len(items) == 125
        assert offsets == [0, 50, 100]
        assert sleep.await_count == 2
        sleep.assert_awaited_with(0.15)

    async def test_stops_on_short_page(self, make_client, mocker):
        """Test that a short page ends pagination even if total claims more."""
        mocker.patch(SLEEP_PATH, new_callable=AsyncMock)
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, json={"items": [{}] * 10, "total": 500})

        client = make_client(handler)
        items = await client.get_all("/me/tracks", limit=50)

        assert len(items) == 10
        assert calls == 1

    async def test_empty_listing(self, make_client, mocker):
        mocker.patch(SLEEP_PATH, new_callable=AsyncMock)
        client = make_client(lambda request: httpx.Response(200, json={"items": [], "total": 0}))

        assert await client.get_all("/me/tracks") == []


class TestRateLimitHandling:
    """Test 429 handling."""

    async def test_retry_after_then_success(self, make_client, mocker):
        """Test that Retry-After: 10 sleeps 10s once and then succeeds."""
        sleep = mocker.patch(SLEEP_PATH, new_callable=AsyncMock)
        responses = iter(
            [
                httpx.Response(429, headers={"Retry-After": "10"}),
                httpx.Response(200, json={"items": [], "total": 0}),
            ]
        )
        client = make_client(lambda request: next(responses))

        page = await client.get_page("/me/playlists", limit=50, offset=0)

        assert page.items == []
        sleep.assert_awaited_once_with(10.0)

    async def test_retry_after_above_ceiling_fails_fast(self, make_client, mocker):
        """Test that a one hour Retry-After raises immediately without sleeping."""
        sleep = mocker.patch(SLEEP_PATH, new_callable=AsyncMock)
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(429, headers={"Retry-After": "3600"})

        client = make_client(handler)

        with pytest.raises(RateLimited) as exc_info:
            await client.get_page("/me/playlists", limit=50, offset=0)

        assert exc_info.value.wait_seconds == 3600.0
        assert exc_info.value.wait_estimate == "~1 hour(s)"
        assert calls == 1
        sleep.assert_not_awaited()

    async def test_gives_up_after_max_attempts(self, make_client, mocker):
        """Test exponential backoff and the too-many-retries error."""
        sleep = mocker.patch(SLEEP_PATH, new_callable=AsyncMock)
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(429)

        client = make_client(handler)

        with pytest.raises(RateLimited) as exc_info:
            await client.get_page("/me/playlists", limit=50, offset=0)

        assert calls == 3
        assert [c.args[0] for c in sleep.await_args_list] == [5.0, 10.0]
        assert exc_info.value.wait_seconds is None
        assert "too many retries" in exc_info.value.message


class TestTokenRefresh:
    """Test 401 handling and single-flight refresh."""

    async def test_refresh_and_retry(self, make_client):
        seen_tokens: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            auth = request.headers["Authorization"]
            seen_tokens.append(auth)
            if auth == "Bearer old-token":
                return httpx.Response(401)
            return httpx.Response(200, json={"items": [], "total": 0})

        refresher = MagicMock()
        refresher.refresh = AsyncMock(
            return_value=Credentials("new-token", "refresh", expires_at=0.0)
        )
        on_refresh = MagicMock()
        client = make_client(handler, token_refresher=refresher, on_token_refresh=on_refresh)

        await client.get_page("/me/playlists", limit=50, offset=0)

        assert seen_tokens == ["Bearer old-token", "Bearer new-token"]
        assert client.access_token == "new-token"
        refresher.refresh.assert_awaited_once()
        on_refresh.assert_called_once()

    async def test_concurrent_401s_refresh_once(self, make_client):
        """Test that two requests failing with 401 together share one refresh."""
        stale_requests = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal stale_requests
            if request.headers["Authorization"] == "Bearer old-token":
                stale_requests += 1
                return httpx.Response(401)
            return httpx.Response(200, json={"items": [{"ok": True}], "total": 1})

        async def slow_refresh() -> Credentials:
            await asyncio.sleep(0.01)
            return Credentials("new-token", "refresh", expires_at=0.0)

        refresher = MagicMock()
        refresher.refresh = AsyncMock(side_effect=slow_refresh)
        client = make_client(handler, token_refresher=refresher)

        first, second = await asyncio.gather(
            client.get_page("/me/playlists", limit=50, offset=0),
            client.get_page("/me/tracks", limit=50, offset=0),
        )

        assert stale_requests == 2
        assert first.total == 1
        assert second.total == 1
        refresher.refresh.assert_awaited_once()

    async def test_refresh_failure_raises_auth_expired(self, make_client):
        refresher = MagicMock()
        refresher.refresh = AsyncMock(side_effect=httpx.ConnectError("down"))
        client = make_client(lambda request: httpx.Response(401), token_refresher=refresher)

        with pytest.raises(AuthExpired):
            await client.get_page("/me/playlists", limit=50, offset=0)

    async def test_no_refresher_raises_auth_expired(self, make_client):
        client = make_client(lambda request: httpx.Response(401))

        with pytest.raises(AuthExpired):
            await client.get_page("/me/playlists", limit=50, offset=0)

    async def test_second_401_after_refresh(self, make_client):
        """Test that a rejected fresh token is not refreshed again."""
        refresher = MagicMock()
        refresher.refresh = AsyncMock(
            return_value=Credentials("new-token", None, expires_at=0.0)
        )
        client = make_client(lambda request: httpx.Response(401), token_refresher=refresher)

        with pytest.raises(AuthExpired):
            await client.get_page("/me/playlists", limit=50, offset=0)

        refresher.refresh.assert_awaited_once()


class TestErrors:
    """Test non-retryable upstream errors."""

    async def test_server_error(self, make_client):
        client = make_client(lambda request: httpx.Response(500))

        with pytest.raises(UpstreamHTTPError) as exc_info:
            await client.get_page("/me/playlists", limit=50, offset=0)

        assert exc_info.value.status == 500

    async def test_empty_body_returns_none(self, make_client):
        client = make_client(lambda request: httpx.Response(204))

        assert await client._request("DELETE", "/me/tracks", json={"ids": ["x"]}) is None


class TestPlaylistTracks:
    """Test track listing."""

    async def test_playlist_tracks_skip_local_and_removed(self, make_client, mocker):
        mocker.patch(SLEEP_PATH, new_callable=AsyncMock)
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            items = [track_item("t1"), {"track": None}, {"track": {"id": None}}, track_item("t2")]
            return httpx.Response(200, json={"items": items, "total": 4})

        client = make_client(handler)
        tracks = await client.list_playlist_tracks("pl1")

        assert [t.id for t in tracks] == ["t1", "t2"]
        assert requests[0].url.path == "/v1/playlists/pl1/tracks"
        assert requests[0].url.params["limit"] == "100"
        assert "fields" in requests[0].url.params

    async def test_liked_songs(self, make_client, mocker):
        mocker.patch(SLEEP_PATH, new_callable=AsyncMock)
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"items": [track_item("t1")], "total": 1})

        client = make_client(handler)
        tracks = await client.list_playlist_tracks(LIKED_SONGS_ID)

        assert len(tracks) == 1
        assert requests[0].url.path == "/v1/me/tracks"
        assert requests[0].url.params["limit"] == "50"

    def test_parse_track(self):
        track = parse_track(track_item("t9")["track"])

        assert track.id == "t9"
        assert track.primary_artist_name == "Artist"
        assert track.album is not None
        assert track.album.image_url == "https://i/1.jpg"
        assert track.isrc == "USRC17607839"
        assert track.preview_url is None


class TestRemoveTracks:
    """Test batched removal."""

    async def test_playlist_removal_batches_of_100(self, make_client, mocker):
        sleep = mocker.patch(SLEEP_PATH, new_callable=AsyncMock)
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "DELETE"
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"snapshot_id": "s"})

        client = make_client(handler)
        uris = [f"spotify:track:{i}" for i in range(150)]

        await client.remove_tracks("pl", uris)

        assert [len(b["tracks"]) for b in bodies] == [100, 50]
        assert bodies[0]["tracks"][0] == {"uri": "spotify:track:0"}
        sleep.assert_awaited_once_with(0.2)

    async def test_liked_removal_uses_ids(self, make_client, mocker):
        mocker.patch(SLEEP_PATH, new_callable=AsyncMock)
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200)

        client = make_client(handler)
        uris = [f"spotify:track:id{i}" for i in range(60)]

        await client.remove_tracks(LIKED_SONGS_ID, uris)

        bodies = [json.loads(r.content) for r in requests]
        assert [len(b["ids"]) for b in bodies] == [50, 10]
        assert bodies[0]["ids"][0] == "id0"
        assert requests[0].url.path == "/v1/me/tracks"

    async def test_nothing_to_remove(self, make_client):
        handler = MagicMock()
        client = make_client(handler)

        await client.remove_tracks("pl", [])

        handler.assert_not_called()
