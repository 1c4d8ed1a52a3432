"""Shared test fixtures."""

from collections.abc import Callable

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from goodbai.api.app import create_app
from goodbai.domain.entities import Album, Artist, Track


def build_track(
    track_id: str,
    artist: str = "Some Artist",
    name: str | None = None,
    preview_url: str | None = None,
    isrc: str | None = None,
    extra_artists: tuple[str, ...] = (),
) -> Track:
    artists = tuple(
        Artist(id=f"artist-{i}", name=artist_name)
        for i, artist_name in enumerate((artist, *extra_artists))
    )
    return Track(
        id=track_id,
        name=name or f"Song {track_id}",
        artists=artists,
        album=Album(id="album-1", name="Album"),
        duration_ms=180_000,
        uri=f"spotify:track:{track_id}",
        preview_url=preview_url,
        isrc=isrc,
    )


@pytest.fixture
def make_track() -> Callable[..., Track]:
    """Factory for Track objects with sensible defaults."""
    return build_track


# The app is created without entering its lifespan, so API tests wire app.state themselves
@pytest.fixture
def app() -> FastAPI:
    return create_app()


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)
