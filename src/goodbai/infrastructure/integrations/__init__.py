"""External service clients (Spotify, Deezer, audio CDN proxy)."""

from goodbai.infrastructure.integrations.audio_proxy import AudioProxy, ProxiedAudio
from goodbai.infrastructure.integrations.deezer_client import DeezerClient, DeezerTrack
from goodbai.infrastructure.integrations.spotify_auth_client import SpotifyTokenRefresher
from goodbai.infrastructure.integrations.spotify_client import (
    LIKED_SONGS_ID,
    Page,
    SpotifyClient,
)

__all__ = [
    "LIKED_SONGS_ID",
    "AudioProxy",
    "DeezerClient",
    "DeezerTrack",
    "Page",
    "ProxiedAudio",
    "SpotifyClient",
    "SpotifyTokenRefresher",
]
