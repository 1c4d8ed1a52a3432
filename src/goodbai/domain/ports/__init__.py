"""Domain ports (interfaces) for dependency inversion.

Hey future me - every external collaborator of the scan core is a PORT here. The
orchestrator and services only ever see these ABCs; concrete adapters live in
infrastructure/ and tests swap in fakes. If you change a signature here, ALL adapters
and test fakes must follow.
"""

from abc import ABC, abstractmethod

import numpy as np

from goodbai.domain.entities import Credentials, ScanProgress, ScanResult, Track


class ITrackSource(ABC):
    """Playlist provider: lists and removes playlist tracks."""

    @abstractmethod
    async def list_playlist_tracks(self, playlist_id: str) -> list[Track]:
        """Fetch every track of a playlist, in playlist order."""

    @abstractmethod
    async def remove_tracks(self, playlist_id: str, uris: list[str]) -> None:
        """Remove tracks (by URI) from a playlist."""


class ITokenRefresher(ABC):
    """Auth collaborator: exchanges the stored refresh token for a new access token."""

    @abstractmethod
    async def refresh(self) -> Credentials:
        """Return fresh credentials.

        Raises:
            AuthExpired: If the refresh token is rejected
        """


class IPreviewLookup(ABC):
    """Fallback preview provider (Deezer)."""

    @abstractmethod
    async def lookup_by_code(self, code: str) -> str | None:
        """Exact lookup by ISRC; returns a preview URL or None."""

    @abstractmethod
    async def lookup_by_text(self, title: str, artist: str) -> str | None:
        """Free-text lookup; returns the first hit's preview URL or None."""


class IAudioFetcher(ABC):
    """Retrieves preview bytes through the allowlisting proxy."""

    @abstractmethod
    async def fetch(self, url: str) -> bytes:
        """Fetch raw audio bytes.

        Raises:
            HostNotAllowed: If the URL host is not an allowed audio CDN
            AudioUnavailable: If the upstream fetch failed
        """


class IAudioDecoder(ABC):
    """Decodes compressed audio into a mono sample buffer at a fixed rate."""

    @abstractmethod
    async def decode(self, data: bytes) -> np.ndarray:
        """Decode bytes to a 1-D float32 array.

        Raises:
            AudioDecodeFailed: If the bytes cannot be decoded
        """


class IClassifierSession(ABC):
    """A loaded classifier. NOT safe for concurrent invocation."""

    @abstractmethod
    async def run(self, window: np.ndarray) -> float:
        """Run the model over a fixed-length window and return P(AI-generated)."""


class IClassifierRuntime(ABC):
    """Loads classifier sessions (the expensive part)."""

    @abstractmethod
    async def load(self) -> IClassifierSession:
        """Create a ready-to-run session."""


class ILiveCaptureDevice(ABC):
    """Playback session able to capture a short window of a track's audio."""

    @abstractmethod
    async def initialize(self) -> None:
        """Connect the device; raises if it cannot become ready."""

    @abstractmethod
    def is_ready(self) -> bool:
        """Whether capture_window can be called."""

    @abstractmethod
    async def capture_window(self, track_uri: str, duration_ms: int) -> np.ndarray | None:
        """Play the track and capture duration_ms of mono audio, or None on failure."""

    @abstractmethod
    async def release(self) -> None:
        """Disconnect and free the device."""


class IScanObserver(ABC):
    """Receives incremental scan output. Implementations must not block."""

    @abstractmethod
    def on_progress(self, progress: ScanProgress) -> None:
        """Called with a snapshot whenever progress changes."""

    @abstractmethod
    def on_result(self, result: ScanResult) -> None:
        """Called whenever a result is produced or updated."""


__all__ = [
    "IAudioDecoder",
    "IAudioFetcher",
    "IClassifierRuntime",
    "IClassifierSession",
    "ILiveCaptureDevice",
    "IPreviewLookup",
    "IScanObserver",
    "ITokenRefresher",
    "ITrackSource",
]
