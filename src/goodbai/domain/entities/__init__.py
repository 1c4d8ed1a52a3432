"""Domain entities."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Hey future me - these two thresholds are THE classification boundaries!
# Everything downstream (risk level, flagged count, stats) derives from them.
# Change them here and nowhere else.
HIGH_THRESHOLD = 0.75
MEDIUM_THRESHOLD = 0.40


class RiskLevel(str, Enum):
    """Classification bucket derived from blocklist match and audio score."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNKNOWN = "unknown"


class DetectionMethod(str, Enum):
    """Which mechanism(s) produced the risk level."""

    BLOCKLIST = "blocklist"
    AUDIO_ANALYSIS = "audio_analysis"
    BOTH = "both"


class AudioSource(str, Enum):
    """Where the analysed audio came from."""

    NATIVE_PREVIEW = "native_preview"  # Spotify preview_url
    FALLBACK_PREVIEW = "fallback_preview"  # Deezer preview via ISRC/text lookup
    LIVE_CAPTURE = "live_capture"  # Captured from an active playback session
    NONE = "none"


class ScanPhase(str, Enum):
    """Phase of a running scan as reported in ScanProgress."""

    BLOCKLIST = "blocklist"
    AUDIO = "audio"
    COMPLETE = "complete"


class ScanStatus(str, Enum):
    """Lifecycle status of a ScanState."""

    IDLE = "idle"
    LOADING_TRACKS = "loading_tracks"
    SCANNING = "scanning"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class Artist:
    """Artist credit on a track."""

    id: str | None
    name: str
    uri: str | None = None


@dataclass(frozen=True)
class Album:
    """Album a track belongs to."""

    id: str | None
    name: str
    image_url: str | None = None


# Hey future me - Track is IMMUTABLE (frozen) on purpose. Once fetched from Spotify it never
# changes during a scan; everything mutable lives on ScanResult. preview_url and isrc are
# nullable - Spotify killed preview_url for most new apps, which is why the Deezer fallback
# (keyed on ISRC) exists at all.
@dataclass(frozen=True)
class Track:
    """A playlist track as fetched from the track source."""

    id: str
    name: str
    artists: tuple[Artist, ...]
    album: Album | None
    duration_ms: int
    uri: str
    preview_url: str | None = None
    isrc: str | None = None

    @property
    def primary_artist_name(self) -> str:
        """Name of the first credited artist, or empty string."""
        return self.artists[0].name if self.artists else ""

    @property
    def label(self) -> str:
        """Human-readable "Artist – Title" label used in progress reports."""
        return f"{self.primary_artist_name} – {self.name}"


def derive_risk_level(audio_score: float | None, blocklist_match: bool) -> RiskLevel:
    """Derive the risk level from blocklist match and audio score.

    Blocklist match always wins; a missing score without a match is unknown.
    """
    if blocklist_match:
        return RiskLevel.HIGH
    if audio_score is None:
        return RiskLevel.UNKNOWN
    if audio_score >= HIGH_THRESHOLD:
        return RiskLevel.HIGH
    if audio_score >= MEDIUM_THRESHOLD:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def derive_detection_method(
    audio_score: float | None, blocklist_match: bool
) -> DetectionMethod:
    """Derive which mechanism(s) produced the classification."""
    if blocklist_match and audio_score is not None:
        return DetectionMethod.BOTH
    if blocklist_match:
        return DetectionMethod.BLOCKLIST
    return DetectionMethod.AUDIO_ANALYSIS


# Yo, ScanResult is the ONE mutable record per track. risk_level and detection_method are
# NEVER assigned directly - call apply_score()/rederive() so they stay a pure function of
# (blocklist_match, audio_score). selected belongs to the consumer (UI/API), the orchestrator
# never touches it after creation.
@dataclass
class ScanResult:
    """Detection outcome for one track."""

    track: Track
    blocklist_match: bool = False
    matched_artists: list[str] = field(default_factory=list)
    audio_score: float | None = None
    audio_source: AudioSource = AudioSource.NONE
    risk_level: RiskLevel = RiskLevel.UNKNOWN
    detection_method: DetectionMethod = DetectionMethod.AUDIO_ANALYSIS
    selected: bool = False

    def __post_init__(self) -> None:
        self.rederive()

    @classmethod
    def from_blocklist(cls, track: Track, matched_artists: list[str]) -> "ScanResult":
        """Build the blocklist-phase result for a track."""
        return cls(
            track=track,
            blocklist_match=bool(matched_artists),
            matched_artists=list(matched_artists),
        )

    @property
    def track_id(self) -> str:
        return self.track.id

    @property
    def is_flagged(self) -> bool:
        """Flagged means high or medium risk."""
        return self.risk_level in (RiskLevel.HIGH, RiskLevel.MEDIUM)

    def rederive(self) -> None:
        """Recompute risk level and detection method from the current inputs."""
        self.risk_level = derive_risk_level(self.audio_score, self.blocklist_match)
        self.detection_method = derive_detection_method(
            self.audio_score, self.blocklist_match
        )

    def apply_score(self, score: float, source: AudioSource) -> None:
        """Record an audio score and re-derive the classification."""
        self.audio_score = score
        self.audio_source = source
        self.rederive()

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses and SSE events."""
        return {
            "track_id": self.track.id,
            "track_name": self.track.name,
            "artists": [artist.name for artist in self.track.artists],
            "album": self.track.album.name if self.track.album else None,
            "uri": self.track.uri,
            "audio_score": self.audio_score,
            "blocklist_match": self.blocklist_match,
            "matched_artists": list(self.matched_artists),
            "detection_method": self.detection_method.value,
            "risk_level": self.risk_level.value,
            "audio_source": self.audio_source.value,
            "selected": self.selected,
        }


@dataclass
class ScanProgress:
    """Incremental progress of a scan.

    Counters only grow within a phase and are reset at phase transitions.
    """

    phase: ScanPhase = ScanPhase.BLOCKLIST
    total_tracks: int = 0
    processed_tracks: int = 0
    flagged_count: int = 0
    current_track: str | None = None

    def snapshot(self) -> "ScanProgress":
        """Copy handed to observers so later mutation does not leak."""
        return ScanProgress(
            phase=self.phase,
            total_tracks=self.total_tracks,
            processed_tracks=self.processed_tracks,
            flagged_count=self.flagged_count,
            current_track=self.current_track,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "total_tracks": self.total_tracks,
            "processed_tracks": self.processed_tracks,
            "flagged_count": self.flagged_count,
            "current_track": self.current_track,
        }


@dataclass
class ScanState:
    """Aggregate state of one scan run, owned by the orchestrator."""

    playlist_id: str
    status: ScanStatus = ScanStatus.IDLE
    progress: ScanProgress = field(default_factory=ScanProgress)
    results: list[ScanResult] = field(default_factory=list)
    error: str | None = None
    cancelled: bool = False

    def result_for(self, track_id: str) -> ScanResult | None:
        for result in self.results:
            if result.track.id == track_id:
                return result
        return None

    @property
    def is_finished(self) -> bool:
        return self.status in (ScanStatus.COMPLETE, ScanStatus.ERROR)

    # --- consumer-owned selection ---

    def toggle_selection(self, track_id: str) -> bool:
        """Flip selected for one track; returns False if the track is unknown."""
        result = self.result_for(track_id)
        if result is None:
            return False
        result.selected = not result.selected
        return True

    def select_all_flagged(self) -> int:
        """Select every high/medium result, leaving other selections as they are."""
        count = 0
        for result in self.results:
            if result.is_flagged:
                result.selected = True
                count += 1
        return count

    def deselect_all(self) -> None:
        for result in self.results:
            result.selected = False

    def selected_uris(self) -> list[str]:
        return [result.track.uri for result in self.results if result.selected]

    def drop_results(self, uris: list[str]) -> None:
        """Remove results whose track URI is in uris (after removal upstream)."""
        removed = set(uris)
        self.results = [r for r in self.results if r.track.uri not in removed]

    def to_dict(self) -> dict[str, Any]:
        return {
            "playlist_id": self.playlist_id,
            "status": self.status.value,
            "cancelled": self.cancelled,
            "progress": self.progress.to_dict(),
            "results": [result.to_dict() for result in self.results],
            "error": self.error,
        }


@dataclass(frozen=True)
class Credentials:
    """OAuth credentials as returned by the auth collaborator.

    expires_at is a unix timestamp in seconds.
    """

    access_token: str
    refresh_token: str | None
    expires_at: float


@dataclass(frozen=True)
class ScanStats:
    """Aggregate counts over a result set."""

    total: int
    high: int
    medium: int
    low: int
    unknown: int
    blocklist_matches: int
    no_preview: int
    fallback_previews: int
    live_captures: int

    @property
    def flagged(self) -> int:
        return self.high + self.medium

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "high": self.high,
            "medium": self.medium,
            "low": self.low,
            "unknown": self.unknown,
            "blocklist_matches": self.blocklist_matches,
            "no_preview": self.no_preview,
            "fallback_previews": self.fallback_previews,
            "live_captures": self.live_captures,
            "flagged": self.flagged,
        }


def summarize_results(results: list[ScanResult]) -> ScanStats:
    """Count results per risk level and audio source."""

    def count(level: RiskLevel) -> int:
        return sum(1 for r in results if r.risk_level == level)

    return ScanStats(
        total=len(results),
        high=count(RiskLevel.HIGH),
        medium=count(RiskLevel.MEDIUM),
        low=count(RiskLevel.LOW),
        unknown=count(RiskLevel.UNKNOWN),
        blocklist_matches=sum(1 for r in results if r.blocklist_match),
        no_preview=sum(
            1
            for r in results
            if r.audio_source == AudioSource.NONE and not r.blocklist_match
        ),
        fallback_previews=sum(
            1 for r in results if r.audio_source == AudioSource.FALLBACK_PREVIEW
        ),
        live_captures=sum(
            1 for r in results if r.audio_source == AudioSource.LIVE_CAPTURE
        ),
    )


__all__ = [
    "HIGH_THRESHOLD",
    "MEDIUM_THRESHOLD",
    "Album",
    "Artist",
    "AudioSource",
    "Credentials",
    "DetectionMethod",
    "RiskLevel",
    "ScanPhase",
    "ScanProgress",
    "ScanResult",
    "ScanState",
    "ScanStats",
    "ScanStatus",
    "Track",
    "derive_detection_method",
    "derive_risk_level",
    "summarize_results",
]
