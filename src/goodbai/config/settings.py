"""Application settings loaded from environment variables and .env."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SpotifySettings(BaseSettings):
    """Spotify Web API and token endpoint settings."""

    model_config = SettingsConfigDict(
        env_prefix="SPOTIFY_", env_file=".env", extra="ignore"
    )

    client_id: str = ""
    client_secret: str = ""
    api_base_url: str = "https://api.spotify.com/v1"
    token_url: str = "https://accounts.spotify.com/api/token"  # nosec B105 - public endpoint URL
    timeout: float = 30.0
    # Attributes for re-issuing the refresh token cookie after Spotify rotates it
    refresh_cookie_max_age: int = 30 * 24 * 60 * 60
    refresh_cookie_secure: bool = True

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id.strip() and self.client_secret.strip())


class RateLimitSettings(BaseSettings):
    """Reactive (429) and proactive (inter-request delay) rate limit policy.

    Hey future me - max_retry_after_seconds is the "don't hang the UI" ceiling. If Spotify
    asks for more than that we fail fast with RateLimited instead of sleeping for minutes.
    """

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_", env_file=".env", extra="ignore"
    )

    max_attempts: int = Field(default=3, ge=1)
    max_retry_after_seconds: float = Field(default=30.0, gt=0)
    backoff_base_seconds: float = Field(default=5.0, gt=0)
    page_delay_seconds: float = Field(default=0.15, ge=0)
    batch_delay_seconds: float = Field(default=0.2, ge=0)


class DeezerSettings(BaseSettings):
    """Deezer public API settings (fallback preview lookup)."""

    model_config = SettingsConfigDict(
        env_prefix="DEEZER_", env_file=".env", extra="ignore"
    )

    enabled: bool = True
    api_base_url: str = "https://api.deezer.com"
    timeout: float = 15.0


class ProxySettings(BaseSettings):
    """Audio proxy host allowlist."""

    model_config = SettingsConfigDict(
        env_prefix="PROXY_", env_file=".env", extra="ignore"
    )

    allowed_hosts: list[str] = Field(
        default_factory=lambda: [
            "p.scdn.co",
            "audio-ak-spotify-com.akamaized.net",
            "audio-akp-spotify-com.akamaized.net",
            "preview.spotifycdn.com",
        ]
    )
    # Deezer preview CDN hosts look like cdns-preview-d.dzcdn.net / cdn-preview-1.dzcdn.net
    allowed_host_suffix: str = ".dzcdn.net"
    allowed_host_prefixes: list[str] = Field(
        default_factory=lambda: ["cdns-preview-", "cdn-preview-"]
    )
    timeout: float = 20.0
    user_agent: str = "goodbAI/1.0"
    # A 30s preview is ~1 MB; anything far beyond that is not a preview clip
    max_bytes: int = Field(default=10 * 1024 * 1024, gt=0)


class InferenceSettings(BaseSettings):
    """Classifier model and windowing settings."""

    model_config = SettingsConfigDict(
        env_prefix="INFERENCE_", env_file=".env", extra="ignore"
    )

    model_path: Path = Path("models/sonics_model.onnx")
    sample_rate: int = 44100
    window_seconds: int = 5
    input_name: str = "audio"
    output_name: str = "prob"
    intra_op_num_threads: int = 1

    @property
    def window_length(self) -> int:
        return self.sample_rate * self.window_seconds


class ScanSettings(BaseSettings):
    """Scan pipeline settings."""

    model_config = SettingsConfigDict(
        env_prefix="SCAN_", env_file=".env", extra="ignore"
    )

    track_delay_seconds: float = Field(default=0.2, ge=0)
    capture_duration_ms: int = Field(default=6000, gt=0)
    extra_blocklist: list[str] = Field(default_factory=list)
    blocklist_file: Path | None = None
    stop_timeout_seconds: float = Field(default=10.0, gt=0)
    # Finished scans are kept for the UI until this old, and never more than max_sessions total
    session_ttl_seconds: float = Field(default=3600.0, gt=0)
    max_sessions: int = Field(default=100, ge=1)


class ObservabilitySettings(BaseSettings):
    """Logging settings."""

    model_config = SettingsConfigDict(
        env_prefix="OBSERVABILITY_", env_file=".env", extra="ignore"
    )

    log_json_format: bool = False


class Settings(BaseSettings):
    """Root settings object.

    Hey future me - each section reads its own env prefix (SPOTIFY_, SCAN_, ...), so the
    nested default_factory calls are what actually pull values from the environment.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "goodbai"
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = Field(default=8000, ge=1, le=65535)

    spotify: SpotifySettings = Field(default_factory=SpotifySettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    deezer: DeezerSettings = Field(default_factory=DeezerSettings)
    proxy: ProxySettings = Field(default_factory=ProxySettings)
    inference: InferenceSettings = Field(default_factory=InferenceSettings)
    scan: ScanSettings = Field(default_factory=ScanSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings (cached)."""
    return Settings()
