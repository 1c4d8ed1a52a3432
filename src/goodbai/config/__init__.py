"""Configuration module for goodbai."""

from .settings import (
    DeezerSettings,
    InferenceSettings,
    ObservabilitySettings,
    ProxySettings,
    RateLimitSettings,
    ScanSettings,
    Settings,
    SpotifySettings,
    get_settings,
)

__all__ = [
    "DeezerSettings",
    "InferenceSettings",
    "ObservabilitySettings",
    "ProxySettings",
    "RateLimitSettings",
    "ScanSettings",
    "Settings",
    "SpotifySettings",
    "get_settings",
]
