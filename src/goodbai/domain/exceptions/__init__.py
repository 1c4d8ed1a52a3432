"""Domain exceptions."""

import math
from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing
    # str(exception). Don't raise this directly - always use a specific subclass so callers
    # (orchestrator, API exception handlers) can catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class ConfigurationError(DomainException):
    """Required configuration is missing or invalid.

    HTTP Status: 503
    """


# =============================================================================
# LIST-LEVEL ERRORS
# These abort a scan (state -> error) and surface a user-facing message.
# =============================================================================


class AuthExpired(DomainException):
    """Access token was rejected and the refresh failed.

    HTTP Status: 401
    """

    def __init__(
        self,
        message: str = "Spotify session expired. Please log in again.",
        http_status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.http_status = http_status


def format_wait_estimate(wait_seconds: float) -> str:
    """Round a wait to a human estimate: "~N minute(s)" or "~N hour(s)"."""
    minutes = max(1, math.ceil(wait_seconds / 60))
    if minutes >= 60:
        return f"~{math.ceil(minutes / 60)} hour(s)"
    return f"~{minutes} minute(s)"


class RateLimited(DomainException):
    """Upstream kept answering 429, or asked us to wait longer than we are willing to.

    HTTP Status: 429
    """

    def __init__(self, wait_seconds: float | None = None, message: str | None = None) -> None:
        self.wait_seconds = wait_seconds
        self.wait_estimate = (
            format_wait_estimate(wait_seconds) if wait_seconds is not None else None
        )
        if message is None:
            if self.wait_estimate:
                message = (
                    f"Spotify rate limit: try again in {self.wait_estimate}. "
                    "This can happen after many rapid requests."
                )
            else:
                message = (
                    "Spotify rate limit: too many retries. "
                    "Please wait a moment and try again."
                )
        super().__init__(message)


class UpstreamHTTPError(DomainException):
    """Upstream returned a non-2xx status we don't handle specially.

    HTTP Status: 502
    """

    def __init__(self, status: int, url: str | None = None, reason: str = "") -> None:
        message = f"Spotify API error: {status} {reason}".rstrip()
        super().__init__(message)
        self.status = status
        self.url = url


# =============================================================================
# PER-TRACK ERRORS
# Caught at the track boundary; the track keeps its blocklist-only classification.
# =============================================================================


class TrackAnalysisError(DomainException):
    """Base for recoverable failures while analysing a single track."""


class AudioUnavailable(TrackAnalysisError):
    """No audio could be obtained (proxy rejected or upstream fetch failed).

    HTTP Status: 502
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class AudioDecodeFailed(TrackAnalysisError):
    """Audio bytes could not be decoded to a sample buffer."""


class InferenceFailed(TrackAnalysisError):
    """The classifier failed or returned an invalid probability."""


# =============================================================================
# PROXY / API
# =============================================================================


class HostNotAllowed(DomainException):
    """Proxy target host is not on the audio CDN allowlist.

    HTTP Status: 403
    """

    def __init__(self, host: str | None) -> None:
        super().__init__("URL not from an allowed audio host")
        self.host = host


class InvalidAudioUrl(DomainException):
    """Proxy target is missing or not an absolute http(s) URL.

    HTTP Status: 400
    """


class ScanNotFound(DomainException):
    """No scan with this id exists in the session manager.

    HTTP Status: 404
    """

    def __init__(self, scan_id: str) -> None:
        super().__init__(f"Scan {scan_id} not found")
        self.scan_id = scan_id


__all__ = [
    "AudioDecodeFailed",
    "AudioUnavailable",
    "AuthExpired",
    "ConfigurationError",
    "DomainException",
    "HostNotAllowed",
    "InferenceFailed",
    "InvalidAudioUrl",
    "RateLimited",
    "ScanNotFound",
    "TrackAnalysisError",
    "UpstreamHTTPError",
    "format_wait_estimate",
]
