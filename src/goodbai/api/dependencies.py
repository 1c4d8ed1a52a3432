"""Dependency injection for API endpoints."""

import hashlib
import logging
from collections.abc import AsyncGenerator, Callable
from typing import cast

from fastapi import Cookie, Depends, Header, HTTPException, Request, Response, status

from goodbai.application.services.audio_source_resolver import AudioSourceResolver
from goodbai.application.services.blocklist_matcher import BlocklistMatcher
from goodbai.application.services.inference_queue import InferenceQueue
from goodbai.application.services.scan_orchestrator import ScanOrchestrator
from goodbai.application.services.scan_sessions import ScanSession, ScanSessionManager
from goodbai.config import Settings, get_settings
from goodbai.config.settings import SpotifySettings
from goodbai.domain.entities import Credentials
from goodbai.domain.ports import IAudioDecoder
from goodbai.infrastructure.integrations.audio_proxy import AudioProxy
from goodbai.infrastructure.integrations.spotify_auth_client import SpotifyTokenRefresher
from goodbai.infrastructure.integrations.spotify_client import SpotifyClient

logger = logging.getLogger(__name__)

REFRESH_COOKIE_NAME = "spotify_refresh_token"


def _app_state(request: Request, name: str) -> object:
    if not hasattr(request.app.state, name):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{name} not initialized",
        )
    return getattr(request.app.state, name)


def get_audio_proxy(request: Request) -> AudioProxy:
    return cast(AudioProxy, _app_state(request, "audio_proxy"))


def get_scan_sessions(request: Request) -> ScanSessionManager:
    return cast(ScanSessionManager, _app_state(request, "scan_sessions"))


def get_inference(request: Request) -> InferenceQueue:
    return cast(InferenceQueue, _app_state(request, "inference"))


# Hey future me - the access token comes from the Authorization header and the refresh token
# from the httpOnly cookie the login flow set. OAuth itself lives outside this service; we
# only ever consume a current access token plus the ability to refresh it.
def get_access_token(authorization: str | None = Header(default=None)) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    token = authorization[len("bearer ") :].strip()
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token


def get_refresh_token(
    spotify_refresh_token: str | None = Cookie(default=None),
) -> str | None:
    return spotify_refresh_token or None


def owner_key(secret: str) -> str:
    return hashlib.sha256(secret.encode()).hexdigest()[:16]


def get_owner_key(
    access_token: str = Depends(get_access_token),
    refresh_token: str | None = Depends(get_refresh_token),
) -> str:
    """Stable per-login key; the refresh token outlives access token rotation."""
    return owner_key(refresh_token or access_token)


def set_refresh_cookie(response: Response, refresh_token: str, settings: SpotifySettings) -> None:
    response.set_cookie(
        REFRESH_COOKIE_NAME,
        refresh_token,
        max_age=settings.refresh_cookie_max_age,
        path="/",
        secure=settings.refresh_cookie_secure,
        httponly=True,
        samesite="lax",
    )


def _log_token_refresh(credentials: Credentials) -> None:
    logger.debug("Access token refreshed, expires at %.0f", credentials.expires_at)


def build_spotify_client(
    settings: Settings,
    access_token: str,
    refresh_token: str | None,
    on_rotate: Callable[[str], None] | None = None,
) -> SpotifyClient:
    """Create a user-scoped Spotify client. Caller owns close()."""
    refresher = (
        SpotifyTokenRefresher(settings.spotify, refresh_token, on_rotate=on_rotate)
        if refresh_token
        else None
    )
    return SpotifyClient(
        settings.spotify,
        access_token=access_token,
        token_refresher=refresher,
        rate_limit=settings.rate_limit,
        on_token_refresh=_log_token_refresh,
    )


async def close_spotify_client(client: SpotifyClient) -> None:
    await client.close()
    refresher = client.token_refresher
    if isinstance(refresher, SpotifyTokenRefresher):
        await refresher.close()


def refresh_token_source(client: SpotifyClient) -> Callable[[], str | None] | None:
    refresher = client.token_refresher
    if not isinstance(refresher, SpotifyTokenRefresher):
        return None
    return lambda: refresher.refresh_token


# Hey future me - Spotify MAY rotate the refresh token when we refresh, and the consumer only
# holds it as an httpOnly cookie. So whoever ends up with a rotated token must hand it back as
# Set-Cookie, or the browser keeps sending a dead one. Request-scoped clients do that straight
# from on_rotate; scan clients rotate long after POST /api/scans returned, so GET /api/scans/{id}
# re-issues it, but only to the login that started the scan (same owner key).
def reissue_rotated_refresh_token(
    response: Response,
    session: ScanSession,
    presented: str | None,
    settings: SpotifySettings,
) -> None:
    if not presented or session.refresh_token_source is None:
        return
    if owner_key(presented) != session.owner:
        return
    current = session.refresh_token_source()
    if current and current != presented:
        set_refresh_cookie(response, current, settings)


# Yo, request-scoped client: closed when the request finishes. Scans do NOT use this one,
# their client must outlive the POST request (see routers/scans.py).
async def get_spotify_client(
    response: Response,
    access_token: str = Depends(get_access_token),
    refresh_token: str | None = Depends(get_refresh_token),
    settings: Settings = Depends(get_settings),
) -> AsyncGenerator[SpotifyClient, None]:
    def _on_rotate(rotated: str) -> None:
        set_refresh_cookie(response, rotated, settings.spotify)

    client = build_spotify_client(settings, access_token, refresh_token, on_rotate=_on_rotate)
    try:
        yield client
    finally:
        await close_spotify_client(client)


def build_orchestrator(
    request: Request, track_source: SpotifyClient, settings: Settings
) -> ScanOrchestrator:
    """Wire an orchestrator from the shared components on app.state."""
    return ScanOrchestrator(
        track_source=track_source,
        blocklist=cast(BlocklistMatcher, _app_state(request, "blocklist")),
        resolver=cast(AudioSourceResolver, _app_state(request, "resolver")),
        audio_fetcher=get_audio_proxy(request),
        decoder=cast(IAudioDecoder, _app_state(request, "decoder")),
        inference=get_inference(request),
        live_capture_factory=getattr(request.app.state, "live_capture_factory", None),
        track_delay_seconds=settings.scan.track_delay_seconds,
        capture_duration_ms=settings.scan.capture_duration_ms,
    )
