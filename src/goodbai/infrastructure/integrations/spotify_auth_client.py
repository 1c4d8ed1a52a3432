"""Spotify token refresh (refresh_token grant)."""

import logging
import time
from collections.abc import Callable
from typing import Any

import httpx

from goodbai.config.settings import SpotifySettings
from goodbai.domain.entities import Credentials
from goodbai.domain.exceptions import AuthExpired, ConfigurationError
from goodbai.domain.ports import ITokenRefresher

logger = logging.getLogger(__name__)


class SpotifyTokenRefresher(ITokenRefresher):
    """Exchanges a stored refresh token for a new access token.

    Spotify MAY rotate the refresh token on refresh. If the response carries a new one we
    keep it for the next call; otherwise the old one stays valid.
    """

    def __init__(
        self,
        settings: SpotifySettings,
        refresh_token: str,
        on_rotate: Callable[[str], None] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self._refresh_token = refresh_token
        self._on_rotate = on_rotate
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def refresh_token(self) -> str:
        return self._refresh_token

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

    # Hey future me - check for invalid_grant BEFORE raise_for_status!
    # Spotify returns 400 with {"error": "invalid_grant"} when the refresh token is revoked.
    # That (and 401/403) means the user must log in again, so it becomes AuthExpired.
    # Anything else (5xx, network) bubbles up as httpx errors; the API client turns those
    # into AuthExpired too, but the log line keeps the real cause.
    async def refresh(self) -> Credentials:
        """Refresh the access token.

        Returns:
            New credentials; refresh_token is the rotated one if Spotify sent it

        Raises:
            ConfigurationError: If client credentials are not configured
            AuthExpired: If the refresh token is invalid or revoked
            httpx.HTTPError: For other HTTP errors
        """
        if not self.settings.is_configured:
            raise ConfigurationError(
                "Spotify client credentials are not configured "
                "(set SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET)"
            )

        client = await self._get_client()
        response = await client.post(
            self.settings.token_url,
            data={"grant_type": "refresh_token", "refresh_token": self._refresh_token},
            auth=(self.settings.client_id, self.settings.client_secret),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

        if response.status_code == 400:
            error_code, description = _oauth_error(response)
            if error_code == "invalid_grant":
                raise AuthExpired(
                    f"Refresh token invalid: {description}. Please log in again.",
                    http_status=400,
                )

        if response.status_code in (401, 403):
            raise AuthExpired(http_status=response.status_code)

        response.raise_for_status()
        payload: dict[str, Any] = response.json()

        rotated = payload.get("refresh_token")
        if rotated and rotated != self._refresh_token:
            self._refresh_token = rotated
            logger.debug("Spotify rotated the refresh token")
            if self._on_rotate is not None:
                self._on_rotate(rotated)

        return Credentials(
            access_token=payload["access_token"],
            refresh_token=self._refresh_token,
            expires_at=time.time() + int(payload.get("expires_in", 3600)),
        )


def _oauth_error(response: httpx.Response) -> tuple[str, str]:
    try:
        data = response.json()
    except ValueError:
        return "", ""
    if not isinstance(data, dict):
        return "", ""
    return (
        str(data.get("error", "")),
        str(data.get("error_description", "Refresh token is invalid or has been revoked")),
    )
