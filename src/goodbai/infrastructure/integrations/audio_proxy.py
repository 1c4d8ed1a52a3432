"""Allowlisting audio proxy for preview clips."""

import logging
from dataclasses import dataclass
from urllib.parse import urlsplit

import httpx

from goodbai.config.settings import ProxySettings
from goodbai.domain.exceptions import AudioUnavailable, HostNotAllowed, InvalidAudioUrl
from goodbai.domain.ports import IAudioFetcher
from goodbai.infrastructure.observability.log_messages import LogMessages

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "audio/mpeg"


@dataclass(frozen=True)
class ProxiedAudio:
    """Upstream audio body plus the content type to forward."""

    content: bytes
    content_type: str


# Hey future me - this is the ONLY place preview URLs get dereferenced, both for the
# /api/proxy/preview route and for the scan pipeline. The allowlist is what stops the
# service from becoming an open proxy (SSRF!). Exact hostnames for Spotify's CDNs, and a
# prefix+suffix pair for Deezer's numbered preview hosts (cdns-preview-d.dzcdn.net etc.).
# Don't loosen this to "endswith('.scdn.co')" without checking what else lives there.
class AudioProxy(IAudioFetcher):
    """Fetches preview audio from allowlisted CDN hosts only."""

    def __init__(
        self,
        settings: ProxySettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or ProxySettings()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": self.settings.user_agent},
                timeout=self.settings.timeout,
                follow_redirects=False,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def is_allowed_host(self, host: str | None) -> bool:
        if not host:
            return False
        host = host.lower()
        if host in self.settings.allowed_hosts:
            return True
        return host.endswith(self.settings.allowed_host_suffix) and any(
            host.startswith(prefix) for prefix in self.settings.allowed_host_prefixes
        )

    def validate_url(self, url: str | None) -> str:
        """Check that url is an absolute http(s) URL on an allowed host.

        Raises:
            InvalidAudioUrl: If url is missing or unparsable
            HostNotAllowed: If the host is not on the allowlist
        """
        if not url:
            raise InvalidAudioUrl("Missing 'url' parameter")
        try:
            parts = urlsplit(url)
            host = parts.hostname
        except ValueError as e:
            raise InvalidAudioUrl("Invalid URL") from e
        if parts.scheme not in ("http", "https") or not host:
            raise InvalidAudioUrl("Invalid URL")
        if not self.is_allowed_host(host):
            logger.warning(LogMessages.proxy_host_rejected(url, host))
            raise HostNotAllowed(host)
        return url

    async def fetch_audio(self, url: str | None) -> ProxiedAudio:
        """Validate and fetch a preview clip.

        The body is streamed and the fetch aborted once it grows past max_bytes.

        Raises:
            InvalidAudioUrl: If url is missing or unparsable
            HostNotAllowed: If the host is not on the allowlist
            AudioUnavailable: If the upstream fetch failed or the body is too large
        """
        url = self.validate_url(url)
        client = await self._get_client()
        max_bytes = self.settings.max_bytes
        try:
            async with client.stream("GET", url) as response:
                if not response.is_success:
                    raise AudioUnavailable(
                        f"Upstream error: {response.status_code}", status=response.status_code
                    )

                declared = response.headers.get("Content-Length", "")
                if declared.isdigit() and int(declared) > max_bytes:
                    raise _too_large(url, max_bytes)

                body = bytearray()
                async for chunk in response.aiter_bytes():
                    body.extend(chunk)
                    if len(body) > max_bytes:
                        raise _too_large(url, max_bytes)

                content_type = response.headers.get("Content-Type") or DEFAULT_CONTENT_TYPE
        except httpx.HTTPError as e:
            logger.warning("Preview proxy error for %s: %s", url, e)
            raise AudioUnavailable("Failed to fetch preview audio") from e

        return ProxiedAudio(content=bytes(body), content_type=content_type)

    async def fetch(self, url: str) -> bytes:
        audio = await self.fetch_audio(url)
        return audio.content


def _too_large(url: str, max_bytes: int) -> AudioUnavailable:
    logger.warning("Preview body from %s exceeds %d bytes, aborting", url, max_bytes)
    return AudioUnavailable(f"Upstream body exceeds {max_bytes} bytes")
