"""Tests for the preview proxy route."""

import httpx
import pytest

from goodbai.config.settings import ProxySettings
from goodbai.infrastructure.integrations.audio_proxy import AudioProxy


@pytest.fixture
def upstream(app):
    """Install an AudioProxy whose upstream answers with the returned response."""

    def _install(response: httpx.Response) -> list[httpx.Request]:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return response

        app.state.audio_proxy = AudioProxy(ProxySettings(), transport=httpx.MockTransport(handler))
        return seen

    return _install


class TestProxyPreview:
    """Test /api/proxy/preview status mapping."""

    def test_missing_url(self, client, upstream):
        upstream(httpx.Response(200))

        response = client.get("/api/proxy/preview")

        assert response.status_code == 400
        assert response.json() == {"detail": "Missing 'url' parameter"}

    def test_invalid_url(self, client, upstream):
        upstream(httpx.Response(200))

        response = client.get("/api/proxy/preview", params={"url": "not a url"})

        assert response.status_code == 400

    def test_host_not_allowed(self, client, upstream):
        seen = upstream(httpx.Response(200))

        response = client.get("/api/proxy/preview", params={"url": "https://evil.com/a.mp3"})

        assert response.status_code == 403
        assert seen == []

    def test_upstream_failure(self, client, upstream):
        upstream(httpx.Response(500))

        response = client.get(
            "/api/proxy/preview", params={"url": "https://p.scdn.co/mp3-preview/abc"}
        )

        assert response.status_code == 502
        assert response.json() == {"detail": "Upstream error: 500"}

    def test_success(self, client, upstream):
        upstream(httpx.Response(200, content=b"ID3audio"))

        response = client.get(
            "/api/proxy/preview",
            params={"url": "https://cdns-preview-d.dzcdn.net/stream/c-abc-1.mp3"},
        )

        assert response.status_code == 200
        assert response.content == b"ID3audio"
        assert response.headers["content-type"] == "audio/mpeg"
        assert response.headers["cache-control"] == "public, max-age=3600"

    def test_proxy_not_initialized(self, client):
        response = client.get("/api/proxy/preview", params={"url": "https://p.scdn.co/x"})

        assert response.status_code == 503
