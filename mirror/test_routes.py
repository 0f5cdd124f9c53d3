from unittest.mock import AsyncMock, patch

import httpx
import pytest
from fastapi.responses import PlainTextResponse
from fastapi.testclient import TestClient

from mirror.server import app
from mirror.vars import HSTS_HEADER


@pytest.fixture
def client():
    return TestClient(app, base_url="https://proxy.test")


@pytest.fixture
def mock_proxy():
    with patch("mirror.routes.proxy", new_callable=AsyncMock) as mocked:
        mocked.return_value = PlainTextResponse("proxied")
        yield mocked


class TestRouting:
    def test_plain_http_is_redirected(self):
        client = TestClient(app)

        response = client.get("/https://example.com/page?x=1", follow_redirects=False)

        assert response.status_code == 301
        assert response.text == "http not allowed"
        assert response.headers["location"] == "https://testserver/https://example.com/page?x=1"
        assert response.headers["strict-transport-security"] == HSTS_HEADER

    @pytest.mark.parametrize("path", ["/", "/favicon.ico", "/ftp://example.com/file"])
    def test_path_without_url_is_rejected(self, client, mock_proxy, path):
        response = client.get(path)

        assert response.status_code == 400
        assert response.text == "What is that URL?"
        mock_proxy.assert_not_awaited()

    def test_upstream_url_is_taken_from_path(self, client, mock_proxy):
        response = client.get("/https://example.com/page?x=1&y=2")

        assert response.status_code == 200
        assert response.text == "proxied"
        upstream = mock_proxy.call_args.args[1]
        assert upstream.href == "https://example.com/page?x=1&y=2"
        assert upstream.origin == "https://example.com"

    def test_percent_escapes_are_kept(self, client, mock_proxy):
        client.get("/https://example.com/a%20b/c%2Fd")

        assert mock_proxy.call_args.args[1].href == "https://example.com/a%20b/c%2Fd"

    def test_collapsed_slashes_are_restored(self, client, mock_proxy):
        client.get("/https:/example.com/page")

        assert mock_proxy.call_args.args[1].href == "https://example.com/page"

    @pytest.mark.parametrize("method", ["POST", "PUT", "DELETE", "PATCH", "OPTIONS"])
    def test_all_methods_are_proxied(self, client, mock_proxy, method):
        response = client.request(method, "/https://example.com/api")

        assert response.status_code == 200
        assert mock_proxy.call_args.args[0].method == method

    def test_timeout_maps_to_504(self, client, mock_proxy):
        mock_proxy.side_effect = httpx.ReadTimeout("upstream too slow")

        response = client.get("/https://example.com/slow")

        assert response.status_code == 504
        assert response.json() == {"detail": "Gateway timeout"}

    def test_request_error_maps_to_502(self, client, mock_proxy):
        mock_proxy.side_effect = httpx.ConnectError("connection refused")

        response = client.get("/https://example.com/down")

        assert response.status_code == 502
        assert response.json() == {"detail": "Bad gateway: connection refused"}

    def test_metrics_are_exposed(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "fastapi_app_info" in response.text


class TestEndToEnd:
    """Full request through the app, only the upstream call is mocked."""

    def test_html_page(self, client):
        upstream_response = httpx.Response(
            200,
            headers={"content-type": "text/html; charset=utf-8"},
            content=b'<img src="/logo.png"><script>fetch(\'/api\')</script>',
        )

        with patch.object(httpx.AsyncClient, "send", new_callable=AsyncMock) as mock_send:
            mock_send.return_value = upstream_response
            response = client.get("/https://example.com/")

        assert response.status_code == 200
        assert response.text == (
            '<img src="https://proxy.test/https://example.com/logo.png">'
            "<script>fetch('https://proxy.test/api')</script>"
        )
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["x-forwarded-host"] == "https://proxy.test"
        assert str(mock_send.call_args.args[0].url) == "https://example.com/"

    def test_plain_text_hostname(self, client):
        upstream_response = httpx.Response(
            200,
            headers={"content-type": "text/plain"},
            content=b"http://example.com/x",
        )

        with patch.object(httpx.AsyncClient, "send", new_callable=AsyncMock) as mock_send:
            mock_send.return_value = upstream_response
            response = client.get("/https://example.com/notes.txt")

        assert response.text == "http://proxy.test/x"
