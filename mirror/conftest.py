from urllib.parse import urlsplit

import httpx
import pytest
from starlette.requests import Request


@pytest.fixture
def make_request():
    """Build a real Starlette request for a proxy URL."""

    def _create_request(
        url="https://proxy.test/https://example.com/",
        method="GET",
        headers=None,
        body=b"",
    ):
        parts = urlsplit(url)
        all_headers = {"host": parts.netloc, "user-agent": "test-agent"}
        all_headers.update(headers or {})
        scope = {
            "type": "http",
            "http_version": "1.1",
            "method": method,
            "scheme": parts.scheme,
            "server": (parts.hostname, parts.port or (443 if parts.scheme == "https" else 80)),
            "client": ("192.168.1.100", 51000),
            "root_path": "",
            "path": parts.path,
            "raw_path": parts.path.encode("latin-1"),
            "query_string": parts.query.encode("latin-1"),
            "headers": [
                (name.lower().encode("latin-1"), value.encode("latin-1"))
                for name, value in all_headers.items()
            ],
        }

        async def receive():
            return {"type": "http.request", "body": body, "more_body": False}

        return Request(scope, receive)

    return _create_request


@pytest.fixture
def make_upstream_response():
    """Create a real httpx Response, optionally streamed in chunks."""

    def _create_response(
        status_code=200, headers=None, content=b"test content", stream_chunks=None
    ):
        if stream_chunks is not None:

            async def aiter_chunks():
                for chunk in stream_chunks:
                    yield chunk

            return httpx.Response(
                status_code, headers=headers or {}, content=aiter_chunks()
            )
        return httpx.Response(status_code, headers=headers or {}, content=content)

    return _create_response
