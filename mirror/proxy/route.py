import codecs
import logging
from enum import Enum
from typing import AsyncIterator, Callable, Dict, Optional
from urllib.parse import urljoin

import httpx
from fastapi import Request
from fastapi.responses import Response, StreamingResponse
from opentelemetry import trace
from starlette.datastructures import MutableHeaders

from mirror.rewrite.attributes import ATTRIBUTE_TARGETS, HTTP_URL, AttributeRewriter
from mirror.rewrite.html_stream import HTMLStreamRewriter
from mirror.rewrite.origins import Endpoint, OriginPair, encode_upstream_ref
from mirror.rewrite.rules import rewrite
from mirror.rewrite.text_nodes import TEXT_NODE_TARGETS, TextNodeRewriter
from mirror.utils.traced_requests import traced_request
from mirror.vars import CLIENT_IP_HEADER, FOLLOW_REDIRECTS, PROXY_TIMEOUT

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# httpx negotiates the encodings it can decode and sets the length itself
NOT_FORWARDED_REQUEST_HEADERS = HOP_BY_HOP_HEADERS | {
    "host",
    "content-length",
    "accept-encoding",
}

# Headers that would block or wipe the rewritten content in the browser
BLOCKING_RESPONSE_HEADERS = (
    "content-security-policy",
    "content-security-policy-report-only",
    "clear-site-data",
)

# Headers describing the upstream body, wrong once the body is rewritten
BODY_HEADERS = ("content-length", "content-encoding")

BODYLESS_METHODS = {"GET", "HEAD"}

TEXT_CONTENT_TYPES = ("text/", "application/javascript", "application/x-javascript")


class RewriteStrategy(str, Enum):
    HTML = "html"
    TEXT = "text"
    PASSTHROUGH = "passthrough"


def choose_strategy(content_type: Optional[str]) -> RewriteStrategy:
    """Pick how the upstream body is handled from its content type."""
    if not content_type:
        return RewriteStrategy.PASSTHROUGH
    content_type = content_type.lower()
    if "text/html" in content_type:
        return RewriteStrategy.HTML
    if content_type.startswith(TEXT_CONTENT_TYPES):
        return RewriteStrategy.TEXT
    return RewriteStrategy.PASSTHROUGH


def prepare_headers(request: Request, pair: OriginPair) -> Dict[str, str]:
    """
    Prepare headers for forwarding to the upstream server.
    Removes hop-by-hop headers and points Host/Referer at the upstream side.
    """
    headers = {}
    for name, value in request.headers.items():
        if name.lower() not in NOT_FORWARDED_REQUEST_HEADERS:
            headers[name] = value

    headers["host"] = pair.upstream.host_port
    headers["referer"] = pair.public.origin
    return headers


def rewrite_location_header(location: str, pair: OriginPair) -> str:
    """
    Route a redirect target back through the proxy.
    Relative locations are resolved against the requested upstream URL.
    """
    if not location:
        return location
    try:
        absolute = urljoin(pair.upstream.href, location)
    except ValueError:
        return location
    if HTTP_URL.match(absolute):
        return encode_upstream_ref(pair.public.origin, absolute)
    return location


def prepare_response_headers(
    request: Request,
    response: httpx.Response,
    pair: OriginPair,
    rewrite_urls: Callable[[Optional[str]], str],
) -> MutableHeaders:
    """Copy the upstream headers and apply the proxy header policy."""
    headers = MutableHeaders()
    for name, value in response.headers.multi_items():
        if name.lower() not in HOP_BY_HOP_HEADERS:
            headers.append(name, value)

    headers["access-control-allow-origin"] = "*"
    headers["access-control-allow-credentials"] = "true"
    for name in BLOCKING_RESPONSE_HEADERS:
        if name in headers:
            del headers[name]
    headers["x-forwarded-host"] = pair.public.origin
    headers["x-forwarded-proto"] = pair.public.protocol
    headers["x-forwarded-for"] = request.headers.get(CLIENT_IP_HEADER, "")

    # Preload hints
    links = headers.getlist("link")
    if links:
        del headers["link"]
        for link in links:
            headers.append("link", rewrite_urls(link))

    if "location" in headers:
        headers["location"] = rewrite_location_header(headers["location"], pair)

    return headers


def response_charset(response: httpx.Response) -> str:
    encoding = response.charset_encoding or "utf-8"
    try:
        return codecs.lookup(encoding).name
    except LookupError:
        logger.warning(f"[Proxy] Unknown charset {encoding!r}, falling back to utf-8")
        return "utf-8"


def build_html_rewriter(
    pair: OriginPair, rewrite_urls: Callable[[Optional[str]], str]
) -> HTMLStreamRewriter:
    """A fresh rewriter per response, text buffers are never shared."""
    rewriter = HTMLStreamRewriter()
    for tag_name, attribute in ATTRIBUTE_TARGETS:
        rewriter.on(tag_name, AttributeRewriter(attribute, pair.public, pair.upstream))
    for tag_name in TEXT_NODE_TARGETS:
        rewriter.on(tag_name, TextNodeRewriter(rewrite_urls))
    return rewriter


async def _stream_then_close(
    body: AsyncIterator[bytes], response: httpx.Response, client: httpx.AsyncClient
) -> AsyncIterator[bytes]:
    try:
        async for chunk in body:
            yield chunk
    finally:
        await response.aclose()
        await client.aclose()


async def proxy(
    request: Request, upstream: Endpoint, public: Optional[Endpoint] = None
) -> Response:
    """
    Fetch ``upstream`` on behalf of ``request`` and rewrite the answer.

    HTML is rewritten while it streams, other text types are buffered and
    rewritten in one go, everything else is passed through byte for byte.
    Network errors from httpx are not handled here.
    """
    public = public or Endpoint.parse(str(request.url))
    pair = OriginPair(upstream=upstream, public=public)

    with traced_request(
        tracer,
        operation="proxy_request",
        method=request.method,
        upstream_url=upstream.href,
        public_url=public.origin,
    ) as span:
        headers = prepare_headers(request, pair)
        body = None
        if request.method not in BODYLESS_METHODS:
            body = await request.body()

        client = httpx.AsyncClient(
            timeout=httpx.Timeout(PROXY_TIMEOUT),
            follow_redirects=FOLLOW_REDIRECTS,
        )
        try:
            upstream_request = client.build_request(
                method=request.method,
                url=upstream.href,
                headers=headers,
                content=body,
            )
            upstream_response = await client.send(upstream_request, stream=True)
        except BaseException as e:
            span.set_attribute("proxy.error", type(e).__name__)
            await client.aclose()
            raise

        span.set_attribute("proxy.status_code", upstream_response.status_code)

        rewrite_urls = rewrite(upstream, public)
        response_headers = prepare_response_headers(
            request, upstream_response, pair, rewrite_urls
        )
        strategy = choose_strategy(response_headers.get("content-type"))
        span.set_attribute("proxy.strategy", strategy.value)
        logger.debug(
            f"[Proxy] {upstream_response.status_code} from upstream, strategy={strategy.value}"
        )

        if strategy is RewriteStrategy.HTML:
            for name in BODY_HEADERS:
                del response_headers[name]
            rewriter = build_html_rewriter(pair, rewrite_urls)
            rewritten = rewriter.transform(
                upstream_response.aiter_bytes(), response_charset(upstream_response)
            )
            return StreamingResponse(
                _stream_then_close(rewritten, upstream_response, client),
                status_code=upstream_response.status_code,
                headers=response_headers,
            )

        if strategy is RewriteStrategy.TEXT and request.method == "HEAD":
            # Nothing to rewrite, the upstream length still describes the resource
            await upstream_response.aclose()
            await client.aclose()
            return Response(status_code=upstream_response.status_code, headers=response_headers)

        if strategy is RewriteStrategy.TEXT:
            try:
                content = await upstream_response.aread()
            finally:
                await upstream_response.aclose()
                await client.aclose()

            encoding = response_charset(upstream_response)
            text = rewrite_urls(content.decode(encoding, errors="surrogateescape"))
            for name in BODY_HEADERS:
                del response_headers[name]
            return Response(
                content=text.encode(encoding, errors="surrogateescape"),
                status_code=upstream_response.status_code,
                headers=response_headers,
            )

        # Can't and won't do anything with this content
        return StreamingResponse(
            _stream_then_close(upstream_response.aiter_raw(), upstream_response, client),
            status_code=upstream_response.status_code,
            headers=response_headers,
        )
