import logging

import httpx
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import PlainTextResponse, Response

from mirror.proxy.route import proxy
from mirror.rewrite.origins import Endpoint, InvalidURLError, decode_upstream_ref
from mirror.utils import mask_query
from mirror.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)
from mirror.vars import FORCE_HTTPS, HSTS_HEADER

router = APIRouter()

logger = logging.getLogger("uvicorn.error")

PROXIED_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


def https_redirect(request: Request) -> Response:
    location = str(request.url.replace(scheme="https"))
    logger.info(f"[Router] Redirecting plain http request to {mask_query(location)}")
    return PlainTextResponse(
        "http not allowed",
        status_code=301,
        headers={
            "Strict-Transport-Security": HSTS_HEADER,
            "location": location,
        },
    )


def extract_upstream(request: Request) -> Endpoint:
    """
    Read the upstream target out of the proxy URL.

    ``https://proxy/https://example.com/a?b`` targets
    ``https://example.com/a?b``. Raises InvalidURLError otherwise.
    The raw path is used so percent-escapes reach the upstream unchanged.
    """
    raw_path = request.scope.get("raw_path")
    if raw_path:
        path = raw_path.split(b"?", 1)[0].decode("latin-1")
    else:
        path = request.url.path
    if request.url.query:
        path = f"{path}?{request.url.query}"
    return Endpoint.parse(decode_upstream_ref(path) or "")


@router.api_route("/{path:path}", methods=PROXIED_METHODS)
async def proxy_all(request: Request, path: str):
    """Catch-all route that proxies to the URL embedded in the path."""
    if FORCE_HTTPS and request.url.scheme == "http":
        return https_redirect(request)

    try:
        upstream = extract_upstream(request)
    except InvalidURLError as e:
        logger.debug(f"[Router] Rejecting {request.url.path!r}: {e}")
        return PlainTextResponse("What is that URL?", status_code=400)

    try:
        return await proxy(request, upstream)
    except httpx.TimeoutException as e:
        log_exception_with_details(logger, f"[Proxy] Timeout for {mask_query(upstream.href)}", e)
        raise HTTPException(status_code=504, detail="Gateway timeout")
    except httpx.RequestError as e:
        log_exception_with_details(logger, f"[Proxy] Upstream failure for {mask_query(upstream.href)}", e)
        raise HTTPException(
            status_code=502, detail=f"Bad gateway: {format_exception_message(e)}"
        )
