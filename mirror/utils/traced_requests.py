import logging
from typing import Optional
from contextlib import contextmanager

from opentelemetry.trace import Tracer

from mirror.utils import mask_query

logger = logging.getLogger("uvicorn.error")


@contextmanager
def traced_request(
    tracer: Tracer,
    operation: str,
    method: str,
    upstream_url: str,
    public_url: Optional[str] = None,
):
    """Context manager to create a span, set common attributes, and log a start message."""
    upstream_url = mask_query(upstream_url)
    with tracer.start_as_current_span(operation) as span:
        span.set_attribute("proxy.method", method)
        span.set_attribute("proxy.upstream", upstream_url)
        if public_url:
            span.set_attribute("proxy.public", mask_query(public_url))
        logger.debug(f"[Proxy] {method} {upstream_url}")
        yield span
