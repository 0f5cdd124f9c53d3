import logging
import re
from typing import List, Tuple
from urllib.parse import urljoin

from mirror.rewrite.events import ContentHandler, ElementOpen
from mirror.rewrite.origins import Endpoint, encode_upstream_ref

logger = logging.getLogger("uvicorn.error")

ABSOLUTE_URL = re.compile(r"^[\w-]+://")
DATA_URI = re.compile(r"^data:")
HTTP_URL = re.compile(r"^https?://")

# (tag, attribute) pairs rewritten in proxied HTML documents
ATTRIBUTE_TARGETS: List[Tuple[str, str]] = [
    ("form", "action"),
    ("img", "src"),
    ("img", "srcset"),
    ("link", "href"),
    ("a", "href"),
    ("script", "src"),
]


class AttributeRewriter(ContentHandler):
    """
    Point one URL-valued attribute back at the proxy.

    Relative values are resolved against the upstream origin, then any
    http(s) URL is embedded as a path under the proxy origin. Running the
    rewriter twice over the same attribute nests the encoding, so it must
    run exactly once per attribute.
    """

    def __init__(self, attribute: str, proxy: Endpoint, upstream: Endpoint):
        self.attribute = attribute
        self.proxy = proxy
        self.upstream = upstream

    def element(self, element: ElementOpen) -> None:
        original = value = element.get_attribute(self.attribute)
        if not value:
            return

        if not ABSOLUTE_URL.match(value) and not DATA_URI.match(value):
            try:
                value = urljoin(self.upstream.origin + "/", value)
            except ValueError as e:
                logger.debug(
                    f"[Rewrite] Leaving {element.tag_name}.{self.attribute} untouched: {e}"
                )
                return

        if HTTP_URL.match(value):
            value = encode_upstream_ref(self.proxy.origin, value)

        if value != original:
            element.set_attribute(self.attribute, value)
