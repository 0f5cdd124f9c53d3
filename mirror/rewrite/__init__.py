from .origins import (
    Endpoint,
    InvalidURLError,
    OriginPair,
    decode_upstream_ref,
    encode_upstream_ref,
)
from .rules import RewriteRule, build_rules, rewrite
from .events import ContentHandler, ElementOpen, TextChunk
from .attributes import ATTRIBUTE_TARGETS, AttributeRewriter
from .text_nodes import TEXT_NODE_TARGETS, TextNodeRewriter
from .html_stream import HTMLStreamRewriter

__all__ = [
    "Endpoint",
    "InvalidURLError",
    "OriginPair",
    "decode_upstream_ref",
    "encode_upstream_ref",
    "RewriteRule",
    "build_rules",
    "rewrite",
    "ContentHandler",
    "ElementOpen",
    "TextChunk",
    "ATTRIBUTE_TARGETS",
    "AttributeRewriter",
    "TEXT_NODE_TARGETS",
    "TextNodeRewriter",
    "HTMLStreamRewriter",
]
