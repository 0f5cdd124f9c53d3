"""
Events emitted by the streaming HTML tokenizer.

``ElementOpen`` is raised for every start tag and ``TextChunk`` for every
piece of a raw-text element body (``<script>``, ``<style>``, ...). Handlers
registered on a tag receive the events and mutate them in place; the
tokenizer then renders the event back into the output stream.
"""

import html
from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass
class Attribute:
    """A parsed attribute and the span of its raw text inside the tag."""

    name: str
    value: Optional[str]
    start: int
    end: int


def _quote_attribute(value: str) -> str:
    return '"' + value.replace("&", "&amp;").replace('"', "&quot;") + '"'


class ElementOpen:
    def __init__(self, tag_name: str, attributes: List[Attribute], raw: str):
        self.tag_name = tag_name
        self.raw = raw
        self._attributes = attributes
        self._changes: Dict[str, str] = {}

    @property
    def self_closing(self) -> bool:
        if not self.raw.endswith("/>"):
            return False
        # An unquoted value may own the slash, as in <a href=/x/>
        return not self._attributes or self._attributes[-1].end <= len(self.raw) - 2

    def _find(self, name: str) -> Optional[Attribute]:
        for attribute in self._attributes:
            if attribute.name == name:
                return attribute
        return None

    def get_attribute(self, name: str) -> Optional[str]:
        """Attribute value, "" for a valueless attribute, None when absent."""
        name = name.lower()
        if name in self._changes:
            return self._changes[name]
        attribute = self._find(name)
        if attribute is None:
            return None
        return attribute.value if attribute.value is not None else ""

    def set_attribute(self, name: str, value: str) -> None:
        self._changes[name.lower()] = value

    def render(self) -> str:
        if not self._changes:
            return self.raw

        pieces = []
        position = 0
        pending = dict(self._changes)
        for attribute in self._attributes:
            if attribute.name not in pending:
                continue
            raw_name = self.raw[attribute.start:attribute.start + len(attribute.name)]
            pieces.append(self.raw[position:attribute.start])
            pieces.append(f"{raw_name}={_quote_attribute(pending.pop(attribute.name))}")
            position = attribute.end

        close = "/>" if self.self_closing else ">"
        pieces.append(self.raw[position:len(self.raw) - len(close)])
        for name, value in pending.items():
            pieces.append(f" {name}={_quote_attribute(value)}")
        pieces.append(close)
        return "".join(pieces)


@dataclass
class TextChunk:
    tag_name: str
    text: str
    last_in_text_node: bool
    _output: Optional[str] = None
    removed: bool = False

    def replace(self, content: str, html: bool = False) -> None:
        """Replace the chunk; ``html=True`` inserts ``content`` as markup."""
        self._output = content if html else _escape_text(content)
        self.removed = False

    def remove(self) -> None:
        self._output = None
        self.removed = True

    def render(self) -> str:
        if self.removed:
            return ""
        if self._output is not None:
            return self._output
        return self.text


def _escape_text(content: str) -> str:
    return html.escape(content, quote=False)


class ContentHandler:
    """Base for handlers attached to a tag; override what you need."""

    def element(self, element: ElementOpen) -> None:
        return None

    def text(self, chunk: TextChunk) -> None:
        return None
