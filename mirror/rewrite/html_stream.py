"""
Streaming HTML rewriting.

``HTMLStreamRewriter`` keeps a dispatch table of handlers per tag name and
drives them from an incremental tokenizer fed with the upstream body chunk
by chunk. The tokenizer only understands what the rewriters need: start
tags with their attributes, comments, declarations, end tags and the bodies
of raw-text elements. Everything it does not modify is written back
verbatim, and at most one incomplete construct is held back between chunks.
"""

import codecs
import html
import re
from typing import AsyncIterable, AsyncIterator, Dict, Iterable, Iterator, List, Optional, Tuple

from mirror.rewrite.events import Attribute, ContentHandler, ElementOpen, TextChunk

# Elements whose content is text up to the matching end tag
RAW_TEXT_ELEMENTS = frozenset(
    {"script", "style", "textarea", "title", "xmp", "iframe", "noembed", "noframes"}
)

WHITESPACE = "\t\n\f\r "
TAG_NAME_END = WHITESPACE + "/>"
ATTRIBUTE_NAME_END = WHITESPACE + "/>="
UNQUOTED_VALUE_END = WHITESPACE + ">"


def scan_start_tag(text: str, pos: int) -> Optional[Tuple[int, str, List[Attribute]]]:
    """
    Parse the start tag opening at ``text[pos]``.

    Returns the index just past the closing ``>``, the lower-cased tag name
    and the attributes (spans relative to ``pos``), or None when the tag is
    not complete yet.
    """
    n = len(text)
    i = pos + 1
    while i < n and text[i] not in TAG_NAME_END:
        i += 1
    tag_name = text[pos + 1:i].lower()
    attributes: List[Attribute] = []

    while True:
        while i < n and text[i] in WHITESPACE + "/":
            i += 1
        if i >= n:
            return None
        if text[i] == ">":
            return i + 1, tag_name, attributes

        name_start = i
        i += 1
        while i < n and text[i] not in ATTRIBUTE_NAME_END:
            i += 1
        name = text[name_start:i].lower()
        name_end = i

        while i < n and text[i] in WHITESPACE:
            i += 1
        if i >= n:
            return None
        if text[i] != "=":
            attributes.append(Attribute(name, None, name_start - pos, name_end - pos))
            continue

        i += 1
        while i < n and text[i] in WHITESPACE:
            i += 1
        if i >= n:
            return None
        if text[i] in "\"'":
            close = text.find(text[i], i + 1)
            if close == -1:
                return None
            value = text[i + 1:close]
            i = close + 1
        else:
            value_start = i
            while i < n and text[i] not in UNQUOTED_VALUE_END:
                i += 1
            if i >= n:
                return None
            value = text[value_start:i]
        attributes.append(Attribute(name, html.unescape(value), name_start - pos, i - pos))


class _Tokenizer:
    """Incremental tokenizer state for one document."""

    def __init__(self, rewriter: "HTMLStreamRewriter"):
        self._rewriter = rewriter
        self._pending = ""
        self._raw_text_tag: Optional[str] = None
        self._raw_text_end: Optional[re.Pattern] = None

    def feed(self, text: str) -> str:
        self._pending += text
        return self._consume(final=False)

    def close(self) -> str:
        return self._consume(final=True)

    def _consume(self, final: bool) -> str:
        data = self._pending
        out: List[str] = []
        pos = 0
        n = len(data)

        while pos < n:
            if self._raw_text_tag is not None:
                pos = self._consume_raw_text(data, pos, final, out)
                if self._raw_text_tag is not None:
                    break
                continue

            lt = data.find("<", pos)
            if lt == -1:
                out.append(data[pos:])
                pos = n
                break
            if lt > pos:
                out.append(data[pos:lt])
                pos = lt

            end = self._consume_markup(data, pos, final, out)
            if end is None:
                break
            pos = end

        self._pending = data[pos:]
        if final and self._raw_text_tag is not None:
            self._finish_text_node(out)
        return "".join(out)

    def _incomplete(self, data: str, pos: int, final: bool, out: List[str]) -> Optional[int]:
        if not final:
            return None
        out.append(data[pos:])
        return len(data)

    def _consume_markup(self, data: str, pos: int, final: bool, out: List[str]) -> Optional[int]:
        n = len(data)
        if data.startswith("<!--", pos):
            # "<!-->" and "<!--->" are complete, empty comments
            for empty in ("<!-->", "<!--->"):
                if data.startswith(empty, pos):
                    out.append(empty)
                    return pos + len(empty)
            close = data.find("-->", pos + 4)
            if close == -1:
                return self._incomplete(data, pos, final, out)
            out.append(data[pos:close + 3])
            return close + 3

        if pos + 1 >= n:
            return self._incomplete(data, pos, final, out)

        following = data[pos + 1]
        if following.isascii() and following.isalpha():
            return self._consume_start_tag(data, pos, final, out)

        if following in "/!?":
            if n - pos < 4 and "<!--".startswith(data[pos:]):
                return self._incomplete(data, pos, final, out)
            close = data.find(">", pos + 2)
            if close == -1:
                return self._incomplete(data, pos, final, out)
            out.append(data[pos:close + 1])
            return close + 1

        out.append("<")
        return pos + 1

    def _consume_start_tag(self, data: str, pos: int, final: bool, out: List[str]) -> Optional[int]:
        scanned = scan_start_tag(data, pos)
        if scanned is None:
            return self._incomplete(data, pos, final, out)

        end, tag_name, attributes = scanned
        element = ElementOpen(tag_name, attributes, data[pos:end])
        for handler in self._rewriter.handlers_for(tag_name):
            handler.element(element)
        out.append(element.render())

        # A trailing "/" does not close raw-text elements in HTML
        if tag_name in RAW_TEXT_ELEMENTS:
            self._raw_text_tag = tag_name
            self._raw_text_end = re.compile(
                r"</" + re.escape(tag_name) + r"(?=[\t\n\f\r />])", re.IGNORECASE
            )
        return end

    def _consume_raw_text(self, data: str, pos: int, final: bool, out: List[str]) -> int:
        match = self._raw_text_end.search(data, pos)
        if match:
            self._emit_text(data[pos:match.start()], out)
            self._finish_text_node(out)
            return match.start()

        if final:
            self._emit_text(data[pos:], out)
            self._finish_text_node(out)
            return len(data)

        # Hold back a tail that could still grow into the end tag
        safe = len(data)
        candidate = data.rfind("<", pos)
        if candidate != -1 and len(data) - candidate < len(self._raw_text_tag) + 3:
            safe = candidate
        self._emit_text(data[pos:safe], out)
        return safe

    def _emit_text(self, text: str, out: List[str]) -> None:
        if text:
            self._dispatch_text(TextChunk(self._raw_text_tag, text, False), out)

    def _finish_text_node(self, out: List[str]) -> None:
        tag_name = self._raw_text_tag
        self._raw_text_tag = None
        self._raw_text_end = None
        self._dispatch_text(TextChunk(tag_name, "", True), out)

    def _dispatch_text(self, chunk: TextChunk, out: List[str]) -> None:
        for handler in self._rewriter.handlers_for(chunk.tag_name):
            handler.text(chunk)
        out.append(chunk.render())


class HTMLStreamRewriter:
    def __init__(self):
        self._handlers: Dict[str, List[ContentHandler]] = {}

    def on(self, tag_name: str, handler: ContentHandler) -> "HTMLStreamRewriter":
        self._handlers.setdefault(tag_name.lower(), []).append(handler)
        return self

    def handlers_for(self, tag_name: str) -> List[ContentHandler]:
        return self._handlers.get(tag_name, [])

    def transform_text(self, pieces: Iterable[str]) -> Iterator[str]:
        """Rewrite a document given as text pieces, yielding output as it is known."""
        tokenizer = _Tokenizer(self)
        for piece in pieces:
            output = tokenizer.feed(piece)
            if output:
                yield output
        output = tokenizer.close()
        if output:
            yield output

    async def transform(
        self, chunks: AsyncIterable[bytes], encoding: str = "utf-8"
    ) -> AsyncIterator[bytes]:
        """
        Rewrite a document streamed as bytes.

        Undecodable bytes are carried through with ``surrogateescape`` so
        untouched content leaves exactly as it arrived.
        """
        decoder = codecs.getincrementaldecoder(encoding)(errors="surrogateescape")
        tokenizer = _Tokenizer(self)
        async for chunk in chunks:
            output = tokenizer.feed(decoder.decode(chunk))
            if output:
                yield output.encode(encoding, errors="surrogateescape")
        output = tokenizer.feed(decoder.decode(b"", final=True)) + tokenizer.close()
        if output:
            yield output.encode(encoding, errors="surrogateescape")
