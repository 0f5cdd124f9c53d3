from typing import Callable

from mirror.rewrite.events import ContentHandler, TextChunk

# Elements whose inline body goes through the text rewriter
TEXT_NODE_TARGETS = ("script", "style")


class TextNodeRewriter(ContentHandler):
    """
    Rewrite the whole body of a text node once all its chunks arrived.

    Intermediate chunks are swallowed, the rewritten node is written in
    place of the last one. The buffer is reused for the next node of the
    same tag, chunks of two nodes never interleave in the tokenizer output.
    """

    def __init__(self, rewriter: Callable[[str], str], buffer: str = ""):
        self.rewriter = rewriter
        self.buffer = buffer

    def text(self, chunk: TextChunk) -> None:
        self.buffer += chunk.text

        if chunk.last_in_text_node:
            chunk.replace(self.rewriter(self.buffer), html=True)
            self.buffer = ""
        else:
            chunk.remove()
