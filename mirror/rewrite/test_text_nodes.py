from mirror.rewrite.events import TextChunk
from mirror.rewrite.origins import Endpoint
from mirror.rewrite.rules import rewrite
from mirror.rewrite.text_nodes import TEXT_NODE_TARGETS, TextNodeRewriter

rewrite_urls = rewrite(
    Endpoint.parse("https://example.com/"),
    Endpoint.parse("https://proxy.test/https://example.com/"),
)


def feed(handler, *pieces):
    chunks = [TextChunk("script", piece, False) for piece in pieces]
    chunks.append(TextChunk("script", "", True))
    for chunk in chunks:
        handler.text(chunk)
    return [chunk.render() for chunk in chunks]


class TestTextNodeRewriter:
    def test_url_split_across_chunks(self):
        rendered = feed(TextNodeRewriter(rewrite_urls), "fetch('/", "api')")

        assert rendered == ["", "", "fetch('https://proxy.test/api')"]

    def test_output_is_written_once(self):
        pieces = ["var a = '/one';", " var b = \"/two\";", " // done"]

        rendered = feed(TextNodeRewriter(rewrite_urls), *pieces)

        assert [piece for piece in rendered if piece] == [rewrite_urls("".join(pieces))]

    def test_rewritten_text_is_not_escaped(self):
        rendered = feed(TextNodeRewriter(rewrite_urls), "if (a < b && c > d) go('/x');")

        assert rendered[-1] == "if (a < b && c > d) go('https://proxy.test/x');"

    def test_buffer_is_reset_between_nodes(self):
        handler = TextNodeRewriter(rewrite_urls)

        feed(handler, "first('/a')")
        rendered = feed(handler, "second('/b')")

        assert rendered[-1] == "second('https://proxy.test/b')"
        assert handler.buffer == ""

    def test_last_chunk_text_is_included(self):
        handler = TextNodeRewriter(rewrite_urls)
        first = TextChunk("style", "a{background:url('/", False)
        last = TextChunk("style", "bg.png')}", True)

        handler.text(first)
        handler.text(last)

        assert first.render() == ""
        assert last.render() == "a{background:url('https://proxy.test/bg.png')}"

    def test_empty_node(self):
        assert feed(TextNodeRewriter(rewrite_urls)) == [""]

    def test_targets(self):
        assert TEXT_NODE_TARGETS == ("script", "style")


class TestTextChunk:
    def test_replace_escapes_plain_text(self):
        chunk = TextChunk("title", "x", False)
        chunk.replace("a < b & c")

        assert chunk.render() == "a &lt; b &amp; c"

    def test_replace_as_html(self):
        chunk = TextChunk("script", "x", False)
        chunk.replace("a < b", html=True)

        assert chunk.render() == "a < b"

    def test_remove(self):
        chunk = TextChunk("script", "x", False)
        chunk.remove()

        assert chunk.removed
        assert chunk.render() == ""

    def test_untouched_chunk_renders_its_text(self):
        assert TextChunk("script", "x", True).render() == "x"
