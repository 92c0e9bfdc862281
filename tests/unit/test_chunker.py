"""Tests for text chunking."""
import math
import string

import pytest

from rag_server.errors import ConfigurationError
from rag_server.rag.chunker import TextChunker, is_code_like, is_markdown_like, sliding_window


def plain_text(length: int) -> str:
    letters = string.ascii_lowercase
    return "".join(letters[i % len(letters)] for i in range(length))


def test_sliding_window_1200_chars():
    text = plain_text(1200)
    chunks = TextChunker(chunk_size=500, chunk_overlap=200).chunk_text(text)

    assert [(c.char_start, c.char_end) for c in chunks] == [
        (0, 500),
        (300, 800),
        (600, 1100),
        (900, 1200),
    ]
    assert [c.content for c in chunks] == [
        text[0:500],
        text[300:800],
        text[600:1100],
        text[900:1200],
    ]
    assert [c.chunk_index for c in chunks] == [0, 1, 2, 3]


@pytest.mark.parametrize(
    "length,size,overlap",
    [(1200, 500, 200), (1100, 500, 200), (1000, 100, 0), (777, 64, 63), (501, 500, 200)],
)
def test_sliding_window_count_and_coverage(length, size, overlap):
    text = plain_text(length)
    chunks = sliding_window(text, size, overlap)

    assert len(chunks) == math.ceil((length - overlap) / (size - overlap))

    rebuilt = chunks[0].content + "".join(c.content[overlap:] for c in chunks[1:])
    assert rebuilt == text


def test_short_text_is_single_chunk():
    chunks = TextChunker(chunk_size=500, chunk_overlap=200).chunk_text("short note")

    assert len(chunks) == 1
    assert chunks[0].content == "short note"


def test_empty_text_has_no_chunks():
    assert TextChunker(chunk_size=500, chunk_overlap=200).chunk_text("") == []


@pytest.mark.parametrize("size,overlap", [(200, 200), (100, 300), (0, 0), (100, -1)])
def test_invalid_chunking_rejected(size, overlap):
    with pytest.raises(ConfigurationError):
        TextChunker(chunk_size=size, chunk_overlap=overlap)


def test_code_split_at_function_boundaries():
    text = (
        "function first(a) {\n  return a;\n}\n"
        "function second(a, b) {\n  return a + b;\n}\n"
    )
    chunks = TextChunker(chunk_size=500, chunk_overlap=200).chunk_text(text)

    assert len(chunks) == 2
    assert chunks[0].content.startswith("function first")
    assert chunks[1].content.startswith("function second")
    assert "".join(c.content for c in chunks) == text


def test_code_preamble_becomes_own_chunk():
    text = "const x = {};\nfunction run() {\n  go();\n}\n"
    chunks = TextChunker(chunk_size=500, chunk_overlap=200).chunk_text(text)

    assert [c.content for c in chunks] == ["const x = {};\n", "function run() {\n  go();\n}\n"]


def test_json_without_functions_is_one_chunk():
    text = '{"name": "rag", "items": [1, 2, 3]}'
    chunks = TextChunker(chunk_size=10, chunk_overlap=2).chunk_text(text)

    assert [c.content for c in chunks] == [text]


def test_markdown_split_at_headings():
    text = "# Title\nintro\n## Part\nbody\n### Deep\nmore"
    chunks = TextChunker(chunk_size=500, chunk_overlap=200).chunk_text(text)

    assert [c.content for c in chunks] == ["# Title\nintro", "## Part\nbody", "### Deep\nmore"]


def test_markdown_whitespace_fragments_dropped():
    text = "\n\n# Only\ntext"
    chunks = TextChunker(chunk_size=500, chunk_overlap=200).chunk_text(text)

    assert [c.content for c in chunks] == ["# Only\ntext"]


def test_content_classification():
    assert is_code_like("if (x) { y(); }")
    assert not is_code_like("only { opening")
    assert is_markdown_like("intro\n## Heading\n")
    assert not is_markdown_like("a #hashtag is not a heading")


def test_content_aware_disabled_uses_window():
    text = "# Title\n" + plain_text(600)
    chunks = TextChunker(chunk_size=500, chunk_overlap=200, content_aware=False).chunk_text(text)

    assert len(chunks) == 2
    assert chunks[0].content == text[:500]


def test_dynamic_chunk_size():
    chunker = TextChunker(chunk_size=700, chunk_overlap=100)

    assert chunker.dynamic_chunk_size("plain words") == 700
    assert chunker.dynamic_chunk_size("# Heading\nbody") == 600
    assert chunker.dynamic_chunk_size("{ code }") == 500


def test_chunk_stats():
    chunker = TextChunker(chunk_size=500, chunk_overlap=200)
    stats = chunker.get_chunk_stats(chunker.chunk_text(plain_text(1200)))

    assert stats["chunk_count"] == 4
    assert stats["min_chunk_size"] == 300
    assert stats["max_chunk_size"] == 500
    assert stats["span"] == 1200
    assert chunker.get_chunk_stats([])["chunk_count"] == 0
