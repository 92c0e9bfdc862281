"""Text chunking with overlap for RAG pipeline.

Implements character-based chunking to avoid tokenizer dependencies, with an
optional content-aware mode that splits code at function boundaries and
markdown at headings.
"""
import re
from dataclasses import dataclass
from typing import List

import structlog

from rag_server import config

logger = structlog.get_logger()

# Baseline sizes averaged with the configured size for the sliding window
CODE_BASELINE_SIZE = 300
MARKDOWN_BASELINE_SIZE = 500

FUNCTION_BOUNDARY = re.compile(
    r"\b(?:async\s+)?(?:function|func|fn)\s+\w+\s*\([^)]*\)\s*\{"
)
MARKDOWN_HEADING = re.compile(r"^#+\s", re.MULTILINE)
MARKDOWN_SPLIT = re.compile(r"\n(?=#+\s)")


@dataclass
class TextChunk:
    """Represents a chunk of text with position information."""

    content: str
    char_start: int
    char_end: int
    chunk_index: int


def is_code_like(text: str) -> bool:
    return "{" in text and "}" in text


def is_markdown_like(text: str) -> bool:
    return MARKDOWN_HEADING.search(text) is not None


def sliding_window(text: str, size: int, overlap: int) -> List[TextChunk]:
    """Split text into fixed-size windows advancing by ``size - overlap``.

    Stops once a window reaches the end of the text, so a text no longer than
    ``size`` yields exactly one chunk and a longer one yields
    ``ceil((len(text) - overlap) / (size - overlap))`` chunks.
    """
    config.validate_chunking(size, overlap)

    chunks: List[TextChunk] = []
    step = size - overlap
    start = 0
    text_length = len(text)

    while start < text_length:
        end = min(start + size, text_length)
        chunks.append(
            TextChunk(
                content=text[start:end],
                char_start=start,
                char_end=end,
                chunk_index=len(chunks),
            )
        )
        if end >= text_length:
            break
        start += step

    return chunks


class TextChunker:
    """Character-based text chunker with overlap support."""

    def __init__(
        self,
        chunk_size: int = None,
        chunk_overlap: int = None,
        content_aware: bool = True,
    ):
        """Initialize the text chunker.

        Args:
            chunk_size: Size of each chunk in characters (default from config)
            chunk_overlap: Overlap between chunks in characters (default from config)
            content_aware: Split code and markdown at natural boundaries

        Raises:
            ConfigurationError: If overlap is not smaller than chunk size
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap
        self.content_aware = content_aware

        config.validate_chunking(self.chunk_size, self.chunk_overlap)

        logger.debug(
            "chunker_initialized",
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            content_aware=self.content_aware,
        )

    def chunk_text(self, text: str) -> List[TextChunk]:
        """Split text into chunks.

        Args:
            text: Text to chunk

        Returns:
            List of TextChunk objects
        """
        if not text:
            return []

        if not self.content_aware:
            chunks = sliding_window(text, self.chunk_size, self.chunk_overlap)
        elif is_code_like(text):
            chunks = self._split_code(text)
        elif is_markdown_like(text):
            chunks = self._split_markdown(text)
        else:
            chunks = sliding_window(
                text, self.dynamic_chunk_size(text), self.chunk_overlap
            )

        logger.debug(
            "text_chunked",
            text_length=len(text),
            chunk_count=len(chunks),
        )

        return chunks

    def dynamic_chunk_size(self, text: str) -> int:
        """Target window size for a text, averaged with a per-type baseline."""
        if is_code_like(text):
            return (CODE_BASELINE_SIZE + self.chunk_size) // 2
        if is_markdown_like(text):
            return (MARKDOWN_BASELINE_SIZE + self.chunk_size) // 2
        return self.chunk_size

    def _split_code(self, text: str) -> List[TextChunk]:
        boundaries = [
            match.start()
            for match in FUNCTION_BOUNDARY.finditer(text)
            if match.start() > 0
        ]
        return self._fragments(text, [0] + boundaries + [len(text)])

    def _split_markdown(self, text: str) -> List[TextChunk]:
        # Each heading line starts a new fragment; the newline before it is dropped
        offsets = [0]
        for match in MARKDOWN_SPLIT.finditer(text):
            offsets.append(match.start())
            offsets.append(match.end())
        offsets.append(len(text))

        chunks: List[TextChunk] = []
        for start, end in zip(offsets[::2], offsets[1::2]):
            fragment = text[start:end]
            if fragment.strip():
                chunks.append(TextChunk(fragment, start, end, len(chunks)))
        return chunks

    def _fragments(self, text: str, offsets: List[int]) -> List[TextChunk]:
        chunks: List[TextChunk] = []
        for start, end in zip(offsets, offsets[1:]):
            fragment = text[start:end]
            if fragment.strip():
                chunks.append(TextChunk(fragment, start, end, len(chunks)))
        return chunks

    def get_chunk_stats(self, chunks: List[TextChunk]) -> dict:
        """Summarize chunk sizes and how much of the source they span."""
        sizes = [len(chunk.content) for chunk in chunks]
        return {
            "chunk_count": len(chunks),
            "total_chars": sum(sizes),
            "avg_chunk_size": sum(sizes) // len(sizes) if sizes else 0,
            "min_chunk_size": min(sizes, default=0),
            "max_chunk_size": max(sizes, default=0),
            "span": chunks[-1].char_end - chunks[0].char_start if chunks else 0,
            "chunk_size": self.chunk_size,
            "overlap": self.chunk_overlap,
        }
