"""Document discovery and chunking for indexing.

Turns a file or directory path into Documents:
- File discovery (recursive, extension filter)
- Text loading
- Chunking with source metadata
"""
from pathlib import Path
from typing import Iterable, List

import structlog

from rag_server import config
from rag_server.errors import NotFoundError
from rag_server.rag.chunker import TextChunker
from rag_server.rag.documents import Document

logger = structlog.get_logger()


class DocumentLoader:
    """Loads supported text files and splits them into Documents."""

    def __init__(
        self,
        chunker: TextChunker = None,
        extensions: Iterable[str] = None,
    ):
        """Initialize the loader.

        Args:
            chunker: Chunker to split file contents (default: configured TextChunker)
            extensions: Accepted file suffixes (default from config)
        """
        self.chunker = chunker or TextChunker()
        self.extensions = tuple(ext.lower() for ext in (extensions or config.SUPPORTED_EXTENSIONS))

    def is_supported(self, path: Path) -> bool:
        return path.suffix.lower() in self.extensions

    def discover_files(self, root: Path) -> List[Path]:
        """Find all supported files below a directory, in sorted order."""
        files = sorted(
            p for p in root.rglob("*") if p.is_file() and self.is_supported(p)
        )

        logger.info("files_discovered", count=len(files), root=str(root))

        return files

    def load(self, path: str) -> List[Document]:
        """Load and chunk every supported file at a path.

        Args:
            path: File or directory path

        Returns:
            Documents, one per chunk

        Raises:
            NotFoundError: If the path does not exist, is a file with an
                unsupported extension, or is a directory without supported files
        """
        root = Path(path).expanduser()

        if not root.exists():
            raise NotFoundError(f"Path does not exist: {path}")

        if root.is_dir():
            files = self.discover_files(root)
            if not files:
                raise NotFoundError(
                    f"No supported files found in {path} or its subdirectories"
                )
        elif root.is_file():
            if not self.is_supported(root):
                raise NotFoundError(f"Unsupported file type: {root.name}")
            files = [root]
        else:
            raise NotFoundError(f"Path is neither a file nor a directory: {path}")

        docs: List[Document] = []
        for file_path in files:
            docs.extend(self.load_file(file_path))

        logger.info("documents_loaded", path=str(root), files=len(files), chunks=len(docs))

        return docs

    def load_file(self, file_path: Path) -> List[Document]:
        """Chunk one file; unreadable files are logged and give no chunks."""
        try:
            text = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("file_read_failed", path=str(file_path), error=str(e))
            return []

        chunks = self.chunker.chunk_text(text)
        logger.debug("file_chunked", path=str(file_path), **self.chunker.get_chunk_stats(chunks))
        source_path = str(file_path.resolve())

        return [
            Document(
                path=source_path,
                content=chunk.content,
                chunk_index=chunk.chunk_index,
                metadata={
                    "source": f"{file_path.name} (chunk {chunk.chunk_index + 1}/{len(chunks)})",
                    "char_start": chunk.char_start,
                    "char_end": chunk.char_end,
                },
            )
            for chunk in chunks
        ]
