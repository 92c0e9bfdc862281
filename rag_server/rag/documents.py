"""Document chunk model and the vector store interface."""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional


@dataclass
class Document:
    """One indexed chunk of a source file.

    ``path`` names the source file; ``key`` (path plus chunk index) is the
    identity used by the store, so every chunk of a file is kept.
    """

    path: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    chunk_index: int = 0

    @property
    def key(self) -> str:
        return f"{self.path}#{self.chunk_index}"

    @property
    def source(self) -> str:
        return self.metadata.get("source") or self.path

    @property
    def score(self) -> Optional[float]:
        return self.metadata.get("score")

    def with_score(self, score: float) -> "Document":
        """Copy of this document carrying a similarity score in its metadata."""
        return Document(
            path=self.path,
            content=self.content,
            metadata={**self.metadata, "score": score},
            chunk_index=self.chunk_index,
        )

    def to_dict(self) -> Dict[str, Any]:
        metadata = {k: v for k, v in self.metadata.items() if k != "score"}
        return {
            "path": self.path,
            "content": self.content,
            "chunk_index": self.chunk_index,
            "metadata": metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        return cls(
            path=data["path"],
            content=data["content"],
            metadata=dict(data.get("metadata") or {}),
            chunk_index=int(data.get("chunk_index", 0)),
        )


class VectorStore(ABC):
    """Capability interface shared by every vector store backend."""

    @abstractmethod
    async def initialize(self) -> None:
        """Open the backing store and load persisted entries (idempotent)."""

    @abstractmethod
    async def add_documents(
        self,
        docs: List[Document],
        progress_callback: Optional[Callable[[Document, bool], None]] = None,
    ) -> None:
        """Embed and index documents whose key is not stored yet."""

    @abstractmethod
    async def similarity_search(self, query: str, k: int) -> List[Document]:
        """Return at most ``k`` documents, most similar first."""

    @abstractmethod
    async def remove_document(self, path: str) -> None:
        """Remove every chunk of a source path."""

    @abstractmethod
    async def remove_all_documents(self) -> None:
        """Remove everything, in memory and on disk."""

    @abstractmethod
    async def list_document_paths(self) -> List[str]:
        """Source paths currently indexed, in indexing order."""

    @abstractmethod
    async def get_document(self, path: str) -> Optional[str]:
        """Indexed text of one source path, or None when unknown."""

    @abstractmethod
    async def close(self) -> None:
        """Flush pending writes and release the backing store."""

    @property
    @abstractmethod
    def count(self) -> int:
        """Number of indexed chunks."""
