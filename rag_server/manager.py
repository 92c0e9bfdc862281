"""RAG manager: indexing and querying on top of the vector store.

Orchestrates:
- Document discovery and chunking
- Embedding and indexing
- Query embedding, search and result formatting
- Index lifecycle (removal, listing, shutdown)
"""
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from rag_server import config
from rag_server.embedding_client import EmbeddingClient
from rag_server.errors import IndexStateError
from rag_server.rag.documents import Document, VectorStore
from rag_server.rag.factory import create_vector_store
from rag_server.rag.ingest import DocumentLoader
from rag_server.rag.retriever import format_results

logger = structlog.get_logger()

NOT_INDEXED_MESSAGE = "Documents not indexed yet. Please run index_documents first."


@dataclass
class IndexStatus:
    """Progress of the most recent indexing run."""

    current_path: str = ""
    completed: int = 0
    failed: int = 0
    total: int = 0
    in_progress: bool = False


class RAGManager:
    """Owns an embedding client and a vector store and drives both."""

    def __init__(
        self,
        embedding_client: Optional[EmbeddingClient] = None,
        vector_store: Optional[VectorStore] = None,
        loader: Optional[DocumentLoader] = None,
        default_k: int = None,
    ):
        """Initialize the manager.

        Args:
            embedding_client: Client for the embedding API (default from config)
            vector_store: Store to index into (default: configured backend
                using the embedding client)
            loader: File loader and chunker (default from config)
            default_k: Number of results for queries without ``k``
        """
        self.embedding_client = embedding_client or EmbeddingClient()
        self.vector_store = vector_store or create_vector_store(self.embedding_client.embed)
        self.loader = loader or DocumentLoader()
        self.default_k = default_k or config.QUERY_TOP_K
        self.status = IndexStatus()

        logger.info(
            "rag_manager_initialized",
            embedding_model=self.embedding_client.model,
            default_k=self.default_k,
        )

    @classmethod
    def from_config(cls) -> "RAGManager":
        """Validate the environment configuration and build a manager.

        Raises:
            ConfigurationError: If the configuration is unusable
        """
        config.validate()
        return cls()

    async def index_documents(self, path: str) -> int:
        """Index every supported file at a path.

        Args:
            path: File or directory

        Returns:
            Number of chunks embedded in this run

        Raises:
            NotFoundError: If the path is missing, unsupported or empty
            PersistenceError: If the backing store cannot be opened
        """
        docs = self.loader.load(path)

        self.status = IndexStatus(current_path=str(path), total=len(docs), in_progress=True)
        logger.info("indexing_started", path=str(path), chunks=len(docs))

        try:
            await self.vector_store.initialize()
            await self.vector_store.add_documents(docs, progress_callback=self._track_progress)
        finally:
            self.status.in_progress = False

        logger.info(
            "indexing_completed",
            path=str(path),
            completed=self.status.completed,
            failed=self.status.failed,
            total=self.status.total,
        )

        return self.status.completed

    async def query_documents(self, query: str, k: int = None) -> str:
        """Retrieve the chunks most similar to a query, formatted for an LLM.

        Args:
            query: Search text
            k: Maximum number of chunks (default from config)

        Returns:
            Tagged, de-duplicated chunks separated by blank lines

        Raises:
            IndexStateError: If nothing has been indexed yet
        """
        k = k or self.default_k

        await self.vector_store.initialize()
        if self.vector_store.count == 0:
            raise IndexStateError(NOT_INDEXED_MESSAGE)

        if not query or not query.strip():
            logger.warning("empty_query_provided")
            return ""

        results = await self.vector_store.similarity_search(query, k)

        logger.info("query_completed", k=k, results=len(results))

        return format_results(results)

    async def remove_document(self, path: str) -> bool:
        """Remove every chunk of a source path.

        Returns:
            True if the path was indexed
        """
        target = await self._resolve_indexed_path(path)
        known = target in await self.vector_store.list_document_paths()
        await self.vector_store.remove_document(target)
        return known

    async def remove_all_documents(self) -> None:
        await self.vector_store.initialize()
        await self.vector_store.remove_all_documents()

    async def list_document_paths(self) -> List[str]:
        await self.vector_store.initialize()
        return await self.vector_store.list_document_paths()

    async def get_document(self, path: str) -> str:
        """Indexed text of a source path.

        Raises:
            IndexStateError: If the path is not indexed
        """
        target = await self._resolve_indexed_path(path)
        content = await self.vector_store.get_document(target)
        if content is None:
            raise IndexStateError(f"Document not indexed: {path}")
        return content

    def index_status(self) -> Dict[str, Any]:
        return asdict(self.status)

    async def close(self) -> None:
        """Flush the vector store and stop the embedding queue."""
        await self.vector_store.close()
        await self.embedding_client.close()
        logger.info("rag_manager_closed")

    def _track_progress(self, document: Document, succeeded: bool) -> None:
        if succeeded:
            self.status.completed += 1
        else:
            self.status.failed += 1

    async def _resolve_indexed_path(self, path: str) -> str:
        """Map a user-supplied path onto the absolute form used when indexing."""
        paths = await self.list_document_paths()
        if path in paths:
            return path
        resolved = str(Path(path).expanduser().resolve())
        return resolved if resolved in paths else path
