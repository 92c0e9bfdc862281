"""FAISS vector store for semantic search.

Handles:
- Exact L2 search over unit-normalized embeddings (IndexFlatL2)
- Chunk key <-> index position bookkeeping
- Rebuild on removal (a flat index has no in-place delete)
- Debounced persistence to SQLite
"""
import asyncio
import json
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import faiss
import numpy as np
import structlog

from rag_server import config
from rag_server.db import DocumentDatabase, decode_vector, encode_vector
from rag_server.errors import EmbeddingError, IndexStateError, PersistenceError
from rag_server.rag.documents import Document, VectorStore

logger = structlog.get_logger()

Embedder = Callable[[str], Awaitable[List[float]]]
ProgressCallback = Callable[[Document, bool], None]

MIN_NORM = 1e-10


def normalize_vector(values: Iterable[float], dimension: Optional[int] = None) -> np.ndarray:
    """Scale a vector to unit L2 norm.

    Args:
        values: Raw embedding values
        dimension: Required length, if any

    Returns:
        Unit-length float32 vector

    Raises:
        ValueError: If the vector has the wrong shape or length, contains
            NaN/Infinity, or its norm is below 1e-10
    """
    raw = np.asarray(values, dtype=np.float64)
    if raw.ndim != 1:
        raise ValueError(f"Embedding must be one-dimensional, got shape {raw.shape}")
    if dimension is not None and raw.shape[0] != dimension:
        raise ValueError(
            f"Embedding dimension mismatch: expected {dimension}, got {raw.shape[0]}"
        )
    if not np.all(np.isfinite(raw)):
        raise ValueError("Embedding contains NaN or Infinity values")

    norm = float(np.linalg.norm(raw))
    if norm < MIN_NORM:
        raise ValueError("Embedding norm is zero")

    return (raw / norm).astype(np.float32)


def distance_to_score(distance: float) -> float:
    """Map an L2 distance to a (0, 1] similarity score, higher is closer."""
    return 1.0 / (1.0 + max(distance, 0.0))


class FAISSVectorStore(VectorStore):
    """FAISS-based vector store with SQLite persistence.

    ``documents`` (chunk key -> Document), ``vectors`` and the FAISS index are
    kept position-aligned: the chunk stored at position ``i`` has its vector
    at ``vectors[i]`` and at row ``i`` of the index.
    """

    def __init__(
        self,
        embedder: Embedder,
        store_dir: Path = None,
        dimension: int = None,
        database: Optional[DocumentDatabase] = None,
        save_debounce: float = None,
    ):
        """Initialize the FAISS vector store.

        Args:
            embedder: Async function turning text into an embedding
            store_dir: Directory for the backing database (default from config)
            dimension: Embedding dimension (default from config)
            database: Persistence layer (default: SQLite file in store_dir)
            save_debounce: Seconds to wait after a mutation before saving
        """
        self.embedder = embedder
        self.store_dir = Path(store_dir or config.VECTOR_STORE_PATH)
        self.dimension = dimension or config.EMBEDDING_DIMENSION
        self.database = database or DocumentDatabase(self.store_dir)
        self.save_debounce = (
            config.SAVE_DEBOUNCE_SECONDS if save_debounce is None else save_debounce
        )

        self.index: Optional[faiss.Index] = None
        self.documents: Dict[str, Document] = {}
        self.vectors: List[np.ndarray] = []
        self.path_to_position: Dict[str, int] = {}
        self.position_to_path: Dict[int, str] = {}
        self.initialized = False

        self._save_task: Optional[asyncio.Task] = None

        logger.info(
            "faiss_store_created",
            store_dir=str(self.store_dir),
            dimension=self.dimension,
        )

    @property
    def count(self) -> int:
        return len(self.documents)

    @property
    def has_pending_save(self) -> bool:
        return self._save_task is not None and not self._save_task.done()

    async def initialize(self) -> None:
        """Create the index and load persisted rows (runs once).

        Invalid rows (unparsable document, key mismatch, bad vector) are
        skipped with a warning.

        Raises:
            PersistenceError: If the backing store cannot be opened
        """
        if self.initialized:
            return

        self.database.open()
        self._reset_memory()

        skipped = 0
        for key, raw_document, blob in self.database.load_rows():
            try:
                document = Document.from_dict(json.loads(raw_document))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning("persisted_row_skipped", path=key, reason="unparsable", error=str(e))
                skipped += 1
                continue

            if document.key != key:
                logger.warning(
                    "persisted_row_skipped",
                    path=key,
                    reason="path mismatch",
                    document_path=document.key,
                )
                skipped += 1
                continue

            try:
                vector = normalize_vector(decode_vector(blob), self.dimension)
            except ValueError as e:
                logger.warning("persisted_row_skipped", path=key, reason="bad vector", error=str(e))
                skipped += 1
                continue

            self._append(key, document, vector)

        if self.vectors:
            self.index.add(np.vstack(self.vectors))

        self.initialized = True

        logger.info(
            "faiss_store_initialized",
            documents=len(self.documents),
            skipped=skipped,
            dimension=self.dimension,
            index_type="IndexFlatL2",
        )

    async def add_documents(
        self,
        docs: List[Document],
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        """Embed and index documents whose key is not stored yet.

        Chunks that are empty, fail to embed, or embed to an invalid vector
        are logged and skipped; the rest of the batch still goes in.

        Args:
            docs: Documents to add
            progress_callback: Optional callback(document, succeeded) per chunk
        """
        await self._ensure_initialized()

        if not docs:
            logger.info("no_documents_to_add")
            return

        pending: List[Document] = []
        seen = set()
        for doc in docs:
            if doc.key in self.documents or doc.key in seen:
                logger.debug("document_already_indexed", path=doc.key)
                continue
            seen.add(doc.key)
            pending.append(doc)

        if not pending:
            logger.info("documents_already_indexed", count=len(docs))
            return

        logger.info("adding_documents", count=len(pending))

        accepted = []
        for i, doc in enumerate(pending, 1):
            vector = await self._embed_document(doc)
            if progress_callback:
                progress_callback(doc, vector is not None)
            if vector is not None:
                accepted.append((doc, vector))

            if i % 10 == 0:
                logger.info("embedding_progress", embedded=i, total=len(pending))

        if not accepted:
            logger.warning("no_valid_embeddings_skipping_index_update", count=len(pending))
            return

        new_vectors = []
        for doc, vector in accepted:
            if doc.key in self.documents:
                continue
            self._append(doc.key, doc, vector)
            new_vectors.append(vector)

        if new_vectors:
            self.index.add(np.vstack(new_vectors))

        logger.info(
            "documents_added",
            added=len(new_vectors),
            skipped=len(pending) - len(new_vectors),
            total_vectors=self.index.ntotal,
        )

        self._schedule_save()

    async def similarity_search(self, query: str, k: int) -> List[Document]:
        """Return up to ``k`` documents closest to the query, best first.

        Each result is a copy with ``metadata["score"] = 1 / (1 + distance)``.
        An empty index or a failed query embedding gives an empty list.
        """
        await self._ensure_initialized()

        if self.index is None or self.index.ntotal == 0 or k <= 0:
            return []

        try:
            raw = await self.embedder(query)
            query_vector = normalize_vector(raw, self.dimension)
        except (EmbeddingError, ValueError) as e:
            logger.error("query_embedding_failed", error=str(e), query_preview=query[:100])
            return []

        top_k = min(k, self.index.ntotal)
        distances, positions = self.index.search(query_vector.reshape(1, -1), top_k)

        results = []
        for position, distance in zip(positions[0].tolist(), distances[0].tolist()):
            if position < 0:
                continue
            key = self.position_to_path.get(position)
            document = self.documents.get(key) if key is not None else None
            if document is None:
                logger.warning("search_position_unmapped", position=position)
                continue
            results.append(document.with_score(distance_to_score(distance)))

        logger.info("vector_search_completed", top_k=top_k, results_found=len(results))

        return results

    async def remove_document(self, path: str) -> None:
        """Remove a source path (every chunk of it) or a single chunk key."""
        await self.remove_documents([path])

    async def remove_documents(self, paths: Iterable[str]) -> int:
        """Remove several paths, rebuilding the index once at the end.

        Returns:
            Number of chunks removed
        """
        await self._ensure_initialized()

        targets = set(paths)
        keys = [
            key
            for key, doc in self.documents.items()
            if key in targets or doc.path in targets
        ]

        if not keys:
            logger.info("document_not_found", paths=sorted(targets))
            return 0

        for key in keys:
            position = self.path_to_position.pop(key, None)
            self.position_to_path.pop(position, None)
            del self.documents[key]

        self._rebuild()

        logger.info("documents_removed", chunks=len(keys), remaining=len(self.documents))

        self._schedule_save()
        return len(keys)

    async def remove_all_documents(self) -> None:
        """Reset the index and delete every persisted row."""
        await self._ensure_initialized()

        self._cancel_pending_save()
        self._reset_memory()
        self.database.clear()

        logger.warning("all_documents_removed")

    async def list_document_paths(self) -> List[str]:
        await self._ensure_initialized()
        return list(dict.fromkeys(doc.path for doc in self.documents.values()))

    async def get_document(self, path: str) -> Optional[str]:
        """Reassemble the indexed text of a source path from its chunks.

        Overlapping regions are stitched using the chunks' character offsets
        when present, with gaps between chunks filled by newlines; otherwise
        chunks are joined with blank lines.
        """
        await self._ensure_initialized()

        chunks = sorted(
            (doc for doc in self.documents.values() if doc.path == path),
            key=lambda doc: doc.chunk_index,
        )
        if not chunks:
            return None

        if not all("char_start" in doc.metadata for doc in chunks):
            return "\n\n".join(doc.content for doc in chunks)

        text = ""
        covered = 0
        for doc in chunks:
            start = int(doc.metadata["char_start"])
            if start >= covered:
                # Separators dropped by the chunker (newlines before headings)
                text += "\n" * (start - covered) + doc.content
            else:
                text += doc.content[covered - start:]
            covered = max(covered, start + len(doc.content))
        return text

    async def save_index(self) -> bool:
        """Write the full in-memory state to the backing store.

        The save is refused (and logged) when the documents, vectors and
        index disagree, so a torn state never reaches disk. An empty store
        clears the persisted rows.

        Returns:
            True if the state was written

        Raises:
            PersistenceError: If the database write fails
        """
        if self.index is None:
            logger.warning("save_skipped_no_index")
            return False

        try:
            self.check_invariants()
        except IndexStateError as e:
            logger.error("save_aborted_inconsistent_state", error=str(e))
            return False

        if not self.documents:
            self.database.clear()
            return True

        rows = [
            (
                key,
                json.dumps(doc.to_dict()),
                encode_vector(self.vectors[self.path_to_position[key]]),
            )
            for key, doc in self.documents.items()
        ]
        self.database.replace_all(rows)

        logger.info("faiss_store_saved", vector_count=self.index.ntotal)
        return True

    def check_invariants(self) -> None:
        """Verify documents, vectors, index and position maps agree.

        Raises:
            IndexStateError: On any mismatch
        """
        n_docs = len(self.documents)
        n_vectors = len(self.vectors)
        n_index = self.index.ntotal if self.index is not None else 0

        if not n_docs == n_vectors == n_index:
            raise IndexStateError(
                f"Count mismatch: documents={n_docs}, vectors={n_vectors}, index={n_index}"
            )

        if (
            len(self.path_to_position) != n_docs
            or len(self.position_to_path) != n_docs
            or set(self.position_to_path) != set(range(n_docs))
        ):
            raise IndexStateError("Position mappings do not cover the stored documents")

        for key, position in self.path_to_position.items():
            if self.position_to_path.get(position) != key or key not in self.documents:
                raise IndexStateError(f"Dangling position mapping for {key}")

    async def flush(self) -> None:
        """Cancel a pending debounced save and save immediately."""
        self._cancel_pending_save()
        if self.initialized:
            await self.save_index()

    async def close(self) -> None:
        await self.flush()
        self.database.close()
        self.initialized = False

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the vector store.

        Returns:
            Dictionary with store statistics
        """
        if self.index is None:
            return {
                "initialized": False,
                "vector_count": 0,
                "dimension": self.dimension,
            }

        return {
            "initialized": self.initialized,
            "vector_count": self.index.ntotal,
            "document_count": len(self.documents),
            "source_count": len({doc.path for doc in self.documents.values()}),
            "dimension": self.dimension,
            "db_path": str(self.database.db_path),
            "pending_save": self.has_pending_save,
        }

    async def _ensure_initialized(self) -> None:
        if not self.initialized:
            await self.initialize()

    async def _embed_document(self, doc: Document) -> Optional[np.ndarray]:
        if not doc.content or not doc.content.strip():
            logger.warning("skipping_empty_document", path=doc.key)
            return None

        try:
            raw = await self.embedder(doc.content)
        except EmbeddingError as e:
            logger.error("document_embedding_failed", path=doc.key, error=str(e))
            return None

        try:
            return normalize_vector(raw, self.dimension)
        except ValueError as e:
            logger.warning("skipping_invalid_embedding", path=doc.key, reason=str(e))
            return None

    def _append(self, key: str, document: Document, vector: np.ndarray) -> None:
        position = len(self.vectors)
        self.documents[key] = document
        self.vectors.append(vector)
        self.path_to_position[key] = position
        self.position_to_path[position] = key

    def _reset_memory(self) -> None:
        self.index = faiss.IndexFlatL2(self.dimension)
        self.documents = {}
        self.vectors = []
        self.path_to_position = {}
        self.position_to_path = {}

    def _rebuild(self) -> None:
        """Recreate the index and positions from the surviving documents."""
        survivors = [
            (key, doc, self.vectors[self.path_to_position[key]])
            for key, doc in self.documents.items()
        ]

        self._reset_memory()
        for key, doc, vector in survivors:
            self._append(key, doc, vector)
        if self.vectors:
            self.index.add(np.vstack(self.vectors))

        logger.info("faiss_index_rebuilt", vector_count=self.index.ntotal)

    def _schedule_save(self) -> None:
        self._cancel_pending_save()
        self._save_task = asyncio.create_task(self._save_after_delay())

    def _cancel_pending_save(self) -> None:
        if self._save_task is not None and not self._save_task.done():
            self._save_task.cancel()
        self._save_task = None

    async def _save_after_delay(self) -> None:
        await asyncio.sleep(self.save_debounce)
        self._save_task = None
        try:
            await self.save_index()
        except PersistenceError as e:
            logger.error("debounced_save_failed", error=str(e))
