"""Vector store selection by configuration."""
from pathlib import Path

import structlog

from rag_server import config
from rag_server.errors import ConfigurationError
from rag_server.rag.documents import VectorStore
from rag_server.rag.store_faiss import Embedder, FAISSVectorStore

logger = structlog.get_logger()


def create_vector_store(
    embedder: Embedder,
    backend: str = None,
    store_dir: Path = None,
    dimension: int = None,
    save_debounce: float = None,
) -> VectorStore:
    """Build the vector store named by ``backend`` (VECTOR_STORE_BACKEND).

    Raises:
        ConfigurationError: If the backend name is unknown
    """
    backend = (backend or config.VECTOR_STORE_BACKEND).lower()

    if backend == "faiss":
        logger.info("creating_vector_store", backend=backend)
        return FAISSVectorStore(
            embedder,
            store_dir=store_dir,
            dimension=dimension,
            save_debounce=save_debounce,
        )

    raise ConfigurationError(
        f"Invalid VECTOR_STORE_BACKEND: {backend}. "
        f"Must be one of: {', '.join(config.KNOWN_BACKENDS)}"
    )
