"""Application configuration with sensible defaults."""
import os
from pathlib import Path
from typing import Optional

from rag_server.errors import ConfigurationError

# Embedding API (OpenAI-compatible or Ollama)
BASE_LLM_API = os.getenv("BASE_LLM_API", "http://localhost:11434/v1")
LLM_API_KEY = os.getenv("LLM_API_KEY", "")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "nomic-embed-text")
EMBEDDING_TIMEOUT = float(os.getenv("EMBEDDING_TIMEOUT", "60.0"))
EMBEDDING_MAX_RETRIES = int(os.getenv("EMBEDDING_MAX_RETRIES", "3"))
EMBEDDING_RETRY_DELAY = float(os.getenv("EMBEDDING_RETRY_DELAY", "1.0"))
EMBEDDING_BACKOFF_FACTOR = 1.5
EMBEDDING_QUEUE_SIZE = int(os.getenv("EMBEDDING_QUEUE_SIZE", "256"))

# Models sending {"input", "model"} and answering {"data": [{"embedding"}]}
OPENAI_STYLE_MODEL_MARKERS = ("text-embedding", "nomic-embed", "granite-embedding")
# Models known to produce 768-dimensional vectors; everything else is 1536
SMALL_DIMENSION_MODEL_MARKERS = ("granite-embedding", "nomic-embed-text")

# Vector store
VECTOR_STORE_PATH = Path(os.getenv("VECTOR_STORE_PATH", "./vector_store"))
VECTOR_STORE_BACKEND = os.getenv("VECTOR_STORE_BACKEND", "faiss")
VECTOR_STORE_DB_NAME = "vector_store.db"
SAVE_DEBOUNCE_SECONDS = float(os.getenv("SAVE_DEBOUNCE_SECONDS", "1.0"))

# Chunking (character-based to avoid tokenizer inconsistencies)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "500"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "200"))
SUPPORTED_EXTENSIONS = (".json", ".jsonl", ".txt", ".md", ".csv")

# Retrieval
QUERY_TOP_K = int(os.getenv("QUERY_TOP_K", "15"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "console")

KNOWN_BACKENDS = ("faiss",)


def embedding_dimension_for(model: str) -> int:
    """Return the vector length produced by an embedding model."""
    if any(marker in model for marker in SMALL_DIMENSION_MODEL_MARKERS):
        return 768
    return 1536


def _dimension_from_env() -> Optional[int]:
    raw = os.getenv("EMBEDDING_DIMENSION")
    return int(raw) if raw else None


EMBEDDING_DIMENSION = _dimension_from_env() or embedding_dimension_for(EMBEDDING_MODEL)


def validate_chunking(chunk_size: int, chunk_overlap: int) -> None:
    """Raise ConfigurationError unless 0 <= overlap < size."""
    if chunk_size <= 0:
        raise ConfigurationError(f"Chunk size must be positive, got {chunk_size}")
    if chunk_overlap < 0:
        raise ConfigurationError(f"Chunk overlap must not be negative, got {chunk_overlap}")
    if chunk_overlap >= chunk_size:
        raise ConfigurationError(
            f"Overlap ({chunk_overlap}) must be less than chunk size ({chunk_size})"
        )


def validate() -> None:
    """Validate the environment-derived configuration.

    Raises:
        ConfigurationError: If any setting is unusable
    """
    validate_chunking(CHUNK_SIZE, CHUNK_OVERLAP)

    if EMBEDDING_DIMENSION <= 0:
        raise ConfigurationError(
            f"Embedding dimension must be positive, got {EMBEDDING_DIMENSION}"
        )
    if EMBEDDING_MAX_RETRIES < 0:
        raise ConfigurationError("EMBEDDING_MAX_RETRIES must not be negative")
    if VECTOR_STORE_BACKEND not in KNOWN_BACKENDS:
        raise ConfigurationError(
            f"Unknown VECTOR_STORE_BACKEND '{VECTOR_STORE_BACKEND}'. "
            f"Must be one of: {', '.join(KNOWN_BACKENDS)}"
        )
