"""Exception types raised by the RAG pipeline."""
from typing import Optional


class RAGError(Exception):
    """Base class for all RAG server errors."""


class ConfigurationError(RAGError):
    """Invalid or missing configuration (e.g. chunk overlap >= chunk size)."""


class NotFoundError(RAGError):
    """Source path missing, unsupported, or without any supported files."""


class EmbeddingError(RAGError):
    """The remote embedding call failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class IndexStateError(RAGError):
    """Index invariant violated, or the index has nothing to read yet."""


class PersistenceError(RAGError):
    """The backing store could not be opened or written."""
