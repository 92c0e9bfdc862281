"""RAG server: index local documents and answer similarity queries over stdio."""

__version__ = "0.1.0"
