"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Document chunking with overlap
- File discovery and loading
- FAISS vector storage with SQLite persistence
- Result de-duplication and formatting
"""
