"""Shared fixtures for unit tests."""
import pytest
import pytest_asyncio

from rag_server.manager import RAGManager
from rag_server.rag.chunker import TextChunker
from rag_server.rag.ingest import DocumentLoader
from rag_server.rag.store_faiss import FAISSVectorStore

from .fakes import DIMENSION, FakeEmbedder, StubClient


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest_asyncio.fixture
async def store(tmp_path, embedder):
    vector_store = FAISSVectorStore(
        embedder,
        store_dir=tmp_path / "store",
        dimension=DIMENSION,
        save_debounce=0.01,
    )
    await vector_store.initialize()
    yield vector_store
    await vector_store.close()


@pytest.fixture
def loader() -> DocumentLoader:
    return DocumentLoader(TextChunker(chunk_size=500, chunk_overlap=200))


@pytest_asyncio.fixture
async def manager(tmp_path, embedder, loader):
    vector_store = FAISSVectorStore(
        embedder, store_dir=tmp_path / "store", dimension=DIMENSION, save_debounce=0.01
    )
    rag = RAGManager(embedding_client=StubClient(), vector_store=vector_store, loader=loader)
    yield rag
    await rag.close()
