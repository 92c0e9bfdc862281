"""Tests for configuration helpers and vector store selection."""
import pytest

from rag_server import config
from rag_server.errors import ConfigurationError
from rag_server.rag.factory import create_vector_store
from rag_server.rag.store_faiss import FAISSVectorStore

from .fakes import FakeEmbedder


@pytest.mark.parametrize(
    "model,dimension",
    [
        ("nomic-embed-text", 768),
        ("granite-embedding:278m", 768),
        ("text-embedding-3-small", 1536),
        ("mxbai-embed-large", 1536),
    ],
)
def test_embedding_dimension_for(model, dimension):
    assert config.embedding_dimension_for(model) == dimension


@pytest.mark.parametrize("size,overlap", [(500, 200), (10, 0), (2, 1)])
def test_validate_chunking_accepts(size, overlap):
    config.validate_chunking(size, overlap)


@pytest.mark.parametrize("size,overlap", [(100, 100), (100, 150), (0, 0), (100, -1)])
def test_validate_chunking_rejects(size, overlap):
    with pytest.raises(ConfigurationError):
        config.validate_chunking(size, overlap)


def test_validate_rejects_unknown_backend(monkeypatch):
    monkeypatch.setattr(config, "VECTOR_STORE_BACKEND", "pinecone")

    with pytest.raises(ConfigurationError, match="pinecone"):
        config.validate()


def test_factory_builds_faiss_store(tmp_path):
    store = create_vector_store(FakeEmbedder(), backend="FAISS", store_dir=tmp_path, dimension=8)

    assert isinstance(store, FAISSVectorStore)
    assert store.dimension == 8
    assert store.store_dir == tmp_path


def test_factory_rejects_unknown_backend(tmp_path):
    with pytest.raises(ConfigurationError, match="Invalid VECTOR_STORE_BACKEND: chroma"):
        create_vector_store(FakeEmbedder(), backend="chroma", store_dir=tmp_path)
