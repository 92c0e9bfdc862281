"""Tests for document loading and result formatting."""
import pytest

from rag_server.errors import NotFoundError
from rag_server.rag.documents import Document
from rag_server.rag.retriever import deduplicate_results, document_slug, format_results


def test_load_file_chunks_with_source_metadata(tmp_path, loader):
    path = tmp_path / "notes.txt"
    path.write_text("x" * 1200, encoding="utf-8")

    docs = loader.load(str(path))

    assert len(docs) == 4
    assert {doc.path for doc in docs} == {str(path.resolve())}
    assert [doc.chunk_index for doc in docs] == [0, 1, 2, 3]
    assert docs[0].metadata["source"] == "notes.txt (chunk 1/4)"
    assert docs[3].metadata["char_start"] == 900
    assert docs[3].metadata["char_end"] == 1200


def test_load_directory_recursively_filters_extensions(tmp_path, loader):
    (tmp_path / "sub").mkdir()
    (tmp_path / "a.md").write_text("# A\nalpha", encoding="utf-8")
    (tmp_path / "sub" / "b.csv").write_text("col\n1\n", encoding="utf-8")
    (tmp_path / "sub" / "c.jsonl").write_text('{"k": 1}\n', encoding="utf-8")
    (tmp_path / "skip.py").write_text("print('no')", encoding="utf-8")

    docs = loader.load(str(tmp_path))

    names = sorted({doc.path.rsplit("/", 1)[-1] for doc in docs})
    assert names == ["a.md", "b.csv", "c.jsonl"]


def test_missing_path_raises_not_found(tmp_path, loader):
    with pytest.raises(NotFoundError, match="Path does not exist"):
        loader.load(str(tmp_path / "nope"))


def test_unsupported_file_raises_not_found(tmp_path, loader):
    path = tmp_path / "image.png"
    path.write_bytes(b"\x89PNG")

    with pytest.raises(NotFoundError, match="Unsupported file type: image.png"):
        loader.load(str(path))


def test_directory_without_supported_files(tmp_path, loader):
    (tmp_path / "data.bin").write_bytes(b"\x00")

    with pytest.raises(NotFoundError, match="No supported files found"):
        loader.load(str(tmp_path))


def test_undecodable_file_is_skipped(tmp_path, loader):
    (tmp_path / "bad.txt").write_bytes(b"\xff\xfe\xfa")
    (tmp_path / "good.txt").write_text("fine", encoding="utf-8")

    docs = loader.load(str(tmp_path))

    assert [doc.content for doc in docs] == ["fine"]


def doc(content, source="guide.md"):
    return Document(path="/d/" + source, content=content, metadata={"source": source})


def test_deduplicate_keeps_first_occurrence():
    results = [doc("alpha"), doc("  alpha \n"), doc("beta"), doc("alpha")]

    assert [d.content for d in deduplicate_results(results)] == ["alpha", "beta"]


@pytest.mark.parametrize(
    "source,slug",
    [
        ("guide.md", "guide"),
        ("my notes.md", "my_notes"),
        ("guide.md (chunk 1/3)", "guide.md_(chunk_1/3)"),
        ("data  file.txt", "data_file.txt"),
    ],
)
def test_document_slug(source, slug):
    assert document_slug(source) == slug


def test_format_results():
    text = format_results([doc("  first\n", "a.md"), doc("second", "b notes.md"), doc("first", "c.md")])

    assert text == (
        "[DOCUMENT:a]\nfirst\n[/DOCUMENT:a]"
        "\n\n"
        "[DOCUMENT:b_notes]\nsecond\n[/DOCUMENT:b_notes]"
    )


def test_format_results_empty():
    assert format_results([]) == ""
