"""Tests for the MCP-facing tool handlers and server registration."""
import pytest

from rag_server.server import RAGTools, create_server


class FailingManager:
    """Manager whose every operation raises."""

    status = None

    def __getattr__(self, name):
        async def fail(*args, **kwargs):
            raise RuntimeError("backend down")

        return fail


@pytest.fixture
def tools(manager):
    return RAGTools(manager)


@pytest.mark.asyncio
async def test_index_then_list(tmp_path, tools):
    path = tmp_path / "notes.txt"
    path.write_text("x" * 1200, encoding="utf-8")

    message = await tools.index_documents(str(path))
    listing = await tools.list_documents()

    assert message == f"Successfully indexed documents from {path} (4 chunks embedded)"
    assert listing == f"Found 1 documents in the index:\n\n- {path.resolve()}"


@pytest.mark.asyncio
async def test_index_reports_skipped(tmp_path, tools, embedder):
    embedder.fail_on.add("# B\nbad")
    path = tmp_path / "g.md"
    path.write_text("# A\ngood\n# B\nbad", encoding="utf-8")

    message = await tools.index_documents(str(path))

    assert message.endswith("(1 chunks embedded, 1 skipped)")


@pytest.mark.asyncio
async def test_index_missing_path_returns_error_text(tmp_path, tools):
    message = await tools.index_documents(str(tmp_path / "missing"))

    assert message.startswith("Error indexing documents: Path does not exist")


@pytest.mark.asyncio
async def test_empty_inputs(tools):
    assert await tools.index_documents("") == "Error: No path provided"
    assert await tools.remove_document("") == "Error: No document path provided"
    assert await tools.list_documents() == "No documents found in the index."


@pytest.mark.asyncio
async def test_query_before_indexing(tools):
    message = await tools.query_documents("hello")

    assert message == (
        "Error querying documents: Documents not indexed yet. "
        "Please run index_documents first."
    )


@pytest.mark.asyncio
async def test_query_and_resources(tmp_path, tools):
    path = tmp_path / "my guide.md"
    path.write_text("# Setup\ninstall\n# Run\nstart it", encoding="utf-8")
    await tools.index_documents(str(path))

    result = await tools.query_documents("# Run\nstart it", k=1)
    via_resource = await tools.query_resource("1", "%23%20Run%0Astart%20it")

    assert result == "[DOCUMENT:my_guide.md_(chunk_2/2)]\n# Run\nstart it\n[/DOCUMENT:my_guide.md_(chunk_2/2)]"
    assert via_resource == result
    assert await tools.documents_resource() == str(path.resolve())
    assert await tools.document_resource(str(path.resolve()).replace(" ", "%20")) == (
        "# Setup\ninstall\n# Run\nstart it"
    )


@pytest.mark.asyncio
async def test_query_resource_bad_count_falls_back(tmp_path, tools):
    path = tmp_path / "a.txt"
    path.write_text("some text", encoding="utf-8")
    await tools.index_documents(str(path))

    assert "some text" in await tools.query_resource("lots", "some")
    assert "some text" in await tools.query_resource("0", "some")


@pytest.mark.asyncio
async def test_remove_document_messages(tmp_path, tools):
    path = tmp_path / "a.txt"
    path.write_text("some text", encoding="utf-8")
    await tools.index_documents(str(path))

    assert await tools.remove_document(str(path)) == f"Successfully removed document: {path}"
    assert await tools.remove_document(str(path)) == f"Document not found in the index: {path}"


@pytest.mark.asyncio
async def test_remove_all_requires_confirm(tmp_path, tools):
    path = tmp_path / "a.txt"
    path.write_text("some text", encoding="utf-8")
    await tools.index_documents(str(path))

    refused = await tools.remove_all_documents()
    assert refused == "Error: You must set confirm=true to remove all documents"
    assert await tools.list_documents() != "No documents found in the index."

    assert await tools.remove_all_documents(confirm=True) == (
        "Successfully removed all documents from the index"
    )
    assert await tools.list_documents() == "No documents found in the index."


@pytest.mark.asyncio
async def test_status_resource(tmp_path, tools):
    path = tmp_path / "a.txt"
    path.write_text("x" * 1200, encoding="utf-8")
    await tools.index_documents(str(path))

    assert await tools.status_resource() == (
        f"Current Path: {path}\nCompleted: 4\nFailed: 0\nTotal chunks: 4"
    )


@pytest.mark.asyncio
async def test_handlers_turn_exceptions_into_text():
    tools = RAGTools(FailingManager())

    assert await tools.query_documents("q") == "Error querying documents: backend down"
    assert await tools.remove_document("p") == "Error removing document: backend down"
    assert await tools.remove_all_documents(confirm=True) == (
        "Error removing all documents: backend down"
    )
    assert await tools.list_documents() == "Error listing documents: backend down"
    assert await tools.document_resource("p") == "Error reading document: backend down"


@pytest.mark.asyncio
async def test_create_server_registers_tools_and_resources(manager):
    server = create_server(manager)

    tools = {tool.name for tool in await server.list_tools()}
    resources = {str(resource.uri) for resource in await server.list_resources()}
    templates = {template.uriTemplate for template in await server.list_resource_templates()}

    assert tools == {
        "index_documents",
        "query_documents",
        "remove_document",
        "remove_all_documents",
        "list_documents",
    }
    assert resources == {"rag://documents", "rag://embedding/status"}
    assert templates == {
        "rag://document/{path}",
        "rag://query-document/{number_of_chunks}/{query}",
    }
