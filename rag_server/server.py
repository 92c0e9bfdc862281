"""MCP server exposing the RAG manager over stdio.

Tools: index_documents, query_documents, remove_document,
remove_all_documents, list_documents.
Resources: rag://documents, rag://document/{path},
rag://query-document/{number_of_chunks}/{query}, rag://embedding/status.
"""
from contextlib import asynccontextmanager
from typing import Annotated, AsyncIterator
from urllib.parse import unquote

import structlog
from mcp.server.fastmcp import FastMCP
from pydantic import Field

from rag_server import config
from rag_server.log import configure_logging
from rag_server.manager import RAGManager

logger = structlog.get_logger()

SERVER_NAME = "rag-server"


def _error(action: str, error: Exception) -> str:
    logger.error("tool_failed", action=action, error=str(error), error_type=type(error).__name__)
    return f"Error {action}: {error}"


class RAGTools:
    """Protocol-facing handlers; every one returns text and never raises."""

    def __init__(self, manager: RAGManager):
        self.manager = manager

    async def index_documents(
        self,
        path: Annotated[str, Field(description="File or directory to index")],
    ) -> str:
        """Index .json, .jsonl, .txt, .md and .csv files from a file or directory path."""
        if not path:
            return "Error: No path provided"
        try:
            embedded = await self.manager.index_documents(path)
        except Exception as e:
            return _error("indexing documents", e)

        status = self.manager.status
        message = f"Successfully indexed documents from {path}"
        if status.failed:
            return f"{message} ({embedded} chunks embedded, {status.failed} skipped)"
        return f"{message} ({embedded} chunks embedded)"

    async def query_documents(
        self,
        query: Annotated[str, Field(description="Search text")],
        k: Annotated[int, Field(description="Maximum number of chunks", ge=1)] = config.QUERY_TOP_K,
    ) -> str:
        """Query indexed documents using RAG; returns the most relevant chunks."""
        try:
            result = await self.manager.query_documents(query, k)
        except Exception as e:
            return _error("querying documents", e)
        return result or "No matching documents found."

    async def remove_document(
        self,
        path: Annotated[str, Field(description="Path of an indexed file")],
    ) -> str:
        """Remove a specific document from the index by file path."""
        if not path:
            return "Error: No document path provided"
        try:
            removed = await self.manager.remove_document(path)
        except Exception as e:
            return _error("removing document", e)
        if not removed:
            return f"Document not found in the index: {path}"
        return f"Successfully removed document: {path}"

    async def remove_all_documents(
        self,
        confirm: Annotated[bool, Field(description="Must be true to proceed")] = False,
    ) -> str:
        """Remove all documents from the index; requires confirm=true."""
        if not confirm:
            return "Error: You must set confirm=true to remove all documents"
        try:
            await self.manager.remove_all_documents()
        except Exception as e:
            return _error("removing all documents", e)
        return "Successfully removed all documents from the index"

    async def list_documents(self) -> str:
        """List all document paths in the index."""
        try:
            paths = await self.manager.list_document_paths()
        except Exception as e:
            return _error("listing documents", e)

        if not paths:
            return "No documents found in the index."

        listing = "\n".join(f"- {path}" for path in paths)
        return f"Found {len(paths)} documents in the index:\n\n{listing}"

    async def documents_resource(self) -> str:
        try:
            return "\n".join(await self.manager.list_document_paths())
        except Exception as e:
            return _error("listing documents", e)

    async def document_resource(self, path: str) -> str:
        try:
            return await self.manager.get_document(unquote(path))
        except Exception as e:
            return _error("reading document", e)

    async def query_resource(self, number_of_chunks: str, query: str) -> str:
        try:
            k = int(number_of_chunks)
        except ValueError:
            k = config.QUERY_TOP_K
        return await self.query_documents(unquote(query), k if k > 0 else config.QUERY_TOP_K)

    async def status_resource(self) -> str:
        status = self.manager.index_status()
        return (
            f"Current Path: {status['current_path']}\n"
            f"Completed: {status['completed']}\n"
            f"Failed: {status['failed']}\n"
            f"Total chunks: {status['total']}"
        )


def create_server(manager: RAGManager) -> FastMCP:
    """Register the RAG tools and resources on a new MCP server."""

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[None]:
        logger.info("rag_server_started", name=SERVER_NAME)
        try:
            yield
        finally:
            await manager.close()

    server = FastMCP(SERVER_NAME, lifespan=lifespan)
    tools = RAGTools(manager)

    server.add_tool(tools.index_documents, name="index_documents")
    server.add_tool(tools.query_documents, name="query_documents")
    server.add_tool(tools.remove_document, name="remove_document")
    server.add_tool(tools.remove_all_documents, name="remove_all_documents")
    server.add_tool(tools.list_documents, name="list_documents")

    server.resource("rag://documents", name="documents")(tools.documents_resource)
    server.resource("rag://document/{path}", name="document")(tools.document_resource)
    server.resource(
        "rag://query-document/{number_of_chunks}/{query}", name="query-document"
    )(tools.query_resource)
    server.resource("rag://embedding/status", name="embedding-status")(
        tools.status_resource
    )

    return server


def main() -> None:
    """Console entry point: run the RAG server on stdio."""
    configure_logging()
    try:
        manager = RAGManager.from_config()
    except Exception as e:
        logger.error("server_initialization_failed", error=str(e))
        raise SystemExit(1) from e

    create_server(manager).run()


if __name__ == "__main__":
    main()
