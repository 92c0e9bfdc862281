#!/usr/bin/env python
"""Check that the RAG server can run here.

Verifies the interpreter, the installed dependencies, the configuration,
the vector store directory and a live embedding request, then prints a
pass/fail summary. Exits non-zero when any check fails.
"""
import asyncio
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

sys.path.insert(0, str(Path(__file__).parent.parent))

DEPENDENCIES = [
    ("mcp", "MCP server SDK"),
    ("httpx", "Embedding HTTP client"),
    ("faiss", "FAISS vector index"),
    ("numpy", "Vector math"),
    ("pydantic", "Tool input schemas"),
    ("structlog", "Structured logging"),
    ("tenacity", "Embedding retry"),
]

MARKS = {"ok": "\033[92m✓\033[0m", "fail": "\033[91m✗\033[0m", "warn": "\033[93m⚠\033[0m", "info": " "}


@dataclass
class Report:
    """Collects check outcomes and prints them as they arrive."""

    failures: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def section(self, title: str) -> None:
        print(f"\n{title}\n{'-' * len(title)}")

    def ok(self, message: str) -> None:
        print(f"{MARKS['ok']} {message}")

    def info(self, message: str) -> None:
        print(f"{MARKS['info']} {message}")

    def warn(self, message: str) -> None:
        print(f"{MARKS['warn']} {message}")
        self.warnings.append(message)

    def fail(self, message: str) -> None:
        print(f"{MARKS['fail']} {message}")
        self.failures.append(message)


def check_python(report: Report) -> None:
    report.section("Python")
    version = ".".join(str(part) for part in sys.version_info[:3])
    if sys.version_info >= (3, 10):
        report.ok(f"Python {version}")
    else:
        report.fail(f"Python {version} is older than 3.10")

    if sys.prefix == sys.base_prefix:
        report.warn("Not running in a virtual environment")


def check_dependencies(report: Report) -> bool:
    report.section("Dependencies")
    missing = False
    for module_name, purpose in DEPENDENCIES:
        try:
            __import__(module_name)
        except ImportError as e:
            report.fail(f"{module_name:10} {purpose} ({e})")
            missing = True
        else:
            report.ok(f"{module_name:10} {purpose}")
    return not missing


def check_config(report: Report) -> None:
    from rag_server import config
    from rag_server.errors import ConfigurationError

    report.section("Configuration")
    report.info(f"Embedding API:    {config.BASE_LLM_API}")
    report.info(f"Embedding model:  {config.EMBEDDING_MODEL} (dim={config.EMBEDDING_DIMENSION})")
    report.info(f"Chunking:         {config.CHUNK_SIZE} chars, {config.CHUNK_OVERLAP} overlap")
    report.info(f"Store directory:  {config.VECTOR_STORE_PATH}")
    report.info(f"Backend:          {config.VECTOR_STORE_BACKEND}")

    try:
        config.validate()
    except ConfigurationError as e:
        report.fail(f"Invalid configuration: {e}")
    else:
        report.ok("Configuration is valid")


def check_store(report: Report) -> None:
    from rag_server import config
    from rag_server.db import DocumentDatabase
    from rag_server.errors import PersistenceError

    report.section("Vector store")
    store_dir = config.VECTOR_STORE_PATH
    if store_dir.exists():
        database = DocumentDatabase(store_dir)
    else:
        report.info(f"{store_dir} will be created on first use")
        database = DocumentDatabase(Path(tempfile.mkdtemp()))

    try:
        database.open()
        report.ok(f"Database usable ({database.count()} stored chunks)")
    except PersistenceError as e:
        report.fail(str(e))
    finally:
        database.close()


async def check_embedding_api(report: Report) -> None:
    from rag_server import config
    from rag_server.embedding_client import EmbeddingClient
    from rag_server.errors import EmbeddingError

    report.section("Embedding API")
    client = EmbeddingClient(max_retries=0)
    try:
        embedding = await client.embed("setup check")
    except EmbeddingError as e:
        report.fail(f"Embedding request failed: {e}")
        report.info(f"Is the API at {config.BASE_LLM_API} running?")
        return
    finally:
        await client.close()

    if len(embedding) == config.EMBEDDING_DIMENSION:
        report.ok(f"Embedding returned {len(embedding)} values")
    else:
        report.fail(
            f"Embedding has {len(embedding)} values, configured {config.EMBEDDING_DIMENSION}; "
            f"set EMBEDDING_DIMENSION={len(embedding)}"
        )


async def main() -> Report:
    report = Report()
    check_python(report)
    if check_dependencies(report):
        check_config(report)
        check_store(report)
        await check_embedding_api(report)

    report.section("Summary")
    if report.failures:
        print(f"{len(report.failures)} check(s) failed, {len(report.warnings)} warning(s)")
    else:
        print(f"All checks passed ({len(report.warnings)} warning(s))")
    return report


if __name__ == "__main__":
    sys.exit(1 if asyncio.run(main()).failures else 0)
