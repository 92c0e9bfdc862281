#!/usr/bin/env python
"""Index documents into the RAG vector store from the command line.

Usage:
    python scripts/reindex.py docs/               # Add new chunks from docs/
    python scripts/reindex.py docs/ --rebuild     # Clear the store first
    python scripts/reindex.py --list              # Show indexed paths
    python scripts/reindex.py --query "question"  # Run a query
"""
import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path

import structlog

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from rag_server import config
from rag_server.errors import RAGError
from rag_server.log import configure_logging
from rag_server.manager import RAGManager

logger = structlog.get_logger()


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self):
        self.start_time = None

    def start(self, message: str):
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def finish(self, status: dict):
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()

        print(f"{'=' * 60}")
        print("  Indexing Complete!")
        print(f"{'=' * 60}\n")
        print(f"  Path:             {status['current_path']}")
        print(f"  Chunks total:     {status['total']}")
        print(f"  Chunks embedded:  {status['completed']}")
        print(f"  Chunks skipped:   {status['failed']}")
        print(f"  Time elapsed:     {elapsed_seconds:.1f}s")

        if status["completed"] > 0 and elapsed_seconds > 0:
            rate = status["completed"] / elapsed_seconds
            print(f"  Indexing rate:    {rate:.1f} chunks/sec")

        print(f"\n{'=' * 60}\n")

        if status["failed"] > 0:
            print(f"Warning: {status['failed']} chunk(s) could not be embedded.")
            print("   Check logs for details.\n")


async def run(args: argparse.Namespace) -> int:
    manager = RAGManager.from_config()
    try:
        if args.list:
            paths = await manager.list_document_paths()
            for path in paths:
                print(path)
            stats = manager.vector_store.get_stats()
            print(f"\n{len(paths)} document(s), {stats['vector_count']} chunk(s) indexed.")
            return 0

        if args.query:
            print(await manager.query_documents(args.query, args.k))
            return 0

        if args.rebuild:
            print("\nRebuild mode: will clear the existing index!")
            print("   Press Ctrl+C within 3 seconds to cancel...")
            await asyncio.sleep(3)
            await manager.remove_all_documents()

        progress = ProgressReporter()
        progress.start(f"{'Rebuilding' if args.rebuild else 'Indexing'} {args.path}")
        await manager.index_documents(args.path)
        status = manager.index_status()
        progress.finish(status)

        return 1 if status["failed"] > 0 else 0
    finally:
        await manager.close()


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Index documents for the RAG server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/reindex.py docs/               # Index a directory
  python scripts/reindex.py notes.md --rebuild  # Clear store, index one file
  python scripts/reindex.py --query "faiss"     # Query the index
        """,
    )
    parser.add_argument("path", nargs="?", help="File or directory to index")
    parser.add_argument(
        "--rebuild",
        action="store_true",
        help="Remove all indexed documents before indexing",
    )
    parser.add_argument("--list", action="store_true", help="List indexed document paths")
    parser.add_argument("--query", help="Query the index instead of indexing")
    parser.add_argument("-k", type=int, default=config.QUERY_TOP_K, help="Results per query")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = parser.parse_args()
    if not (args.path or args.list or args.query):
        parser.error("a path is required unless --list or --query is given")

    configure_logging(level="DEBUG" if args.verbose else "WARNING")

    print("\nConfiguration:")
    print(f"   Store directory:  {config.VECTOR_STORE_PATH}")
    print(f"   Embedding API:    {config.BASE_LLM_API}")
    print(f"   Embedding model:  {config.EMBEDDING_MODEL} (dim={config.EMBEDDING_DIMENSION})")
    print(f"   Chunk size:       {config.CHUNK_SIZE} chars")
    print(f"   Chunk overlap:    {config.CHUNK_OVERLAP} chars")

    try:
        exit_code = asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\n\nIndexing cancelled by user.\n")
        exit_code = 1
    except RAGError as e:
        print(f"\nError: {e}\n")
        logger.error("reindex_script_failed", error=str(e), error_type=type(e).__name__)
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
