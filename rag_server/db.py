"""SQLite persistence for the vector store.

One table maps each chunk key to its serialized document and its embedding:
- path: chunk key (source path plus chunk index), primary key
- position: index position at save time, used to restore order
- document: JSON document (path, content, chunk_index, metadata)
- embedding: little-endian float32 blob
"""
import sqlite3
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import numpy as np
import structlog

from rag_server import config
from rag_server.errors import PersistenceError

logger = structlog.get_logger()

Row = Tuple[str, str, bytes]


def encode_vector(vector) -> bytes:
    """Serialize a vector as a little-endian float32 blob."""
    return np.asarray(vector, dtype="<f4").tobytes()


def decode_vector(blob: bytes) -> np.ndarray:
    """Deserialize a float32 blob written by ``encode_vector``."""
    return np.frombuffer(blob, dtype="<f4").astype(np.float32)


class DocumentDatabase:
    """Durable path -> (document, embedding) store backed by one SQLite file."""

    def __init__(self, store_dir: Path = None, db_name: str = None):
        """Initialize the database wrapper (the file is opened by ``open``).

        Args:
            store_dir: Directory holding the database file (default from config)
            db_name: Database file name (default from config)
        """
        self.store_dir = Path(store_dir or config.VECTOR_STORE_PATH)
        self.db_path = self.store_dir / (db_name or config.VECTOR_STORE_DB_NAME)
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> None:
        """Create the store directory, open the connection and the schema.

        Raises:
            PersistenceError: If the database cannot be opened or initialized
        """
        if self._conn is not None:
            return

        conn = None
        try:
            self.store_dir.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row
            conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    path TEXT PRIMARY KEY,
                    position INTEGER NOT NULL,
                    document TEXT NOT NULL,
                    embedding BLOB NOT NULL
                )
            """)
            conn.commit()
        except (sqlite3.Error, OSError) as e:
            if conn is not None:
                conn.close()
            logger.error("database_open_failed", db_path=str(self.db_path), error=str(e))
            raise PersistenceError(
                f"Failed to open vector store database at {self.db_path}: {e}"
            ) from e

        self._conn = conn
        logger.info("database_opened", db_path=str(self.db_path))

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug("database_closed", db_path=str(self.db_path))

    def load_rows(self) -> List[Row]:
        """Return every persisted row in saved position order."""
        conn = self._connection()
        try:
            cursor = conn.execute(
                "SELECT path, document, embedding FROM documents ORDER BY position"
            )
            return [(row["path"], row["document"], row["embedding"]) for row in cursor]
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to read persisted documents: {e}") from e

    def replace_all(self, rows: Iterable[Row]) -> int:
        """Replace the stored content with ``rows`` in a single transaction.

        Returns:
            Number of rows written
        """
        conn = self._connection()
        rows = [
            (path, position, document, embedding)
            for position, (path, document, embedding) in enumerate(rows)
        ]
        try:
            with conn:
                conn.execute("DELETE FROM documents")
                conn.executemany(
                    "INSERT INTO documents (path, position, document, embedding) "
                    "VALUES (?, ?, ?, ?)",
                    rows,
                )
        except sqlite3.Error as e:
            logger.error("database_write_failed", error=str(e))
            raise PersistenceError(f"Failed to save documents: {e}") from e

        logger.debug("database_rows_replaced", count=len(rows))
        return len(rows)

    def clear(self) -> None:
        """Delete every persisted row."""
        conn = self._connection()
        try:
            with conn:
                conn.execute("DELETE FROM documents")
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to clear documents: {e}") from e
        logger.info("database_cleared", db_path=str(self.db_path))

    def count(self) -> int:
        row = self._connection().execute("SELECT COUNT(*) FROM documents").fetchone()
        return int(row[0])

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self.open()
        return self._conn
