"""SQLite vector store for file summaries and embeddings."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

import numpy as np

from semsearch.errors import StorageError
from semsearch.models import Candidate, FileMetadata, FileRecord
from semsearch.utils.files import guess_mimetype
from semsearch.utils.vectors import from_float32_blob, to_float32_blob

LOGGER = logging.getLogger(__name__)


class SQLiteVectorStore:
    """Persistence layer for file records and their embeddings.

    Metadata and summaries live in ``files``. Embeddings live in ``vectors``,
    a table bound to one dimensionality which is recorded in ``store_meta``
    when the first embedding is written. Retrieval is a brute-force scan over
    the unit-length vectors.
    """

    def __init__(self, db_path: Path, *, rebuild_on_dimension_change: bool = True) -> None:
        self.db_path = Path(db_path)
        self.rebuild_on_dimension_change = rebuild_on_dimension_change
        try:
            # Transactions are explicit so schema changes roll back with the data.
            self._conn = sqlite3.connect(self.db_path, isolation_level=None)
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open database {self.db_path}: {exc}") from exc
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._conn.execute("PRAGMA foreign_keys=ON;")
        self._ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            self._conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc
        try:
            yield self._conn
            self._conn.execute("COMMIT")
        except sqlite3.Error as exc:
            self._rollback()
            raise StorageError(str(exc)) from exc
        except Exception:
            self._rollback()
            raise

    def _rollback(self) -> None:
        if self._conn.in_transaction:
            self._conn.execute("ROLLBACK")

    def _execute(self, sql: str, params: Sequence[object] = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, params)
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS files (
                    id TEXT PRIMARY KEY,
                    path TEXT NOT NULL UNIQUE,
                    filename TEXT NOT NULL,
                    mimetype TEXT,
                    size INTEGER,
                    created_at TEXT,
                    modified_at TEXT,
                    summary TEXT NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_files_filename ON files(filename)")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS store_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

    # -- vector index -----------------------------------------------------

    @property
    def dimension(self) -> Optional[int]:
        """Dimensionality of the vector index, or None before the first embedding."""
        row = self._execute(
            "SELECT value FROM store_meta WHERE key = 'dimension'"
        ).fetchone()
        return int(row["value"]) if row else None

    def has_vector_index(self) -> bool:
        row = self._execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='vectors'"
        ).fetchone()
        return row is not None and self.dimension is not None

    def _create_vector_index(self, conn: sqlite3.Connection, dimension: int) -> None:
        conn.execute("DROP TABLE IF EXISTS vectors")
        conn.execute(
            """
            CREATE TABLE vectors (
                id TEXT PRIMARY KEY,
                embedding BLOB NOT NULL,
                FOREIGN KEY(id) REFERENCES files(id) ON DELETE CASCADE
            )
            """
        )
        conn.execute(
            "INSERT OR REPLACE INTO store_meta(key, value) VALUES ('dimension', ?)",
            (str(dimension),),
        )

    def _ensure_vector_index(self, conn: sqlite3.Connection, dimension: int) -> Optional[int]:
        """Bind the vector index to ``dimension``.

        Returns the number of vectors discarded by a rebuild, or None when no
        existing index was replaced.
        """
        current = self.dimension
        discarded: Optional[int] = None
        if current is not None and self.has_vector_index():
            if current == dimension:
                return None
            if not self.rebuild_on_dimension_change:
                raise StorageError(
                    f"Embedding dimension {dimension} does not match vector index "
                    f"dimension {current}"
                )
            discarded = self.vector_count()
        self._create_vector_index(conn, dimension)
        return discarded

    @staticmethod
    def _validate_embedding(embedding: Optional[Sequence[float]]) -> np.ndarray:
        if embedding is None:
            raise StorageError("Invalid embedding data: must be a non-empty vector")
        try:
            vector = np.asarray(embedding, dtype="float32")
        except (TypeError, ValueError) as exc:
            raise StorageError(f"Embedding contains invalid values: {exc}") from exc
        if vector.ndim != 1 or vector.size == 0:
            raise StorageError("Invalid embedding data: must be a non-empty vector")
        if not np.all(np.isfinite(vector)):
            raise StorageError("Embedding contains non-finite values")
        return vector

    # -- records ----------------------------------------------------------

    def upsert(self, record: FileRecord) -> None:
        """Insert or replace a record and its embedding by id."""
        vector = self._validate_embedding(record.embedding)
        metadata = record.metadata

        dimension = int(vector.shape[0])
        previous = self.dimension

        with self.transaction() as conn:
            discarded = self._ensure_vector_index(conn, dimension)
            conn.execute(
                """
                INSERT INTO files(id, path, filename, mimetype, size, created_at, modified_at, summary)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    path=excluded.path,
                    filename=excluded.filename,
                    mimetype=excluded.mimetype,
                    size=excluded.size,
                    created_at=excluded.created_at,
                    modified_at=excluded.modified_at,
                    summary=excluded.summary
                """,
                (
                    record.id,
                    metadata.path,
                    metadata.filename,
                    metadata.mimetype or guess_mimetype(metadata.filename),
                    metadata.size,
                    metadata.created_at,
                    metadata.modified_at,
                    record.summary,
                ),
            )
            conn.execute(
                "INSERT OR REPLACE INTO vectors(id, embedding) VALUES (?, ?)",
                (record.id, sqlite3.Binary(to_float32_blob(vector))),
            )

        if discarded is not None:
            LOGGER.warning(
                "Embedding dimension changed from %s to %d; rebuilt vector index "
                "and discarded %d stored vectors",
                previous,
                dimension,
                discarded,
            )

    def get_by_id(self, record_id: str) -> Optional[FileRecord]:
        row = self._execute("SELECT * FROM files WHERE id = ?", (record_id,)).fetchone()
        return self._row_to_record(row) if row else None

    def get_by_path(self, path: str) -> Optional[FileRecord]:
        row = self._execute("SELECT * FROM files WHERE path = ?", (str(path),)).fetchone()
        return self._row_to_record(row) if row else None

    def get_embedding(self, record_id: str) -> Optional[np.ndarray]:
        if not self.has_vector_index():
            return None
        row = self._execute(
            "SELECT embedding FROM vectors WHERE id = ?", (record_id,)
        ).fetchone()
        if row is None:
            return None
        return from_float32_blob(row["embedding"], self.dimension)

    def list_all(self) -> List[FileRecord]:
        rows = self._execute("SELECT * FROM files ORDER BY path").fetchall()
        return [self._row_to_record(row) for row in rows]

    def count(self) -> int:
        return int(self._execute("SELECT COUNT(*) FROM files").fetchone()[0])

    def vector_count(self) -> int:
        if not self.has_vector_index():
            return 0
        return int(self._execute("SELECT COUNT(*) FROM vectors").fetchone()[0])

    def delete(self, record_id: str) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM files WHERE id = ?", (record_id,))
        return cursor.rowcount > 0

    def remove_missing_files(self) -> int:
        """Remove records whose files no longer exist."""
        with self.transaction() as conn:
            rows = conn.execute("SELECT id, path FROM files").fetchall()
            missing = [row for row in rows if not Path(row["path"]).exists()]
            for row in missing:
                conn.execute("DELETE FROM files WHERE id = ?", (row["id"],))
        return len(missing)

    # -- retrieval --------------------------------------------------------

    def retrieve_by_embedding(self, embedding: Sequence[float], limit: int) -> List[Candidate]:
        """Return up to ``limit`` records ordered by descending cosine similarity."""
        if limit <= 0 or not self.has_vector_index():
            return []

        query = np.asarray(embedding, dtype="float32")
        dimension = self.dimension
        if query.shape[0] != dimension:
            raise StorageError(
                f"Query dimension {query.shape[0]} does not match vector index dimension {dimension}"
            )

        rows = self._execute(
            """
            SELECT f.*, v.embedding AS embedding
            FROM vectors v
            JOIN files f ON f.id = v.id
            """
        ).fetchall()

        if not rows:
            return []

        embeddings = np.vstack([from_float32_blob(row["embedding"], dimension) for row in rows])
        scores = embeddings @ query

        if limit < len(scores):
            top_indices = np.argpartition(scores, -limit)[-limit:]
            top_indices = top_indices[np.argsort(scores[top_indices])[::-1]]
        else:
            top_indices = np.argsort(scores)[::-1]

        return [
            Candidate(record=self._row_to_record(rows[idx]), similarity=float(scores[idx]))
            for idx in top_indices
        ]

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> FileRecord:
        metadata = FileMetadata(
            id=row["id"],
            path=row["path"],
            filename=row["filename"],
            mimetype=row["mimetype"],
            size=row["size"],
            created_at=row["created_at"],
            modified_at=row["modified_at"],
        )
        return FileRecord(id=row["id"], metadata=metadata, summary=row["summary"])
