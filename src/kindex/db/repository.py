"""Chunk store: persistence and similarity lookup for knowledge chunks.

Write methods never commit. Callers compose them inside
``kindex.db.connection.transaction()`` so that a delete + insert for one
source is applied atomically or not at all.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Sequence

from kindex.db.models import ChunkRecord
from kindex.db.vectors import deserialize_vector, serialize_vector

_CHUNK_COLUMNS = (
    "id, content, embedding, embedding_model, source_type, source_id, chunk_index, "
    "token_count, start_pos, end_pos, user_id, project_id, created_at"
)


class ChunkStore:
    """Data access layer for the ``knowledge_chunks`` table.

    Wraps an open sqlite3.Connection owned by the caller; the connection must
    be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open, migrated connection (see kindex.db.schema)."""
        self._conn = conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Writes (no commit)
    # ------------------------------------------------------------------

    def delete_chunks(self, source_type: str, source_id: str) -> int:
        """Delete every chunk of one source. Returns the number of rows removed."""
        cur = self._conn.execute(
            "DELETE FROM knowledge_chunks WHERE source_type = ? AND source_id = ?",
            (source_type, source_id),
        )
        return cur.rowcount

    def add_chunks(self, records: Iterable[ChunkRecord]) -> int:
        """Insert *records*. Returns the number of rows inserted."""
        rows = [
            (
                r.id,
                r.content,
                serialize_vector(r.embedding),
                r.embedding_model,
                r.source_type,
                r.source_id,
                r.chunk_index,
                r.token_count,
                r.start_pos,
                r.end_pos,
                r.user_id,
                r.project_id,
            )
            for r in records
        ]
        self._conn.executemany(
            """
            INSERT INTO knowledge_chunks (
                id, content, embedding, embedding_model, source_type, source_id,
                chunk_index, token_count, start_pos, end_pos, user_id, project_id
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            rows,
        )
        return len(rows)

    def delete_all(self) -> int:
        """Delete every chunk in the store. Returns the number of rows removed."""
        return self._conn.execute("DELETE FROM knowledge_chunks").rowcount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def count_chunks(self, source_type: str, source_id: str) -> int:
        """Return the number of persisted chunks for one source (0 if none)."""
        return self._conn.execute(
            "SELECT COUNT(*) FROM knowledge_chunks WHERE source_type = ? AND source_id = ?",
            (source_type, source_id),
        ).fetchone()[0]

    def count_all(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM knowledge_chunks").fetchone()[0]

    def get_chunks(self, source_type: str, source_id: str) -> list[ChunkRecord]:
        """Return one source's chunks ordered by chunk_index."""
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM knowledge_chunks "
            "WHERE source_type = ? AND source_id = ? ORDER BY chunk_index",
            (source_type, source_id),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def search_vec(
        self,
        embedding: Sequence[float],
        *,
        user_id: str,
        embedding_model: str,
        project_id: str | None = None,
        source_types: Sequence[str] | None = None,
        limit: int = 10,
    ) -> list[tuple[ChunkRecord, float]]:
        """Exact cosine search. Returns (chunk, distance) sorted nearest first.

        Always scoped to *user_id*. With *project_id*, chunks of that project
        and chunks with no project match. With *source_types*, only those
        source kinds participate. Ties are broken by source and chunk index so
        ordering is deterministic.
        """
        clauses = ["user_id = ?", "embedding_model = ?"]
        params: list[object] = [serialize_vector(embedding), user_id, embedding_model]

        if project_id is not None:
            clauses.append("(project_id = ? OR project_id IS NULL)")
            params.append(project_id)

        if source_types:
            placeholders = ",".join("?" * len(source_types))
            clauses.append(f"source_type IN ({placeholders})")
            params.extend(source_types)

        params.append(limit)
        rows = self._conn.execute(
            f"""
            SELECT {_CHUNK_COLUMNS}, vec_distance_cosine(embedding, ?) AS distance
            FROM knowledge_chunks
            WHERE {" AND ".join(clauses)}
            ORDER BY distance ASC, source_type, source_id, chunk_index
            LIMIT ?
            """,  # noqa: S608
            params,
        ).fetchall()
        return [(_row_to_chunk(r), r["distance"]) for r in rows]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_chunk(row: sqlite3.Row) -> ChunkRecord:
    return ChunkRecord(
        id=row["id"],
        content=row["content"],
        embedding=deserialize_vector(row["embedding"]),
        embedding_model=row["embedding_model"],
        source_type=row["source_type"],
        source_id=row["source_id"],
        chunk_index=row["chunk_index"],
        token_count=row["token_count"],
        start_pos=row["start_pos"],
        end_pos=row["end_pos"],
        user_id=row["user_id"],
        project_id=row["project_id"],
        created_at=row["created_at"],
    )
