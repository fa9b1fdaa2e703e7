"""Vector serialization and single-embedding-space enforcement.

Vectors are stored as little-endian float32 blobs (the sqlite-vec native
format) so ``vec_distance_cosine()`` can compare them directly in SQL.

The corpus has exactly one embedding space (model + dimensions), recorded in
the ``embedding_space`` table on first write. Mixing spaces is an invariant
violation: changing the model requires deleting every chunk and re-embedding.
"""

from __future__ import annotations

import sqlite3
import struct
from collections.abc import Sequence
from dataclasses import dataclass

import sqlite_vec

from kindex.errors import EmbeddingSpaceError


@dataclass(frozen=True)
class EmbeddingSpace:
    model: str
    dimensions: int


def serialize_vector(vector: Sequence[float]) -> bytes:
    """Pack *vector* as a float32 blob for storage and SQL distance functions."""
    return sqlite_vec.serialize_float32(list(vector))


def deserialize_vector(blob: bytes) -> list[float]:
    """Unpack a float32 blob written by serialize_vector()."""
    return list(struct.unpack(f"<{len(blob) // 4}f", blob))


def get_embedding_space(conn: sqlite3.Connection) -> EmbeddingSpace | None:
    """Return the recorded embedding space, or None if nothing was embedded yet."""
    row = conn.execute("SELECT model, dimensions FROM embedding_space WHERE id = 1").fetchone()
    if row is None:
        return None
    return EmbeddingSpace(model=row["model"], dimensions=row["dimensions"])


def record_embedding_space(conn: sqlite3.Connection, model: str, dimensions: int) -> EmbeddingSpace:
    """Record (*model*, *dimensions*) as the corpus space, or verify it matches.

    Does not commit; call inside ``transaction()`` so concurrent first writers
    cannot both claim the space.

    Raises:
        ValueError: If *dimensions* < 1.
        EmbeddingSpaceError: If a different model or dimension is already recorded.
    """
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    conn.execute(
        "INSERT OR IGNORE INTO embedding_space (id, model, dimensions) VALUES (1, ?, ?)",
        (model, dimensions),
    )
    space = get_embedding_space(conn)
    check_embedding_space(space, model, dimensions)
    return space


def ensure_embedding_space(conn: sqlite3.Connection, model: str, dimensions: int) -> EmbeddingSpace:
    """Committing form of record_embedding_space() for use outside a transaction."""
    try:
        space = record_embedding_space(conn, model, dimensions)
    except Exception:
        conn.rollback()
        raise
    conn.commit()
    return space


def check_embedding_space(space: EmbeddingSpace, model: str, dimensions: int) -> None:
    """Raise EmbeddingSpaceError unless *space* is exactly (*model*, *dimensions*)."""
    if space.model != model or space.dimensions != dimensions:
        raise EmbeddingSpaceError(
            f"Embedding space mismatch: database holds {space.model} "
            f"({space.dimensions} dims), configured {model} ({dimensions} dims). "
            "Re-embed every source after changing the embedding model."
        )


def reset_embedding_space(conn: sqlite3.Connection) -> None:
    """Forget the recorded space. Only valid when no chunks remain.

    Does not commit; call inside ``transaction()`` together with the chunk delete.
    """
    remaining = conn.execute("SELECT COUNT(*) FROM knowledge_chunks").fetchone()[0]
    if remaining:
        raise EmbeddingSpaceError(
            f"Cannot reset embedding space: {remaining} chunks are still stored"
        )
    conn.execute("DELETE FROM embedding_space")
