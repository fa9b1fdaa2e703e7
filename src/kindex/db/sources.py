"""Source repository: the transcription and resource entities kindex embeds.

These rows belong to the surrounding application. kindex reads their content
and writes only the ``embedding_status``, ``embedding_error``, ``embedded_at``
and ``chunk_count`` columns (through ``update_embedding_status`` and
``reset_embedding_status``, called only by EmbeddingTriggerService).
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass

from kindex.db.models import (
    RESOURCE,
    TRANSCRIPTION,
    EmbeddingStatus,
    Resource,
    StatusUpdate,
    Transcription,
)

_TABLES: dict[str, str] = {
    TRANSCRIPTION: "transcriptions",
    RESOURCE: "resources",
}


@dataclass
class SourceInfo:
    """Presentation fields joined onto search results."""

    title: str | None = None
    date: str | None = None
    url: str | None = None
    content_type: str | None = None


def known_source_types() -> list[str]:
    return sorted(_TABLES)


def table_for(source_type: str) -> str:
    """Return the table holding *source_type* entities.

    Raises:
        ValueError: For an unknown source type.
    """
    try:
        return _TABLES[source_type]
    except KeyError:
        known = ", ".join(sorted(_TABLES))
        raise ValueError(f"Unknown source type '{source_type}' (expected one of: {known})") from None


class SourceRepository:
    """Data access for source entities and their embedding status columns."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # ------------------------------------------------------------------
    # Transcriptions
    # ------------------------------------------------------------------

    def add_transcription(self, t: Transcription) -> None:
        self._conn.execute(
            """
            INSERT INTO transcriptions (id, user_id, project_id, title, transcription, meeting_date)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (t.id, t.user_id, t.project_id, t.title, t.transcription, t.meeting_date),
        )
        self._conn.commit()

    def get_transcription(self, transcription_id: str) -> Transcription | None:
        row = self._conn.execute(
            "SELECT * FROM transcriptions WHERE id = ?", (transcription_id,)
        ).fetchone()
        return _row_to_transcription(row) if row else None

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    def add_resource(self, r: Resource) -> None:
        self._conn.execute(
            """
            INSERT INTO resources (
                id, user_id, project_id, title, url, content, raw_content,
                content_type, author, published_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                r.id,
                r.user_id,
                r.project_id,
                r.title,
                r.url,
                r.content,
                r.raw_content,
                r.content_type,
                r.author,
                r.published_at,
            ),
        )
        self._conn.commit()

    def get_resource(self, resource_id: str) -> Resource | None:
        row = self._conn.execute("SELECT * FROM resources WHERE id = ?", (resource_id,)).fetchone()
        return _row_to_resource(row) if row else None

    def update_resource_content(
        self, resource_id: str, content: str | None, raw_content: str | None = None
    ) -> None:
        """Replace a resource's text; the caller decides whether to re-embed."""
        self._conn.execute(
            "UPDATE resources SET content = ?, raw_content = ? WHERE id = ?",
            (content, raw_content, resource_id),
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Generic access
    # ------------------------------------------------------------------

    def get(self, source_type: str, source_id: str) -> Transcription | Resource | None:
        """Load one entity by type and id, or None if it does not exist."""
        if source_type == TRANSCRIPTION:
            return self.get_transcription(source_id)
        if source_type == RESOURCE:
            return self.get_resource(source_id)
        table_for(source_type)  # raises ValueError
        return None

    def list_ids(
        self, source_type: str, status: EmbeddingStatus | None = None
    ) -> list[str]:
        """Return ids of *source_type* entities, optionally filtered by status."""
        table = table_for(source_type)
        if status is None:
            rows = self._conn.execute(f"SELECT id FROM {table} ORDER BY created_at, id").fetchall()
        else:
            rows = self._conn.execute(
                f"SELECT id FROM {table} WHERE embedding_status = ? ORDER BY created_at, id",
                (status.value,),
            ).fetchall()
        return [r["id"] for r in rows]

    def source_types(self) -> list[str]:
        return known_source_types()

    # ------------------------------------------------------------------
    # Embedding status (written only by the trigger service)
    # ------------------------------------------------------------------

    def update_embedding_status(
        self,
        source_type: str,
        source_id: str,
        update: StatusUpdate,
        *,
        unless_status: EmbeddingStatus | None = None,
    ) -> bool:
        """Write *update* to the entity.

        With *unless_status*, rows currently in that status are left alone.
        Returns False if no row was written.
        """
        table = table_for(source_type)
        assignments = ["embedding_status = ?", "embedding_error = ?"]
        params: list[object] = [update.status.value, update.error]
        if update.chunk_count is not None:
            assignments.append("chunk_count = ?")
            params.append(update.chunk_count)
        if update.embedded_at is not None:
            assignments.append("embedded_at = ?")
            params.append(update.embedded_at)
        where = "id = ?"
        params.append(source_id)
        if unless_status is not None:
            where += " AND embedding_status != ?"
            params.append(unless_status.value)

        cur = self._conn.execute(
            f"UPDATE {table} SET {', '.join(assignments)} WHERE {where}",  # noqa: S608
            params,
        )
        self._conn.commit()
        return cur.rowcount > 0

    def reset_embedding_status(self, source_type: str, source_id: str | None = None) -> int:
        """Return one entity (or every entity of *source_type*) to ``none``.

        Clears the error, chunk count and embedded_at. Does not commit; run it
        inside ``transaction()`` with the matching chunk delete.
        Returns the number of rows reset.
        """
        table = table_for(source_type)
        sql = (
            f"UPDATE {table} SET embedding_status = ?, embedding_error = NULL, "  # noqa: S608
            "chunk_count = 0, embedded_at = NULL"
        )
        params: list[object] = [EmbeddingStatus.NONE.value]
        if source_id is not None:
            sql += " WHERE id = ?"
            params.append(source_id)
        return self._conn.execute(sql, params).rowcount

    def get_embedding_status(self, source_type: str, source_id: str) -> StatusUpdate | None:
        """Return the entity's current status fields, or None if it does not exist."""
        table = table_for(source_type)
        row = self._conn.execute(
            f"SELECT embedding_status, embedding_error, chunk_count, embedded_at "
            f"FROM {table} WHERE id = ?",
            (source_id,),
        ).fetchone()
        if row is None:
            return None
        return StatusUpdate(
            status=EmbeddingStatus(row["embedding_status"]),
            error=row["embedding_error"],
            chunk_count=row["chunk_count"],
            embedded_at=row["embedded_at"],
        )

    def status_counts(self) -> dict[str, dict[str, int]]:
        """Return {source_type: {status: count}} for every known source type."""
        counts: dict[str, dict[str, int]] = {}
        for source_type, table in sorted(_TABLES.items()):
            per_status = {s.value: 0 for s in EmbeddingStatus}
            for row in self._conn.execute(
                f"SELECT embedding_status, COUNT(*) AS n FROM {table} GROUP BY embedding_status"
            ).fetchall():
                per_status[row["embedding_status"]] = row["n"]
            counts[source_type] = per_status
        return counts

    # ------------------------------------------------------------------
    # Search decoration
    # ------------------------------------------------------------------

    def describe(self, keys: Iterable[tuple[str, str]]) -> dict[tuple[str, str], SourceInfo]:
        """Return title/date/url for each (source_type, source_id) that exists."""
        wanted: dict[str, set[str]] = {}
        for source_type, source_id in keys:
            if source_type in _TABLES:
                wanted.setdefault(source_type, set()).add(source_id)

        info: dict[tuple[str, str], SourceInfo] = {}
        for source_type, ids in wanted.items():
            placeholders = ",".join("?" * len(ids))
            if source_type == TRANSCRIPTION:
                sql = f"SELECT id, title, meeting_date FROM transcriptions WHERE id IN ({placeholders})"
            else:
                sql = (
                    "SELECT id, title, published_at, url, content_type "
                    f"FROM resources WHERE id IN ({placeholders})"
                )
            for row in self._conn.execute(sql, sorted(ids)).fetchall():  # noqa: S608
                if source_type == TRANSCRIPTION:
                    info[(source_type, row["id"])] = SourceInfo(
                        title=row["title"], date=row["meeting_date"]
                    )
                else:
                    info[(source_type, row["id"])] = SourceInfo(
                        title=row["title"],
                        date=row["published_at"],
                        url=row["url"],
                        content_type=row["content_type"],
                    )
        return info


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_transcription(row: sqlite3.Row) -> Transcription:
    return Transcription(
        id=row["id"],
        user_id=row["user_id"],
        project_id=row["project_id"],
        title=row["title"],
        transcription=row["transcription"],
        meeting_date=row["meeting_date"],
        created_at=row["created_at"],
        embedding_status=EmbeddingStatus(row["embedding_status"]),
        embedding_error=row["embedding_error"],
        embedded_at=row["embedded_at"],
        chunk_count=row["chunk_count"],
    )


def _row_to_resource(row: sqlite3.Row) -> Resource:
    return Resource(
        id=row["id"],
        user_id=row["user_id"],
        project_id=row["project_id"],
        title=row["title"],
        url=row["url"],
        content=row["content"],
        raw_content=row["raw_content"],
        content_type=row["content_type"],
        author=row["author"],
        published_at=row["published_at"],
        created_at=row["created_at"],
        embedding_status=EmbeddingStatus(row["embedding_status"]),
        embedding_error=row["embedding_error"],
        embedded_at=row["embedded_at"],
        chunk_count=row["chunk_count"],
    )
