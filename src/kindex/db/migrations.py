"""Forward-only migration runner for the kindex database schema.

The transcriptions and resources tables mirror the entities owned by the
surrounding application; kindex only reads them and writes their
embedding_* status columns.
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS transcriptions (
    id               TEXT PRIMARY KEY,
    user_id          TEXT,
    project_id       TEXT,
    title            TEXT,
    transcription    TEXT,
    meeting_date     DATETIME,
    created_at       DATETIME NOT NULL DEFAULT (datetime('now')),
    embedding_status TEXT NOT NULL DEFAULT 'none'
        CHECK (embedding_status IN ('none', 'pending', 'processing', 'completed', 'failed')),
    embedding_error  TEXT,
    embedded_at      DATETIME,
    chunk_count      INTEGER
);

CREATE TABLE IF NOT EXISTS resources (
    id               TEXT PRIMARY KEY,
    user_id          TEXT,
    project_id       TEXT,
    title            TEXT NOT NULL,
    url              TEXT,
    content          TEXT,
    raw_content      TEXT,
    content_type     TEXT NOT NULL DEFAULT 'web_page',
    author           TEXT,
    published_at     DATETIME,
    created_at       DATETIME NOT NULL DEFAULT (datetime('now')),
    embedding_status TEXT NOT NULL DEFAULT 'none'
        CHECK (embedding_status IN ('none', 'pending', 'processing', 'completed', 'failed')),
    embedding_error  TEXT,
    embedded_at      DATETIME,
    chunk_count      INTEGER
);

CREATE TABLE IF NOT EXISTS knowledge_chunks (
    id               TEXT PRIMARY KEY,
    content          TEXT NOT NULL,
    embedding        BLOB NOT NULL,
    embedding_model  TEXT NOT NULL,
    source_type      TEXT NOT NULL,
    source_id        TEXT NOT NULL,
    chunk_index      INTEGER NOT NULL,
    token_count      INTEGER NOT NULL,
    start_pos        INTEGER NOT NULL,
    end_pos          INTEGER NOT NULL,
    user_id          TEXT NOT NULL,
    project_id       TEXT,
    created_at       DATETIME NOT NULL DEFAULT (datetime('now')),
    UNIQUE (source_type, source_id, chunk_index)
);

CREATE INDEX IF NOT EXISTS idx_knowledge_chunks_source
    ON knowledge_chunks (source_type, source_id);
CREATE INDEX IF NOT EXISTS idx_knowledge_chunks_owner
    ON knowledge_chunks (user_id, project_id);

CREATE TABLE IF NOT EXISTS embedding_space (
    id          INTEGER PRIMARY KEY CHECK (id = 1),
    model       TEXT NOT NULL,
    dimensions  INTEGER NOT NULL,
    created_at  DATETIME NOT NULL DEFAULT (datetime('now'))
);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()
