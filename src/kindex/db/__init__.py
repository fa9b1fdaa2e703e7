"""kindex database layer."""

from kindex.db.connection import Database, transaction
from kindex.db.migrations import MIGRATIONS, run_migrations
from kindex.db.repository import ChunkStore
from kindex.db.schema import initialize
from kindex.db.sources import SourceRepository
from kindex.db.vectors import (
    ensure_embedding_space,
    get_embedding_space,
    record_embedding_space,
    reset_embedding_space,
)

__all__ = [
    "ChunkStore",
    "Database",
    "SourceRepository",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "ensure_embedding_space",
    "get_embedding_space",
    "record_embedding_space",
    "reset_embedding_space",
    "transaction",
]
