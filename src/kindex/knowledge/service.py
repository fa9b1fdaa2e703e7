"""Knowledge service — chunk, embed, store and search source content.

embed_source() pipeline:
  1. Empty content → success with zero chunks; existing chunks untouched.
  2. No owner → failure result; chunks would be unreachable by search.
  3. Chunk the content.
  4. Embed every chunk (batch or sequential) before touching the database.
  5. One transaction: delete the source's old chunks, insert the new set.

Provider calls never run inside the write transaction, so a slow or failing
provider cannot hold database locks, and any failure before commit leaves the
previous chunk set fully intact.
"""

from __future__ import annotations

import logging
import sqlite3
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from kindex.db.connection import transaction
from kindex.db.models import RESOURCE, TRANSCRIPTION, ChunkRecord
from kindex.db.repository import ChunkStore
from kindex.db.sources import SourceRepository
from kindex.db.vectors import record_embedding_space
from kindex.errors import (
    EmbeddingAlignmentError,
    OwnerMissingError,
    PersistenceError,
    ProviderError,
    SourceNotFoundError,
)
from kindex.ingest.adapters import EmbeddingSource, adapt
from kindex.ingest.chunker import SentenceChunker
from kindex.ingest.embedding_client import BATCH, EmbeddingClient
from kindex.rag.search import SearchEngine, SearchResult, SearchScope

logger = logging.getLogger(__name__)

# Chunk ids are derived from (source, index) so re-embedding identical content
# reproduces identical rows.
_CHUNK_NAMESPACE = uuid.UUID("5b0f3c1e-8a4d-4f57-9c1b-2d6e7a9f0c31")


@dataclass
class EmbedOptions:
    """Per-call options for embed_source().

    Attributes:
        mode: 'batch' or 'sequential'; None uses the service default.
        on_progress: Called with the number of chunks embedded so far.
    """

    mode: str | None = None
    on_progress: Callable[[int], None] | None = None


@dataclass
class EmbedResult:
    success: bool
    chunk_count: int
    error: str | None = None
    processing_time_ms: int = 0


class KnowledgeService:
    """Owns the chunk lifecycle of every source end to end.

    Args:
        chunks: Chunk store bound to an open connection.
        sources: Source repository on the same connection.
        embedder: Embedding client (model fixed for the life of the corpus).
        chunker: Sentence chunker; defaults to 500/50 tokens.
        default_mode: Embedding mode used when EmbedOptions.mode is None.
    """

    def __init__(
        self,
        chunks: ChunkStore,
        sources: SourceRepository,
        embedder: EmbeddingClient,
        chunker: SentenceChunker | None = None,
        default_mode: str = BATCH,
    ) -> None:
        self._chunks = chunks
        self._sources = sources
        self._embedder = embedder
        self._chunker = chunker or SentenceChunker()
        self._default_mode = default_mode
        self._engine = SearchEngine(chunks, sources, embedder)

    @classmethod
    def from_connection(
        cls,
        conn: sqlite3.Connection,
        embedder: EmbeddingClient,
        chunker: SentenceChunker | None = None,
        default_mode: str = BATCH,
    ) -> KnowledgeService:
        """Build a service whose stores share *conn*."""
        return cls(ChunkStore(conn), SourceRepository(conn), embedder, chunker, default_mode)

    # ------------------------------------------------------------------
    # Embedding
    # ------------------------------------------------------------------

    def embed_source(
        self, source: EmbeddingSource, options: EmbedOptions | None = None
    ) -> EmbedResult:
        """Replace the stored chunks of *source* with freshly embedded ones.

        Owner, provider and persistence failures are returned as a failed
        EmbedResult. EmbeddingAlignmentError is raised instead: it signals a
        provider response that cannot be trusted, not a transient failure.
        """
        opts = options or EmbedOptions()
        started = time.perf_counter()
        source_type = source.get_source_type()
        source_id = source.get_source_id()

        content = source.get_content()
        if not content or not content.strip():
            logger.info("%s %s has no content; nothing to embed", source_type, source_id)
            return EmbedResult(success=True, chunk_count=0, processing_time_ms=_elapsed_ms(started))

        try:
            user_id = source.get_user_id()
            if not user_id:
                raise OwnerMissingError(source_type, source_id)

            text_chunks = self._chunker.chunk(content)
            vectors = self._embedder.embed_many(
                [c.text for c in text_chunks],
                mode=opts.mode or self._default_mode,
                on_progress=opts.on_progress,
            )
            if len(vectors) != len(text_chunks):
                raise EmbeddingAlignmentError(expected=len(text_chunks), received=len(vectors))

            project_id = source.get_project_id()
            records = [
                ChunkRecord(
                    id=str(uuid.uuid5(_CHUNK_NAMESPACE, f"{source_type}/{source_id}/{c.index}")),
                    content=c.text,
                    embedding=vector,
                    embedding_model=self._embedder.model,
                    source_type=source_type,
                    source_id=source_id,
                    chunk_index=c.index,
                    token_count=c.token_count,
                    start_pos=c.start_pos,
                    end_pos=c.end_pos,
                    user_id=user_id,
                    project_id=project_id,
                )
                for c, vector in zip(text_chunks, vectors)
            ]
            deleted = self._replace(source_type, source_id, records)

        except EmbeddingAlignmentError:
            logger.error("Embedding misaligned for %s %s; stored chunks left unchanged", source_type, source_id)
            raise
        except (OwnerMissingError, ProviderError, PersistenceError) as exc:
            logger.warning("Embedding %s %s failed: %s", source_type, source_id, exc)
            return EmbedResult(
                success=False,
                chunk_count=0,
                error=str(exc),
                processing_time_ms=_elapsed_ms(started),
            )

        elapsed = _elapsed_ms(started)
        logger.info(
            "Embedded %s %s: %d chunks (replaced %d) in %d ms",
            source_type,
            source_id,
            len(records),
            deleted,
            elapsed,
        )
        return EmbedResult(success=True, chunk_count=len(records), processing_time_ms=elapsed)

    def _replace(self, source_type: str, source_id: str, records: list[ChunkRecord]) -> int:
        """Atomically swap a source's chunks for *records*. Returns rows deleted."""
        conn = self._chunks.conn
        try:
            with transaction(conn):
                record_embedding_space(conn, self._embedder.model, self._embedder.dimensions)
                deleted = self._chunks.delete_chunks(source_type, source_id)
                self._chunks.add_chunks(records)
        except sqlite3.Error as exc:
            raise PersistenceError(
                f"Storing chunks for {source_type} {source_id} failed: {exc}"
            ) from exc
        return deleted

    def embed_transcription(
        self, transcription_id: str, options: EmbedOptions | None = None
    ) -> EmbedResult:
        """Load a transcription by id and embed it.

        Raises:
            SourceNotFoundError: If the transcription does not exist.
        """
        return self._embed_by_id(TRANSCRIPTION, transcription_id, options)

    def embed_resource(self, resource_id: str, options: EmbedOptions | None = None) -> EmbedResult:
        """Load a resource by id and embed its content (or raw content).

        Raises:
            SourceNotFoundError: If the resource does not exist.
        """
        return self._embed_by_id(RESOURCE, resource_id, options)

    def _embed_by_id(
        self, source_type: str, source_id: str, options: EmbedOptions | None
    ) -> EmbedResult:
        entity = self._sources.get(source_type, source_id)
        if entity is None:
            raise SourceNotFoundError(source_type, source_id)
        return self.embed_source(adapt(source_type, entity), options)

    # ------------------------------------------------------------------
    # Chunk bookkeeping
    # ------------------------------------------------------------------

    def delete_chunks(self, source_type: str, source_id: str) -> int:
        """Delete all chunks of one source. Returns the number removed."""
        with transaction(self._chunks.conn):
            return self._chunks.delete_chunks(source_type, source_id)

    def count_chunks(self, source_type: str, source_id: str) -> int:
        return self._chunks.count_chunks(source_type, source_id)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(self, query: str, scope: SearchScope) -> list[SearchResult]:
        """Semantic search within *scope* (see kindex.rag.search)."""
        return self._engine.search(query, scope)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
