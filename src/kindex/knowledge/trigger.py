"""Embedding trigger service — fire-and-forget embedding with status tracking.

State machine written to the owning entity:

    none → pending → processing → completed | failed

- ``pending`` is written synchronously by trigger_embedding() before the work
  is queued, so pollers can tell "queued" from "never requested". A source
  that is already ``processing`` keeps that status until the queued task runs.
- ``processing`` is written when a worker picks the task up.
- reset() / reset_all() remove chunks and return sources to ``none``.
- A source without content ends ``completed`` with ``chunk_count = 0``.
- A failure ends ``failed`` with the error message; ``chunk_count`` keeps its
  previous value.

Work runs on a bounded thread pool. Submissions beyond ``max_pending`` are
rejected with TriggerRejectedError instead of queueing without limit. Tasks
for the same (source_type, source_id) are serialized so their delete/insert
transactions never interleave. Queued work is in memory only and is lost if
the process exits; ``kindex reembed --status pending`` re-queues it.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone

from kindex.db.connection import Database, transaction
from kindex.db.models import RESOURCE, TRANSCRIPTION, EmbeddingStatus, StatusUpdate
from kindex.db.repository import ChunkStore
from kindex.db.sources import SourceRepository, known_source_types, table_for
from kindex.db.vectors import reset_embedding_space
from kindex.errors import SourceNotFoundError, TriggerRejectedError
from kindex.ingest.adapters import adapt
from kindex.ingest.chunker import SentenceChunker
from kindex.ingest.embedding_client import BATCH, EmbeddingClient
from kindex.knowledge.service import EmbedOptions, EmbedResult, KnowledgeService

logger = logging.getLogger(__name__)


@dataclass
class _SourceLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class EmbeddingTriggerService:
    """Run embed_source() in the background and record the outcome on the entity.

    Args:
        db: Database to open per-task connections on.
        embedder: Shared, thread-safe embedding client.
        chunker: Chunker used for every task.
        default_mode: Embedding mode passed to KnowledgeService.
        max_workers: Threads embedding concurrently.
        max_pending: Queued + running tasks accepted before rejecting.
    """

    def __init__(
        self,
        db: Database,
        embedder: EmbeddingClient,
        chunker: SentenceChunker | None = None,
        *,
        default_mode: str = BATCH,
        max_workers: int = 4,
        max_pending: int = 100,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        if max_pending < 1:
            raise ValueError("max_pending must be >= 1")
        self._db = db
        self._embedder = embedder
        self._chunker = chunker or SentenceChunker()
        self._default_mode = default_mode
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="kindex-embed")
        self._slots = threading.BoundedSemaphore(max_pending)
        self._locks: dict[tuple[str, str], _SourceLock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def trigger_embedding(self, source_type: str, source_id: str) -> Future[EmbedResult | None]:
        """Queue embedding of one source and return immediately.

        The returned future resolves to the EmbedResult, or None when the task
        failed before embedding (for example the source was not found). It
        never raises: background errors are logged and recorded as ``failed``.

        Raises:
            ValueError: Unknown source type.
            TriggerRejectedError: ``max_pending`` tasks are already queued.
        """
        table_for(source_type)  # raises ValueError
        if not self._slots.acquire(blocking=False):
            raise TriggerRejectedError(
                f"Embedding queue is full; rejected {source_type} {source_id}"
            )

        # A source already being embedded stays ``processing``; the queued task
        # moves it on when its turn comes.
        self._write_status(
            source_type,
            source_id,
            StatusUpdate(status=EmbeddingStatus.PENDING),
            unless_status=EmbeddingStatus.PROCESSING,
        )
        try:
            future = self._executor.submit(self._run, source_type, source_id)
        except RuntimeError:
            self._slots.release()
            raise
        return future

    def trigger_transcription(self, transcription_id: str) -> Future[EmbedResult | None]:
        return self.trigger_embedding(TRANSCRIPTION, transcription_id)

    def trigger_resource(self, resource_id: str) -> Future[EmbedResult | None]:
        return self.trigger_embedding(RESOURCE, resource_id)

    def reset(self, source_type: str, source_id: str) -> int:
        """Delete one source's chunks and return it to ``none`` in one transaction.

        Waits for any in-flight embedding of the same source. Returns the
        number of chunks removed.

        Raises:
            ValueError: Unknown source type.
        """
        table_for(source_type)  # raises ValueError
        with self._source_lock(source_type, source_id):
            conn = self._db.connect()
            try:
                with transaction(conn):
                    removed = ChunkStore(conn).delete_chunks(source_type, source_id)
                    SourceRepository(conn).reset_embedding_status(source_type, source_id)
            finally:
                conn.close()
        logger.info("Reset %s %s: removed %d chunks", source_type, source_id, removed)
        return removed

    def reset_all(self) -> int:
        """Delete every chunk, forget the embedding space and return every source to ``none``.

        Runs as one transaction. Returns the number of chunks removed.
        """
        conn = self._db.connect()
        try:
            with transaction(conn):
                removed = ChunkStore(conn).delete_all()
                reset_embedding_space(conn)
                sources = SourceRepository(conn)
                for source_type in known_source_types():
                    sources.reset_embedding_status(source_type)
        finally:
            conn.close()
        logger.info("Reset all sources: removed %d chunks", removed)
        return removed

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work; with *wait*, block until queued tasks finish."""
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> EmbeddingTriggerService:
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Background task
    # ------------------------------------------------------------------

    def _run(self, source_type: str, source_id: str) -> EmbedResult | None:
        """Worker entry point. Never raises; frees the queue slot before returning."""
        try:
            with self._source_lock(source_type, source_id):
                return self.process(source_type, source_id)
        except Exception:
            logger.exception("Background embedding of %s %s failed", source_type, source_id)
            return None
        finally:
            self._slots.release()

    def process(
        self,
        source_type: str,
        source_id: str,
        on_progress: Callable[[int], None] | None = None,
    ) -> EmbedResult:
        """Embed one source in the calling thread and write its status.

        Any exception leaves the entity ``failed`` before it is re-raised.

        Raises:
            SourceNotFoundError: If the entity does not exist.
            EmbeddingAlignmentError: Propagated from embed_source().
            EmbeddingSpaceError: Configured model differs from the stored corpus.
        """
        try:
            return self._process(source_type, source_id, on_progress)
        except Exception as exc:
            self._write_status(
                source_type,
                source_id,
                StatusUpdate(status=EmbeddingStatus.FAILED, error=str(exc) or type(exc).__name__),
            )
            raise

    def _process(
        self,
        source_type: str,
        source_id: str,
        on_progress: Callable[[int], None] | None,
    ) -> EmbedResult:
        self._write_status(source_type, source_id, StatusUpdate(status=EmbeddingStatus.PROCESSING))

        conn = self._db.connect()
        try:
            entity = SourceRepository(conn).get(source_type, source_id)
            if entity is None:
                raise SourceNotFoundError(source_type, source_id)

            source = adapt(source_type, entity)
            content = source.get_content()
            if not content or not content.strip():
                logger.info("%s %s has no content; marking completed", source_type, source_id)
                self._write_status(
                    source_type,
                    source_id,
                    StatusUpdate(status=EmbeddingStatus.COMPLETED, chunk_count=0, embedded_at=_now()),
                )
                return EmbedResult(success=True, chunk_count=0)

            service = KnowledgeService.from_connection(
                conn, self._embedder, self._chunker, self._default_mode
            )
            result = service.embed_source(source, EmbedOptions(on_progress=on_progress))
        finally:
            conn.close()

        if result.success:
            self._write_status(
                source_type,
                source_id,
                StatusUpdate(
                    status=EmbeddingStatus.COMPLETED,
                    chunk_count=result.chunk_count,
                    embedded_at=_now(),
                ),
            )
        else:
            self._write_status(
                source_type,
                source_id,
                StatusUpdate(status=EmbeddingStatus.FAILED, error=result.error or "unknown error"),
            )
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _write_status(
        self,
        source_type: str,
        source_id: str,
        update: StatusUpdate,
        *,
        unless_status: EmbeddingStatus | None = None,
    ) -> None:
        """Persist *update*; failures are logged and swallowed so the pipeline continues."""
        try:
            conn = self._db.connect()
            try:
                written = SourceRepository(conn).update_embedding_status(
                    source_type, source_id, update, unless_status=unless_status
                )
            finally:
                conn.close()
        except Exception:
            logger.exception(
                "Could not write status %s for %s %s", update.status.value, source_type, source_id
            )
            return
        if written:
            return
        if unless_status is not None:
            logger.debug(
                "Status %s not written for %s %s (missing or %s)",
                update.status.value,
                source_type,
                source_id,
                unless_status.value,
            )
        else:
            logger.warning("Status %s not written: %s %s does not exist", update.status.value, source_type, source_id)

    @contextmanager
    def _source_lock(self, source_type: str, source_id: str) -> Iterator[None]:
        """Hold the per-source lock; the entry is dropped once nobody holds or waits on it."""
        key = (source_type, source_id)
        with self._locks_guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _SourceLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[key]


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
