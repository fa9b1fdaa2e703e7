"""Semantic search over stored knowledge chunks.

Ranking:
  similarity = 1 - cosine_distance(query_vector, chunk_vector), best first.

Scope:
  - user_id is mandatory: results never include another user's chunks.
  - project_id keeps chunks of that project plus chunks with no project
    (workspace-global content stays visible across the user's projects).
  - source_types limits which source kinds participate.

Title, date and URL are looked up after ranking and never influence order.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

from kindex.db.models import ChunkRecord
from kindex.db.repository import ChunkStore
from kindex.db.sources import SourceRepository
from kindex.db.vectors import check_embedding_space, get_embedding_space
from kindex.ingest.embedding_client import EmbeddingClient

logger = logging.getLogger(__name__)


@dataclass
class SearchScope:
    """Who is searching and over what.

    Attributes:
        user_id: Owner whose chunks are searched (required).
        project_id: Restrict to this project plus project-less chunks.
        source_types: Restrict to these source kinds (None = all).
        limit: Maximum number of results.
        min_similarity: Drop results below this similarity (None = keep all).
    """

    user_id: str
    project_id: str | None = None
    source_types: Sequence[str] | None = None
    limit: int = 10
    min_similarity: float | None = None


@dataclass
class SearchResult:
    """A ranked chunk with presentation fields from its owning source."""

    chunk: ChunkRecord
    similarity: float
    source_title: str | None = None
    source_date: str | None = None
    url: str | None = None
    content_type: str | None = None

    @property
    def content(self) -> str:
        return self.chunk.content

    @property
    def source_type(self) -> str:
        return self.chunk.source_type

    @property
    def source_id(self) -> str:
        return self.chunk.source_id


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors (0.0 if either is all zeros).

    Raises:
        ValueError: If the vectors differ in length.
    """
    if len(a) != len(b):
        raise ValueError("Embedding vectors must have the same length")
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class SearchEngine:
    """Rank stored chunks against a query within a SearchScope."""

    def __init__(
        self,
        chunks: ChunkStore,
        sources: SourceRepository,
        embedder: EmbeddingClient,
    ) -> None:
        self._chunks = chunks
        self._sources = sources
        self._embedder = embedder

    def search(self, query: str, scope: SearchScope) -> list[SearchResult]:
        """Embed *query* and return the best-matching chunks in *scope*.

        Raises:
            ValueError: If scope.user_id is empty or scope.limit < 1.
            EmbeddingSpaceError: If stored vectors come from a different
                model or dimension than the configured embedder.
            ProviderError: If embedding the query fails.
        """
        _validate_scope(scope)
        if not query.strip():
            return []

        space = get_embedding_space(self._chunks.conn)
        if space is None:
            logger.debug("Search skipped: nothing has been embedded yet")
            return []
        check_embedding_space(space, self._embedder.model, self._embedder.dimensions)

        return self.search_by_vector(self._embedder.embed_one(query), scope)

    def search_by_vector(self, vector: Sequence[float], scope: SearchScope) -> list[SearchResult]:
        """Rank chunks in *scope* against an already-embedded query *vector*."""
        _validate_scope(scope)
        ranked = self._chunks.search_vec(
            vector,
            user_id=scope.user_id,
            embedding_model=self._embedder.model,
            project_id=scope.project_id,
            source_types=scope.source_types,
            limit=scope.limit,
        )

        scored = [(chunk, 1.0 - distance) for chunk, distance in ranked]
        if scope.min_similarity is not None:
            scored = [(c, s) for c, s in scored if s >= scope.min_similarity]

        info = self._sources.describe((c.source_type, c.source_id) for c, _ in scored)
        results: list[SearchResult] = []
        for chunk, similarity in scored:
            meta = info.get((chunk.source_type, chunk.source_id))
            results.append(
                SearchResult(
                    chunk=chunk,
                    similarity=similarity,
                    source_title=meta.title if meta else None,
                    source_date=meta.date if meta else None,
                    url=meta.url if meta else None,
                    content_type=meta.content_type if meta else None,
                )
            )
        logger.debug("Search for user %s returned %d results", scope.user_id, len(results))
        return results


def _validate_scope(scope: SearchScope) -> None:
    if not scope.user_id:
        raise ValueError("search requires a user_id")
    if scope.limit < 1:
        raise ValueError(f"limit must be >= 1, got {scope.limit}")
