"""Domain models for the kindex database layer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

TRANSCRIPTION = "transcription"
RESOURCE = "resource"


class EmbeddingStatus(str, Enum):
    """Per-source embedding lifecycle: none → pending → processing → completed | failed."""

    NONE = "none"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ChunkRecord:
    """A persisted chunk row with its embedding vector."""

    id: str
    content: str
    embedding: list[float]
    embedding_model: str
    source_type: str
    source_id: str
    chunk_index: int
    token_count: int
    start_pos: int
    end_pos: int
    user_id: str
    project_id: str | None = None
    created_at: str | None = None


@dataclass
class Transcription:
    id: str
    user_id: str | None
    transcription: str | None = None
    title: str | None = None
    project_id: str | None = None
    meeting_date: str | None = None
    created_at: str | None = None
    embedding_status: EmbeddingStatus = EmbeddingStatus.NONE
    embedding_error: str | None = None
    embedded_at: str | None = None
    chunk_count: int | None = None


@dataclass
class Resource:
    id: str
    user_id: str | None
    title: str
    content: str | None = None
    raw_content: str | None = None
    url: str | None = None
    project_id: str | None = None
    content_type: str = "web_page"
    author: str | None = None
    published_at: str | None = None
    created_at: str | None = None
    embedding_status: EmbeddingStatus = EmbeddingStatus.NONE
    embedding_error: str | None = None
    embedded_at: str | None = None
    chunk_count: int | None = None


@dataclass
class StatusUpdate:
    """Fields written back to an owning entity by the trigger service.

    ``error`` always overwrites ``embedding_error`` (None clears it).
    ``chunk_count`` and ``embedded_at`` are only written when not None, so a
    failed run leaves the previous values in place.
    """

    status: EmbeddingStatus
    error: str | None = None
    chunk_count: int | None = None
    embedded_at: str | None = None
