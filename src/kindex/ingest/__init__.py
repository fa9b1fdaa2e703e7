"""kindex ingest pipeline — chunker, embedding client, source adapters."""

from kindex.ingest.adapters import EmbeddingSource, ResourceSource, TranscriptionSource, adapt
from kindex.ingest.chunker import SentenceChunker, TextChunk, chunk_text, estimate_tokens
from kindex.ingest.embedding_client import EmbeddingClient, EmbeddingConfig

__all__ = [
    "EmbeddingClient",
    "EmbeddingConfig",
    "EmbeddingSource",
    "ResourceSource",
    "SentenceChunker",
    "TextChunk",
    "TranscriptionSource",
    "adapt",
    "chunk_text",
    "estimate_tokens",
]
