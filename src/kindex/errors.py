"""Exception hierarchy for the kindex embedding pipeline.

A source with no content is a no-op (success, zero chunks), not an error.
"""

from __future__ import annotations


class KindexError(Exception):
    """Base class for all kindex errors."""


class OwnerMissingError(KindexError):
    """Raised when a source has no resolvable owner (user_id).

    Chunks without an owner could never be returned by an access-controlled
    search, so they are never written.
    """

    def __init__(self, source_type: str, source_id: str) -> None:
        super().__init__(f"{source_type} {source_id} has no owner (user_id is empty)")
        self.source_type = source_type
        self.source_id = source_id


class ProviderError(KindexError):
    """Raised when the embedding provider call fails."""


class EmbeddingAlignmentError(ProviderError):
    """Raised when a batch returns a different number of vectors than inputs.

    Always raised, never turned into a failure result.
    """

    def __init__(self, expected: int, received: int, batch_start: int = 0) -> None:
        super().__init__(
            f"Embedding batch starting at item {batch_start} returned {received} "
            f"vectors for {expected} inputs"
        )
        self.expected = expected
        self.received = received
        self.batch_start = batch_start


class PersistenceError(KindexError):
    """Raised when the chunk transaction fails; the transaction is rolled back."""


class SourceNotFoundError(KindexError):
    """Raised when the source entity does not exist at embed/trigger time."""

    def __init__(self, source_type: str, source_id: str) -> None:
        super().__init__(f"{source_type.capitalize()} not found: {source_id}")
        self.source_type = source_type
        self.source_id = source_id


class EmbeddingSpaceError(KindexError):
    """Raised when vectors from different models or dimensions would be mixed."""


class TriggerRejectedError(KindexError):
    """Raised when the background worker queue is full."""
