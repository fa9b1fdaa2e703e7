"""Tests for the kindex exception hierarchy."""

from __future__ import annotations

from kindex.errors import (
    EmbeddingAlignmentError,
    EmbeddingSpaceError,
    KindexError,
    OwnerMissingError,
    PersistenceError,
    ProviderError,
    SourceNotFoundError,
    TriggerRejectedError,
)


def test_all_errors_share_base():
    for cls in (
        OwnerMissingError,
        ProviderError,
        EmbeddingAlignmentError,
        PersistenceError,
        SourceNotFoundError,
        EmbeddingSpaceError,
        TriggerRejectedError,
    ):
        assert issubclass(cls, KindexError)


def test_alignment_error_is_a_provider_error():
    err = EmbeddingAlignmentError(expected=5, received=4, batch_start=20)
    assert isinstance(err, ProviderError)
    assert (err.expected, err.received, err.batch_start) == (5, 4, 20)
    assert "4 vectors for 5 inputs" in str(err)


def test_source_not_found_message():
    err = SourceNotFoundError("transcription", "t-1")
    assert str(err) == "Transcription not found: t-1"
    assert err.source_type == "transcription"


def test_owner_missing_names_source():
    err = OwnerMissingError("resource", "r-9")
    assert "resource r-9" in str(err)
