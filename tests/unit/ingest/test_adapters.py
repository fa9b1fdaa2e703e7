"""Tests for source adapters."""

from __future__ import annotations

import pytest

from kindex.db.models import Resource, Transcription
from kindex.ingest.adapters import (
    EmbeddingSource,
    ResourceSource,
    TranscriptionSource,
    adapt,
)


def test_transcription_adapter():
    source = TranscriptionSource(
        Transcription(
            id="t1",
            user_id="u1",
            transcription="Notes.",
            title="Sync",
            project_id="p1",
            meeting_date="2026-01-05",
        )
    )
    assert isinstance(source, EmbeddingSource)
    assert source.get_content() == "Notes."
    assert source.get_source_type() == "transcription"
    assert source.get_source_id() == "t1"
    assert source.get_user_id() == "u1"
    assert source.get_project_id() == "p1"
    assert source.get_metadata() == {"title": "Sync", "meeting_date": "2026-01-05"}


def test_resource_prefers_content():
    source = ResourceSource(
        Resource(id="r1", user_id="u1", title="Page", content="clean", raw_content="<b>raw</b>")
    )
    assert source.get_content() == "clean"
    assert source.get_source_type() == "resource"


def test_resource_falls_back_to_raw_content():
    source = ResourceSource(Resource(id="r1", user_id="u1", title="Page", raw_content="raw text"))
    assert source.get_content() == "raw text"


def test_resource_without_any_content():
    assert ResourceSource(Resource(id="r1", user_id="u1", title="Page")).get_content() is None


def test_resource_metadata():
    meta = ResourceSource(
        Resource(id="r1", user_id="u1", title="Page", url="https://example.com", author="Ann")
    ).get_metadata()
    assert meta["url"] == "https://example.com"
    assert meta["author"] == "Ann"
    assert meta["content_type"] == "web_page"


def test_adapt_dispatches_by_type():
    t = Transcription(id="t1", user_id="u1")
    r = Resource(id="r1", user_id="u1", title="x")
    assert isinstance(adapt("transcription", t), TranscriptionSource)
    assert isinstance(adapt("resource", r), ResourceSource)
    with pytest.raises(ValueError, match="No adapter"):
        adapt("email", t)
