"""Tests for SourceRepository."""

from __future__ import annotations

import pytest

from kindex.db.models import EmbeddingStatus, Resource, StatusUpdate, Transcription
from kindex.db.sources import SourceRepository, known_source_types, table_for


@pytest.fixture
def repo(tmp_db):
    return SourceRepository(tmp_db)


def test_table_for_known_and_unknown():
    assert table_for("transcription") == "transcriptions"
    assert table_for("resource") == "resources"
    with pytest.raises(ValueError, match="Unknown source type 'email'"):
        table_for("email")
    assert known_source_types() == ["resource", "transcription"]


def test_transcription_round_trip(repo):
    repo.add_transcription(
        Transcription(
            id="t1",
            user_id="u1",
            transcription="We agreed on the plan.",
            title="Standup",
            project_id="p1",
            meeting_date="2026-03-02",
        )
    )
    t = repo.get_transcription("t1")
    assert t.title == "Standup"
    assert t.transcription == "We agreed on the plan."
    assert t.embedding_status is EmbeddingStatus.NONE
    assert t.chunk_count is None


def test_resource_round_trip_and_content_update(repo):
    repo.add_resource(Resource(id="r1", user_id="u1", title="Page", raw_content="<p>hi</p>"))
    r = repo.get_resource("r1")
    assert r.content is None
    assert r.raw_content == "<p>hi</p>"
    assert r.content_type == "web_page"

    repo.update_resource_content("r1", "hi", "<p>hi</p>")
    assert repo.get_resource("r1").content == "hi"


def test_get_missing_returns_none(repo):
    assert repo.get("transcription", "nope") is None
    assert repo.get("resource", "nope") is None
    with pytest.raises(ValueError):
        repo.get("email", "x")


def test_update_status_writes_only_given_fields(repo):
    repo.add_resource(Resource(id="r1", user_id="u1", title="Page", content="text"))
    repo.update_embedding_status(
        "resource",
        "r1",
        StatusUpdate(status=EmbeddingStatus.COMPLETED, chunk_count=3, embedded_at="2026-01-01 00:00:00"),
    )
    repo.update_embedding_status(
        "resource", "r1", StatusUpdate(status=EmbeddingStatus.FAILED, error="provider down")
    )

    status = repo.get_embedding_status("resource", "r1")
    assert status.status is EmbeddingStatus.FAILED
    assert status.error == "provider down"
    # A failure keeps the previous count and timestamp.
    assert status.chunk_count == 3
    assert status.embedded_at == "2026-01-01 00:00:00"


def test_update_status_clears_error(repo):
    repo.add_transcription(Transcription(id="t1", user_id="u1", transcription="x"))
    repo.update_embedding_status(
        "transcription", "t1", StatusUpdate(status=EmbeddingStatus.FAILED, error="boom")
    )
    repo.update_embedding_status(
        "transcription", "t1", StatusUpdate(status=EmbeddingStatus.COMPLETED, chunk_count=1)
    )
    assert repo.get_embedding_status("transcription", "t1").error is None


def test_update_status_missing_entity(repo):
    assert repo.update_embedding_status(
        "resource", "ghost", StatusUpdate(status=EmbeddingStatus.PENDING)
    ) is False
    assert repo.get_embedding_status("resource", "ghost") is None


def test_list_ids_and_status_counts(repo):
    repo.add_resource(Resource(id="r1", user_id="u1", title="a"))
    repo.add_resource(Resource(id="r2", user_id="u1", title="b"))
    repo.add_transcription(Transcription(id="t1", user_id="u1"))
    repo.update_embedding_status("resource", "r2", StatusUpdate(status=EmbeddingStatus.FAILED, error="x"))

    assert sorted(repo.list_ids("resource")) == ["r1", "r2"]
    assert repo.list_ids("resource", EmbeddingStatus.FAILED) == ["r2"]

    counts = repo.status_counts()
    assert counts["resource"]["none"] == 1
    assert counts["resource"]["failed"] == 1
    assert counts["transcription"]["none"] == 1
    assert counts["transcription"]["completed"] == 0


def test_describe(repo):
    repo.add_transcription(Transcription(id="t1", user_id="u1", title="Kickoff", meeting_date="2026-02-01"))
    repo.add_resource(
        Resource(id="r1", user_id="u1", title="Docs", url="https://example.com", published_at="2025-12-24")
    )

    info = repo.describe([("transcription", "t1"), ("resource", "r1"), ("resource", "gone")])
    assert info[("transcription", "t1")].title == "Kickoff"
    assert info[("transcription", "t1")].date == "2026-02-01"
    assert info[("resource", "r1")].url == "https://example.com"
    assert info[("resource", "r1")].content_type == "web_page"
    assert ("resource", "gone") not in info


def test_update_status_unless_current_status(repo):
    repo.add_transcription(Transcription(id="t1", user_id="u1", transcription="x"))
    repo.update_embedding_status("transcription", "t1", StatusUpdate(status=EmbeddingStatus.PROCESSING))

    written = repo.update_embedding_status(
        "transcription",
        "t1",
        StatusUpdate(status=EmbeddingStatus.PENDING),
        unless_status=EmbeddingStatus.PROCESSING,
    )

    assert written is False
    assert repo.get_embedding_status("transcription", "t1").status is EmbeddingStatus.PROCESSING


def test_reset_status_one_and_all(repo, tmp_db):
    for rid in ("r1", "r2"):
        repo.add_resource(Resource(id=rid, user_id="u1", title=rid))
        repo.update_embedding_status(
            "resource",
            rid,
            StatusUpdate(status=EmbeddingStatus.COMPLETED, chunk_count=4, embedded_at="2026-01-01 00:00:00"),
        )

    assert repo.reset_embedding_status("resource", "r1") == 1
    tmp_db.commit()
    status = repo.get_embedding_status("resource", "r1")
    assert status.status is EmbeddingStatus.NONE
    assert status.chunk_count == 0
    assert status.embedded_at is None
    assert repo.get_embedding_status("resource", "r2").status is EmbeddingStatus.COMPLETED

    assert repo.reset_embedding_status("resource") == 2
    tmp_db.commit()
    assert repo.list_ids("resource", EmbeddingStatus.NONE) == ["r1", "r2"]
