"""Tests for ChunkStore."""

from __future__ import annotations

import pytest

from kindex.db.connection import Database, transaction
from kindex.db.models import ChunkRecord
from kindex.db.repository import ChunkStore

MODEL = "test/fake-embed"


def _chunk(
    index: int,
    vector: list[float],
    *,
    source_id: str = "r1",
    source_type: str = "resource",
    user_id: str = "u1",
    project_id: str | None = None,
    model: str = MODEL,
) -> ChunkRecord:
    return ChunkRecord(
        id=f"{source_type}-{source_id}-{index}",
        content=f"chunk {index} of {source_id}",
        embedding=vector,
        embedding_model=model,
        source_type=source_type,
        source_id=source_id,
        chunk_index=index,
        token_count=5,
        start_pos=index * 10,
        end_pos=index * 10 + 9,
        user_id=user_id,
        project_id=project_id,
    )


@pytest.fixture
def store(tmp_db):
    return ChunkStore(tmp_db)


# ------------------------------------------------------------------
# Writes
# ------------------------------------------------------------------


def test_add_and_get_chunks_round_trip(store):
    with transaction(store.conn):
        store.add_chunks([_chunk(1, [0.0, 1.0, 0.0]), _chunk(0, [1.0, 0.0, 0.0])])

    chunks = store.get_chunks("resource", "r1")
    assert [c.chunk_index for c in chunks] == [0, 1]
    assert chunks[0].embedding == pytest.approx([1.0, 0.0, 0.0])
    assert chunks[0].user_id == "u1"
    assert chunks[0].created_at is not None


def test_delete_chunks_scoped_to_source(store):
    with transaction(store.conn):
        store.add_chunks([_chunk(0, [1, 0, 0]), _chunk(1, [1, 0, 0])])
        store.add_chunks([_chunk(0, [1, 0, 0], source_id="r2")])

    with transaction(store.conn):
        removed = store.delete_chunks("resource", "r1")

    assert removed == 2
    assert store.count_chunks("resource", "r1") == 0
    assert store.count_chunks("resource", "r2") == 1


def test_delete_all(store):
    with transaction(store.conn):
        store.add_chunks([_chunk(0, [1, 0, 0]), _chunk(0, [1, 0, 0], source_id="r2")])
    with transaction(store.conn):
        assert store.delete_all() == 2
    assert store.count_all() == 0


def test_writes_do_not_commit(store, db_path):
    store.add_chunks([_chunk(0, [1, 0, 0])])
    other = Database(db_path).connect()
    try:
        assert other.execute("SELECT COUNT(*) FROM knowledge_chunks").fetchone()[0] == 0
    finally:
        other.close()
    store.conn.rollback()


def test_count_chunks_unknown_source_is_zero(store):
    assert store.count_chunks("transcription", "nope") == 0


# ------------------------------------------------------------------
# search_vec
# ------------------------------------------------------------------


def test_search_vec_orders_by_distance(store):
    with transaction(store.conn):
        store.add_chunks(
            [
                _chunk(0, [0.0, 1.0, 0.0]),
                _chunk(1, [1.0, 0.0, 0.0]),
                _chunk(2, [0.7, 0.7, 0.0]),
            ]
        )

    hits = store.search_vec([1.0, 0.0, 0.0], user_id="u1", embedding_model=MODEL)
    assert [c.chunk_index for c, _ in hits] == [1, 2, 0]
    assert hits[0][1] == pytest.approx(0.0, abs=1e-6)


def test_search_vec_only_returns_owner_chunks(store):
    with transaction(store.conn):
        store.add_chunks([_chunk(0, [1, 0, 0], user_id="alice")])
        store.add_chunks([_chunk(0, [1, 0, 0], user_id="bob", source_id="r2")])

    hits = store.search_vec([1, 0, 0], user_id="alice", embedding_model=MODEL)
    assert {c.user_id for c, _ in hits} == {"alice"}


def test_search_vec_project_includes_unscoped_chunks(store):
    with transaction(store.conn):
        store.add_chunks([_chunk(0, [1, 0, 0], source_id="a", project_id="p1")])
        store.add_chunks([_chunk(0, [1, 0, 0], source_id="b", project_id="p2")])
        store.add_chunks([_chunk(0, [1, 0, 0], source_id="c", project_id=None)])

    hits = store.search_vec([1, 0, 0], user_id="u1", embedding_model=MODEL, project_id="p1")
    assert sorted(c.source_id for c, _ in hits) == ["a", "c"]

    unscoped = store.search_vec([1, 0, 0], user_id="u1", embedding_model=MODEL)
    assert len(unscoped) == 3


def test_search_vec_filters_source_types(store):
    with transaction(store.conn):
        store.add_chunks([_chunk(0, [1, 0, 0], source_type="resource")])
        store.add_chunks([_chunk(0, [1, 0, 0], source_type="transcription")])

    hits = store.search_vec(
        [1, 0, 0], user_id="u1", embedding_model=MODEL, source_types=["transcription"]
    )
    assert [c.source_type for c, _ in hits] == ["transcription"]


def test_search_vec_respects_limit_and_model(store):
    with transaction(store.conn):
        store.add_chunks([_chunk(i, [1, 0, 0]) for i in range(5)])
        store.add_chunks([_chunk(0, [1, 0, 0], source_id="old", model="other/model")])

    hits = store.search_vec([1, 0, 0], user_id="u1", embedding_model=MODEL, limit=3)
    assert len(hits) == 3
    # Equal distances fall back to chunk order.
    assert [c.chunk_index for c, _ in hits] == [0, 1, 2]
    assert all(c.embedding_model == MODEL for c, _ in hits)


def test_search_vec_treats_filter_values_as_data(store):
    with transaction(store.conn):
        store.add_chunks([_chunk(0, [1, 0, 0])])

    hits = store.search_vec([1, 0, 0], user_id="u1' OR '1'='1", embedding_model=MODEL)
    assert hits == []
