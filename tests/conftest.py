"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from kindex.db.connection import Database
from kindex.db.schema import initialize

# Vocabulary for the fake embedder: one dimension per word, so tests can
# reason about which chunk is nearest to which query.
_VOCAB = ("apple", "banana", "cherry", "durian")


class FakeEmbedder:
    """Deterministic stand-in for EmbeddingClient.

    Vectors count vocabulary words in the text (plus a small bias so no
    vector is all zeros). Set ``fail`` to raise from every call, or ``drop``
    to return that many fewer vectors than texts.
    """

    def __init__(self, model: str = "test/fake-embed", dimensions: int = len(_VOCAB)) -> None:
        self.model = model
        self.dimensions = dimensions
        self.calls: list[list[str]] = []
        self.modes: list[str] = []
        self.fail: Exception | None = None
        self.drop = 0

    @staticmethod
    def vector(text: str) -> list[float]:
        lower = text.lower()
        return [lower.count(word) + 0.01 for word in _VOCAB]

    def embed_one(self, text: str) -> list[float]:
        return self.embed_many([text])[0]

    def embed_many(self, texts, mode="batch", on_progress=None):
        self.calls.append(list(texts))
        self.modes.append(mode)
        if self.fail is not None:
            raise self.fail
        vectors = [self.vector(t) for t in texts]
        if on_progress is not None:
            on_progress(len(vectors))
        if self.drop:
            return vectors[: len(vectors) - self.drop]
        return vectors


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / ".kindex.db"


@pytest.fixture
def tmp_db(db_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    conn = Database(db_path).connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def cli_env(tmp_path, monkeypatch, embedder):
    """Isolated CLI run: cwd is tmp_path, private global config, fake embedder."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("kindex.config._GLOBAL_CONFIG_PATH", tmp_path / "home" / "config.yaml")
    monkeypatch.delenv("KINDEX_DB", raising=False)
    monkeypatch.delenv("KINDEX_EMBEDDING_MODEL", raising=False)
    monkeypatch.setattr("kindex.cli._runtime.build_embedder", lambda cfg, **kw: embedder)
    monkeypatch.setattr("kindex.cli.search.build_embedder", lambda cfg, **kw: embedder)
    return tmp_path
