"""Tests for the kindex config loader."""

from __future__ import annotations

import os
import stat
import warnings
from pathlib import Path

import pytest
import yaml

from kindex.config import ConfigError, KindexConfig, ensure_global_config, load_config


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_yaml(path: Path, data: dict) -> None:
    path.write_text(yaml.dump(data), encoding="utf-8")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("KINDEX_EMBEDDING_MODEL", raising=False)
    monkeypatch.delenv("KINDEX_DB", raising=False)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def test_load_config_defaults_no_files(tmp_path: Path) -> None:
    missing_global = tmp_path / "nonexistent" / "config.yaml"
    cfg = load_config(project_dir=tmp_path, global_config_path=missing_global)

    assert isinstance(cfg, KindexConfig)
    assert cfg.database.path == ".kindex.db"
    assert cfg.embedding.model == "openai/text-embedding-3-small"
    assert cfg.embedding.dimensions == 1536
    assert cfg.embedding.batch_size == 20
    assert cfg.embedding.mode == "batch"
    assert cfg.chunking.max_tokens == 500
    assert cfg.chunking.overlap_tokens == 50
    assert cfg.search.limit == 10
    assert cfg.worker.max_workers == 4
    assert cfg.worker.max_pending == 100


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def test_project_config_overrides_global(tmp_path: Path) -> None:
    global_cfg = tmp_path / "global.yaml"
    _write_yaml(global_cfg, {"chunking": {"max_tokens": 300, "overlap_tokens": 30}})
    _write_yaml(tmp_path / "kindex.yaml", {"chunking": {"max_tokens": 200}})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.chunking.max_tokens == 200
    # Deep merge keeps the sibling key from the global layer.
    assert cfg.chunking.overlap_tokens == 30


def test_empty_files_give_defaults(tmp_path: Path) -> None:
    global_cfg = tmp_path / "global.yaml"
    global_cfg.write_text("", encoding="utf-8")
    (tmp_path / "kindex.yaml").write_text("", encoding="utf-8")

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.search.limit == 10


def test_env_overrides_files(tmp_path: Path, monkeypatch) -> None:
    _write_yaml(tmp_path / "kindex.yaml", {"embedding": {"model": "cohere/embed-english-v3.0"}})
    monkeypatch.setenv("KINDEX_EMBEDDING_MODEL", "mistral/mistral-embed")
    monkeypatch.setenv("KINDEX_DB", "/tmp/other.db")

    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")
    assert cfg.embedding.model == "mistral/mistral-embed"
    assert cfg.database.path == "/tmp/other.db"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def test_global_config_rejects_api_key(tmp_path: Path) -> None:
    global_cfg = tmp_path / "global.yaml"
    _write_yaml(global_cfg, {"embedding": {"api_key": "sk-secret"}})

    with pytest.raises(ConfigError, match="forbidden key 'embedding.api_key'"):
        load_config(project_dir=tmp_path, global_config_path=global_cfg)


def test_max_tokens_is_not_mistaken_for_a_secret(tmp_path: Path) -> None:
    global_cfg = tmp_path / "global.yaml"
    _write_yaml(global_cfg, {"chunking": {"max_tokens": 400, "overlap_tokens": 40}})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.chunking.max_tokens == 400


def test_unknown_section_warns(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "kindex.yaml", {"retrieval": {"top_k": 5}})

    with warnings.catch_warnings(record=True) as w:
        warnings.simplefilter("always")
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")
    assert any("retrieval" in str(warning.message) for warning in w)


@pytest.mark.parametrize(
    "data, message",
    [
        ({"embedding": {"mode": "parallel"}}, "embedding.mode"),
        ({"embedding": {"batch_size": 0}}, "embedding.batch_size"),
        ({"chunking": {"max_tokens": 100, "overlap_tokens": 100}}, "overlap_tokens"),
        ({"chunking": {"overlap_tokens": -1}}, "overlap_tokens"),
        ({"worker": {"max_pending": 0}}, "worker.max_pending"),
        ({"search": {"limit": "many"}}, "Invalid config value"),
    ],
)
def test_invalid_values_raise(tmp_path: Path, data: dict, message: str) -> None:
    _write_yaml(tmp_path / "kindex.yaml", data)
    with pytest.raises(ConfigError, match=message):
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")


# ---------------------------------------------------------------------------
# ensure_global_config
# ---------------------------------------------------------------------------


def test_ensure_global_config_creates_private_file(tmp_path: Path) -> None:
    target = tmp_path / "home" / ".kindex" / "config.yaml"
    path = ensure_global_config(target)

    assert path == target
    assert target.exists()
    assert stat.S_IMODE(os.stat(target).st_mode) == 0o600
    data = yaml.safe_load(target.read_text(encoding="utf-8"))
    assert data["embedding"]["model"] == "openai/text-embedding-3-small"


def test_ensure_global_config_keeps_existing(tmp_path: Path) -> None:
    target = tmp_path / "config.yaml"
    target.write_text("search:\n  limit: 3\n", encoding="utf-8")

    ensure_global_config(target)
    assert target.read_text(encoding="utf-8") == "search:\n  limit: 3\n"


def test_generated_global_config_loads_cleanly(tmp_path: Path) -> None:
    target = ensure_global_config(tmp_path / "config.yaml")
    cfg = load_config(project_dir=tmp_path, global_config_path=target)
    assert cfg.chunking.max_tokens == 500
