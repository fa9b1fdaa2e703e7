"""kindex configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (KINDEX_EMBEDDING_MODEL, KINDEX_DB)
  3. Per-project kindex.yaml  (current working directory)
  4. Global ~/.kindex/config.yaml  (defaults only — no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".kindex"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "kindex.yaml"

# Matches api_key, api-key, api_secret, *_token, token, *_secret, secret,
# password, passwd, credential(s). Does NOT match max_tokens or overlap_tokens.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["database", "embedding", "chunking", "search", "worker"]
)

EMBEDDING_MODES: tuple[str, ...] = ("batch", "sequential")


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class DatabaseCfg:
    """SQLite database location (kindex.yaml: database:)."""

    path: str = ".kindex.db"


@dataclass
class EmbeddingCfg:
    """Embedding provider configuration (kindex.yaml: embedding:).

    Attributes:
        model: LiteLLM embedding model string (provider/model format). Fixed for
            the life of the corpus; changing it requires a full re-embed.
        dimensions: Vector length produced by *model*.
        batch_size: Texts per provider call in batch mode.
        mode: 'batch' (default) or 'sequential' (one call per chunk).
        num_retries: LiteLLM retries on transient provider errors.
    """

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 20
    mode: str = "batch"
    num_retries: int = 3


@dataclass
class ChunkingCfg:
    """Sentence chunker sizes, in estimated tokens (kindex.yaml: chunking:)."""

    max_tokens: int = 500
    overlap_tokens: int = 50


@dataclass
class SearchCfg:
    """Default search options (kindex.yaml: search:)."""

    limit: int = 10


@dataclass
class WorkerCfg:
    """Background embedding pool (kindex.yaml: worker:).

    Attributes:
        max_workers: Threads embedding sources concurrently.
        max_pending: Queued + running triggers accepted before rejecting new ones.
    """

    max_workers: int = 4
    max_pending: int = 100


@dataclass
class KindexConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    database: DatabaseCfg = field(default_factory=DatabaseCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    search: SearchCfg = field(default_factory=SearchCfg)
    worker: WorkerCfg = field(default_factory=WorkerCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: KindexConfig) -> None:
    """Raise ConfigError for values the pipeline cannot run with."""
    if cfg.embedding.mode not in EMBEDDING_MODES:
        raise ConfigError(
            f"embedding.mode must be one of {', '.join(EMBEDDING_MODES)}, "
            f"got '{cfg.embedding.mode}'"
        )
    positives = {
        "embedding.dimensions": cfg.embedding.dimensions,
        "embedding.batch_size": cfg.embedding.batch_size,
        "chunking.max_tokens": cfg.chunking.max_tokens,
        "search.limit": cfg.search.limit,
        "worker.max_workers": cfg.worker.max_workers,
        "worker.max_pending": cfg.worker.max_pending,
    }
    for name, value in positives.items():
        if value < 1:
            raise ConfigError(f"{name} must be >= 1, got {value}")
    if not 0 <= cfg.chunking.overlap_tokens < cfg.chunking.max_tokens:
        raise ConfigError(
            "chunking.overlap_tokens must be >= 0 and smaller than chunking.max_tokens"
        )
    if cfg.embedding.num_retries < 0:
        raise ConfigError("embedding.num_retries must be >= 0")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> KindexConfig:
    """Build a *KindexConfig* from a merged raw YAML dict."""
    cfg = KindexConfig()

    try:
        if "database" in data:
            d = data["database"] or {}
            cfg.database = DatabaseCfg(path=str(d.get("path", cfg.database.path)))

        if "embedding" in data:
            e = data["embedding"] or {}
            cfg.embedding = EmbeddingCfg(
                model=str(e.get("model", cfg.embedding.model)),
                dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
                batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
                mode=str(e.get("mode", cfg.embedding.mode)),
                num_retries=int(e.get("num_retries", cfg.embedding.num_retries)),
            )

        if "chunking" in data:
            c = data["chunking"] or {}
            cfg.chunking = ChunkingCfg(
                max_tokens=int(c.get("max_tokens", cfg.chunking.max_tokens)),
                overlap_tokens=int(c.get("overlap_tokens", cfg.chunking.overlap_tokens)),
            )

        if "search" in data:
            s = data["search"] or {}
            cfg.search = SearchCfg(limit=int(s.get("limit", cfg.search.limit)))

        if "worker" in data:
            w = data["worker"] or {}
            cfg.worker = WorkerCfg(
                max_workers=int(w.get("max_workers", cfg.worker.max_workers)),
                max_pending=int(w.get("max_pending", cfg.worker.max_pending)),
            )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    return cfg


def _apply_env_overrides(cfg: KindexConfig) -> KindexConfig:
    """Apply KINDEX_* environment variable overrides."""
    if model := os.environ.get("KINDEX_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if db_path := os.environ.get("KINDEX_DB"):
        cfg.database.path = db_path
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> KindexConfig:
    """Load and return a merged *KindexConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *kindex.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or if a
            value is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.kindex/config.yaml`` with defaults if it does not exist.

    Creates the parent directory with mode 0o700 and the file with mode 0o600.

    Returns:
        Path to the global config file.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# kindex global configuration: defaults only.\n"
            "# NEVER store API keys here. Use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "embedding:\n"
            "  model: openai/text-embedding-3-small\n"
            "  dimensions: 1536\n"
            "  batch_size: 20\n"
            "\n"
            "chunking:\n"
            "  max_tokens: 500\n"
            "  overlap_tokens: 50\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
