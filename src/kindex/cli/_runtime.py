"""Shared wiring for CLI commands: config, database and service construction.

Services are built explicitly per command from the loaded config; nothing is
cached in module globals.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import typer
from rich.console import Console

from kindex.cli.errors import err_config, err_no_api_key, err_no_db
from kindex.config import ConfigError, KindexConfig, load_config
from kindex.db.connection import Database
from kindex.db.schema import initialize
from kindex.ingest.chunker import SentenceChunker
from kindex.ingest.embedding_client import EmbeddingClient, EmbeddingConfig, validate_api_key
from kindex.knowledge.trigger import EmbeddingTriggerService

console = Console()


def load_settings() -> KindexConfig:
    """Load config from the working directory, exiting with a message on error."""
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc


def resolve_db(db: Path | None, cfg: KindexConfig) -> Path:
    return db if db is not None else Path(cfg.database.path)


def open_db(db_path: Path, *, must_exist: bool = True) -> sqlite3.Connection:
    """Open (and migrate) the database, exiting if it is required but missing."""
    if must_exist and not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    conn = Database(db_path).connect()
    initialize(conn)
    return conn


def build_embedder(cfg: KindexConfig, *, require_key: bool = True) -> EmbeddingClient:
    """Embedding client for the configured model; checks the API key first."""
    if require_key:
        try:
            validate_api_key(cfg.embedding.model)
        except EnvironmentError as exc:
            provider = cfg.embedding.model.split("/")[0] if "/" in cfg.embedding.model else "openai"
            console.print(err_no_api_key(provider))
            raise typer.Exit(1) from exc
    return EmbeddingClient(
        EmbeddingConfig(
            model=cfg.embedding.model,
            dimensions=cfg.embedding.dimensions,
            batch_size=cfg.embedding.batch_size,
            num_retries=cfg.embedding.num_retries,
        )
    )


def build_chunker(cfg: KindexConfig) -> SentenceChunker:
    return SentenceChunker(cfg.chunking.max_tokens, cfg.chunking.overlap_tokens)


def build_trigger(
    db_path: Path, cfg: KindexConfig, *, mode: str | None = None, require_key: bool = True
) -> EmbeddingTriggerService:
    """Trigger service for *db_path*. Pass require_key=False when nothing will be embedded."""
    return EmbeddingTriggerService(
        Database(db_path),
        build_embedder(cfg, require_key=require_key),
        build_chunker(cfg),
        default_mode=mode or cfg.embedding.mode,
        max_workers=cfg.worker.max_workers,
        max_pending=cfg.worker.max_pending,
    )
