"""kindex init — create the database and default configuration.

Creates (all idempotent):
  - the SQLite database with the current schema
  - ./kindex.yaml with commented defaults (skipped if present)
  - ~/.kindex/config.yaml (skipped with --no-global-config)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from kindex.cli._runtime import load_settings, open_db, resolve_db
from kindex.config import ensure_global_config
from kindex.db.schema import CURRENT_VERSION

console = Console()

_PROJECT_CONFIG = Path("kindex.yaml")

_PROJECT_TEMPLATE = """\
# kindex project configuration.
# API keys come from environment variables (e.g. OPENAI_API_KEY), never this file.

database:
  path: {db}

embedding:
  model: openai/text-embedding-3-small
  dimensions: 1536
  batch_size: 20
  mode: batch          # batch | sequential

chunking:
  max_tokens: 500
  overlap_tokens: 50

search:
  limit: 10

worker:
  max_workers: 4
  max_pending: 100
"""


def init_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Database path (default: database.path from config)."),
    ] = None,
    global_config: Annotated[
        bool,
        typer.Option(
            "--global-config/--no-global-config",
            help="Also create ~/.kindex/config.yaml if missing.",
        ),
    ] = True,
) -> None:
    """Initialise a kindex database and configuration in the current directory."""
    cfg = load_settings()
    db_path = resolve_db(db, cfg)

    existed = db_path.exists()
    if db_path.parent != Path("."):
        db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = open_db(db_path, must_exist=False)
    conn.close()

    if existed:
        console.print(f"[dim]Database already exists:[/] {db_path} (schema v{CURRENT_VERSION})")
    else:
        console.print(f"[green]✓[/] Created database: {db_path} (schema v{CURRENT_VERSION})")

    if not _PROJECT_CONFIG.exists():
        _PROJECT_CONFIG.write_text(_PROJECT_TEMPLATE.format(db=db_path), encoding="utf-8")
        console.print(f"[green]✓[/] Wrote {_PROJECT_CONFIG}")

    if global_config:
        path = ensure_global_config()
        console.print(f"[dim]Global config:[/] {path}")

    console.print("\nNext:  kindex add resource FILE --user USER_ID")
