"""kindex status — database, embedding space and per-source embedding status."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from kindex.cli._runtime import load_settings, open_db, resolve_db
from kindex.config import KindexConfig
from kindex.db.models import EmbeddingStatus
from kindex.db.repository import ChunkStore
from kindex.db.sources import SourceRepository
from kindex.db.vectors import get_embedding_space

console = Console()

_STATUS_STYLE = {
    EmbeddingStatus.NONE.value: "dim",
    EmbeddingStatus.PENDING.value: "yellow",
    EmbeddingStatus.PROCESSING.value: "cyan",
    EmbeddingStatus.COMPLETED.value: "green",
    EmbeddingStatus.FAILED.value: "red",
}


def status_cmd(
    db: Annotated[Path | None, typer.Option("--db", help="Database path.")] = None,
) -> None:
    """Show stored sources, chunk totals and embedding status."""
    cfg = load_settings()
    db_path = resolve_db(db, cfg)

    if not db_path.exists():
        console.print(
            Panel(
                f"[yellow]No database found at {db_path}.[/]\n  Run:  kindex init",
                title="[bold]Knowledge Base[/]",
                expand=False,
            )
        )
        raise typer.Exit(1)

    conn = open_db(db_path)
    try:
        counts = SourceRepository(conn).status_counts()
        total_chunks = ChunkStore(conn).count_all()
        space = get_embedding_space(conn)
    finally:
        conn.close()

    _show_overview(db_path, cfg, total_chunks, space)
    _show_status_table(counts)


def _show_overview(db_path: Path, cfg: KindexConfig, total_chunks: int, space) -> None:
    size_mb = db_path.stat().st_size / (1024 * 1024)
    lines = [
        f"Database:  {db_path} ({size_mb:.1f} MB)",
        f"Chunks:    [bold]{total_chunks:,}[/]",
    ]
    if space is None:
        lines.append("Embedding: [dim]nothing embedded yet[/]")
    else:
        lines.append(f"Embedding: {space.model} ({space.dimensions} dims)")
        if space.model != cfg.embedding.model or space.dimensions != cfg.embedding.dimensions:
            lines.append(
                f"[red]✗ Config uses {cfg.embedding.model} ({cfg.embedding.dimensions} dims)."
                " Re-embed before searching.[/]"
            )
    console.print(Panel("\n".join(lines), title="[bold]Knowledge Base[/]", expand=False))


def _show_status_table(counts: dict[str, dict[str, int]]) -> None:
    table = Table(title="Embedding status", box=None, padding=(0, 2))
    table.add_column("Source type", style="bold")
    for status in EmbeddingStatus:
        table.add_column(status.value, justify="right", style=_STATUS_STYLE[status.value])
    table.add_column("total", justify="right")

    for source_type, per_status in counts.items():
        row = [str(per_status.get(s.value, 0)) for s in EmbeddingStatus]
        table.add_row(source_type, *row, str(sum(per_status.values())))

    console.print(table)
