"""kindex remove — delete stored chunks.

Only chunks are removed; the source rows belong to the owning application.
Removing a source's chunks resets its embedding status to ``none``.

Usage:
  kindex remove resource 3f2c...
  kindex remove --all --yes        # wipe the corpus (e.g. before changing model)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from kindex.cli._runtime import build_trigger, load_settings, open_db, resolve_db
from kindex.cli.errors import err_unknown_source_type
from kindex.db.repository import ChunkStore
from kindex.db.sources import known_source_types

console = Console()


def remove_cmd(
    source_type: Annotated[
        str | None, typer.Argument(help="resource or transcription.")
    ] = None,
    source_id: Annotated[str | None, typer.Argument(help="Id of the source.")] = None,
    all_chunks: Annotated[
        bool,
        typer.Option("--all", help="Delete every chunk and forget the embedding model."),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
    db: Annotated[Path | None, typer.Option("--db", help="Database path.")] = None,
) -> None:
    """Remove the chunks of one source, or of every source with --all."""
    if all_chunks == (source_type is not None):
        console.print("[red]Error:[/] Pass SOURCE_TYPE SOURCE_ID, or --all.")
        raise typer.Exit(1)
    if source_type is not None:
        if source_type not in known_source_types():
            console.print(err_unknown_source_type(source_type, known_source_types()))
            raise typer.Exit(1)
        if source_id is None:
            console.print("[red]Error:[/] Missing SOURCE_ID.")
            raise typer.Exit(1)

    cfg = load_settings()
    db_path = resolve_db(db, cfg)
    conn = open_db(db_path)
    try:
        store = ChunkStore(conn)
        count = store.count_all() if all_chunks else store.count_chunks(source_type, source_id)
    finally:
        conn.close()

    if all_chunks:
        console.print(f"\nRemove [bold]all {count}[/] chunks from the knowledge base.")
    elif count == 0:
        console.print(f"[dim]No chunks stored for {source_type} '{source_id}'.[/]")
        raise typer.Exit(0)
    else:
        console.print(f"\nRemove {count} chunks of {source_type} [bold]{source_id}[/]")

    if not yes and not typer.confirm("Confirm removal?", default=False):
        console.print("[dim]Cancelled.[/]")
        raise typer.Exit(0)

    with build_trigger(db_path, cfg, require_key=False) as trigger:
        if all_chunks:
            removed = trigger.reset_all()
            console.print(f"\n[green]✓[/] Removed {removed} chunks; embedding model reset.")
        else:
            removed = trigger.reset(source_type, source_id)
            console.print(f"\n[green]✓[/] Removed {removed} chunks of {source_type} {source_id}")
