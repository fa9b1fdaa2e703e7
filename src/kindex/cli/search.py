"""kindex search — semantic search over one user's knowledge chunks."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.style import Style
from rich.table import Table
from rich.text import Text

from kindex.cli._runtime import build_embedder, load_settings, open_db, resolve_db
from kindex.cli.errors import err_embedding_model_mismatch, err_unknown_source_type
from kindex.db.sources import known_source_types
from kindex.errors import EmbeddingSpaceError, ProviderError
from kindex.knowledge.service import KnowledgeService
from kindex.rag.search import SearchScope

console = Console()

_PREVIEW_CHARS = 160


def search_cmd(
    query: Annotated[str, typer.Argument(help="Natural-language query.")],
    user: Annotated[str, typer.Option("--user", "-u", help="Search this user's chunks.")],
    project: Annotated[
        str | None,
        typer.Option("--project", "-p", help="Restrict to a project (plus project-less chunks)."),
    ] = None,
    source_type: Annotated[
        list[str] | None,
        typer.Option("--type", "-t", help="Restrict to a source type; repeatable."),
    ] = None,
    limit: Annotated[
        int | None, typer.Option("--limit", "-n", help="Maximum results (default: search.limit).")
    ] = None,
    min_similarity: Annotated[
        float | None, typer.Option("--min-similarity", help="Drop results below this score.")
    ] = None,
    db: Annotated[Path | None, typer.Option("--db", help="Database path.")] = None,
) -> None:
    """Find the chunks most similar to QUERY."""
    for st in source_type or []:
        if st not in known_source_types():
            console.print(err_unknown_source_type(st, known_source_types()))
            raise typer.Exit(1)

    cfg = load_settings()
    scope = SearchScope(
        user_id=user,
        project_id=project,
        source_types=source_type or None,
        limit=limit if limit is not None else cfg.search.limit,
        min_similarity=min_similarity,
    )
    embedder = build_embedder(cfg)
    conn = open_db(resolve_db(db, cfg))
    try:
        service = KnowledgeService.from_connection(conn, embedder)
        try:
            results = service.search(query, scope)
        except EmbeddingSpaceError as exc:
            console.print(err_embedding_model_mismatch(str(exc)))
            raise typer.Exit(1) from exc
        except ProviderError as exc:
            console.print(f"[red]Error:[/] Embedding the query failed: {escape(str(exc))}")
            raise typer.Exit(1) from exc
        except ValueError as exc:
            console.print(f"[red]Error:[/] {escape(str(exc))}")
            raise typer.Exit(1) from exc
    finally:
        conn.close()

    if not results:
        console.print("[dim]No matching chunks.[/]")
        return

    table = Table(title=f"Results for: {escape(query)}", show_lines=True)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Source")
    table.add_column("Excerpt")

    for rank, result in enumerate(results, start=1):
        # Titles, dates and URLs are user data; Text keeps them out of markup parsing.
        source = Text(result.source_title or result.source_id, style="bold")
        meta = result.source_type
        if result.source_date:
            meta += f" · {result.source_date}"
        source.append(f"\n{meta}", style="dim")
        if result.url:
            source.append(f"\n{result.url}", style=Style(link=result.url))
        excerpt = " ".join(result.content.split())
        if len(excerpt) > _PREVIEW_CHARS:
            excerpt = excerpt[: _PREVIEW_CHARS - 1] + "…"
        table.add_row(str(rank), f"{result.similarity:.3f}", source, Text(excerpt))

    console.print(table)
