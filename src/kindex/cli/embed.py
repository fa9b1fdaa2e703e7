"""kindex embed / reembed — (re)generate chunk embeddings for stored sources.

Usage:
  kindex embed resource 3f2c...            # one source, in the foreground
  kindex embed transcription 91ab... --sequential
  kindex reembed --status failed           # retry every failed source
  kindex reembed --all --type resource     # rebuild all resource chunks
"""

from __future__ import annotations

from concurrent.futures import FIRST_COMPLETED, Future, wait
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from kindex.cli._runtime import build_trigger, load_settings, open_db, resolve_db
from kindex.cli.errors import (
    err_embed_failed,
    err_embedding_model_mismatch,
    err_source_not_found,
    err_unknown_source_type,
)
from kindex.db.models import EmbeddingStatus
from kindex.db.sources import SourceRepository, known_source_types, table_for
from kindex.errors import (
    EmbeddingAlignmentError,
    EmbeddingSpaceError,
    SourceNotFoundError,
    TriggerRejectedError,
)
from kindex.ingest.embedding_client import SEQUENTIAL
from kindex.knowledge.service import EmbedResult
from kindex.knowledge.trigger import EmbeddingTriggerService

console = Console()


def run_embed(
    trigger: EmbeddingTriggerService, source_type: str, source_id: str
) -> EmbedResult:
    """Embed one source in the foreground, showing progress; exit 1 on failure."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TextColumn("{task.completed} chunks"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task(f"Embedding {source_type} {source_id}", total=None)
        try:
            result = trigger.process(
                source_type,
                source_id,
                on_progress=lambda n: progress.update(task, completed=n),
            )
        except SourceNotFoundError as exc:
            console.print(err_source_not_found(source_type, source_id))
            raise typer.Exit(1) from exc
        except EmbeddingSpaceError as exc:
            console.print(err_embedding_model_mismatch(str(exc)))
            raise typer.Exit(1) from exc
        except EmbeddingAlignmentError as exc:
            console.print(err_embed_failed(source_type, source_id, str(exc)))
            raise typer.Exit(1) from exc

    if not result.success:
        console.print(err_embed_failed(source_type, source_id, result.error or "unknown error"))
        raise typer.Exit(1)

    console.print(
        f"[green]✓[/] Embedded {source_type} {source_id}: "
        f"[bold]{result.chunk_count}[/] chunks in {result.processing_time_ms} ms"
    )
    return result


def _check_type(source_type: str) -> None:
    try:
        table_for(source_type)
    except ValueError as exc:
        console.print(err_unknown_source_type(source_type, known_source_types()))
        raise typer.Exit(1) from exc


def embed_cmd(
    source_type: Annotated[str, typer.Argument(help="resource or transcription.")],
    source_id: Annotated[str, typer.Argument(help="Id of the source to embed.")],
    sequential: Annotated[
        bool,
        typer.Option("--sequential", help="One provider call per chunk instead of batches."),
    ] = False,
    db: Annotated[Path | None, typer.Option("--db", help="Database path.")] = None,
) -> None:
    """Embed (or re-embed) one source, replacing its stored chunks."""
    _check_type(source_type)
    cfg = load_settings()
    db_path = resolve_db(db, cfg)
    open_db(db_path).close()

    with build_trigger(db_path, cfg, mode=SEQUENTIAL if sequential else None) as trigger:
        run_embed(trigger, source_type, source_id)


def reembed_cmd(
    all_sources: Annotated[
        bool, typer.Option("--all", help="Re-embed every stored source.")
    ] = False,
    status: Annotated[
        EmbeddingStatus | None,
        typer.Option("--status", help="Only sources currently in this embedding status."),
    ] = None,
    source_type: Annotated[
        str | None, typer.Option("--type", "-t", help="Only this source type.")
    ] = None,
    sequential: Annotated[
        bool,
        typer.Option("--sequential", help="One provider call per chunk instead of batches."),
    ] = False,
    db: Annotated[Path | None, typer.Option("--db", help="Database path.")] = None,
) -> None:
    """Queue embedding for many sources on the background worker pool."""
    if not all_sources and status is None:
        console.print("[red]Error:[/] Pass --all or --status STATUS.")
        raise typer.Exit(1)
    if source_type is not None:
        _check_type(source_type)

    cfg = load_settings()
    db_path = resolve_db(db, cfg)
    conn = open_db(db_path)
    try:
        repo = SourceRepository(conn)
        types = [source_type] if source_type else repo.source_types()
        targets = [(st, sid) for st in types for sid in repo.list_ids(st, status)]
    finally:
        conn.close()

    if not targets:
        console.print("[dim]Nothing to embed.[/]")
        return

    results: list[EmbedResult | None] = []
    with build_trigger(db_path, cfg, mode=SEQUENTIAL if sequential else None) as trigger:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("Embedding", total=len(targets))
            outstanding: set[Future[EmbedResult | None]] = set()

            def _collect(done: set[Future[EmbedResult | None]]) -> None:
                for fut in done:
                    results.append(fut.result())
                    progress.advance(task)

            for st, sid in targets:
                while True:
                    try:
                        outstanding.add(trigger.trigger_embedding(st, sid))
                        break
                    except TriggerRejectedError:
                        # Queue full: wait for a slot before retrying.
                        done, outstanding = wait(outstanding, return_when=FIRST_COMPLETED)
                        _collect(done)

            done, _ = wait(outstanding)
            _collect(done)

    ok = sum(1 for r in results if r is not None and r.success)
    chunks = sum(r.chunk_count for r in results if r is not None and r.success)
    failed = len(results) - ok
    console.print(f"\n[green]✓[/] {ok} sources embedded ({chunks} chunks)")
    if failed:
        console.print(
            f"[red]✗[/] {failed} failed. Inspect with:  kindex status\n"
            "  Retry with:  kindex reembed --status failed"
        )
        raise typer.Exit(1)
