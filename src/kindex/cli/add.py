"""kindex add — store a resource or transcription and embed it.

Usage:
  kindex add resource notes.md --user u1 --title "Design notes"
  kindex add transcription standup.txt --user u1 --project p1 --meeting-date 2026-03-02
  kindex add resource page.html --user u1 --no-embed
"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from kindex.cli._runtime import build_trigger, load_settings, open_db, resolve_db
from kindex.cli.embed import run_embed
from kindex.db.models import RESOURCE, TRANSCRIPTION, Resource, Transcription
from kindex.db.sources import SourceRepository

console = Console()

add_app = typer.Typer(
    name="add",
    help="Store a source (resource or transcription) and embed it.",
    add_completion=False,
)


def _read(file: Path) -> str:
    if not file.is_file():
        console.print(f"[red]Error:[/] File not found: {file}")
        raise typer.Exit(1)
    return file.read_text(encoding="utf-8", errors="replace")


@add_app.command("resource")
def add_resource_cmd(
    file: Annotated[Path, typer.Argument(help="Text file holding the resource content.")],
    user: Annotated[str, typer.Option("--user", "-u", help="Owning user id.")],
    project: Annotated[
        str | None, typer.Option("--project", "-p", help="Project id (optional).")
    ] = None,
    title: Annotated[
        str | None, typer.Option("--title", help="Title (default: file name).")
    ] = None,
    url: Annotated[str | None, typer.Option("--url", help="Original URL.")] = None,
    content_type: Annotated[
        str, typer.Option("--content-type", help="Resource kind, e.g. web_page, article.")
    ] = "web_page",
    author: Annotated[str | None, typer.Option("--author")] = None,
    published_at: Annotated[str | None, typer.Option("--published-at")] = None,
    raw: Annotated[
        bool,
        typer.Option("--raw", help="Store the file as raw_content instead of content."),
    ] = False,
    no_embed: Annotated[
        bool, typer.Option("--no-embed", help="Store only; embed later with `kindex embed`.")
    ] = False,
    db: Annotated[Path | None, typer.Option("--db", help="Database path.")] = None,
) -> None:
    """Add a resource (web page, article, note) from FILE."""
    text = _read(file)
    cfg = load_settings()
    db_path = resolve_db(db, cfg)

    resource = Resource(
        id=str(uuid.uuid4()),
        user_id=user,
        title=title or file.name,
        content=None if raw else text,
        raw_content=text if raw else None,
        url=url,
        project_id=project,
        content_type=content_type,
        author=author,
        published_at=published_at,
    )
    trigger = None if no_embed else build_trigger(db_path, cfg)
    conn = open_db(db_path)
    try:
        SourceRepository(conn).add_resource(resource)
    finally:
        conn.close()
    console.print(f"[green]✓[/] Added resource [bold]{resource.id}[/] ({escape(resource.title)})")

    if trigger is not None:
        with trigger:
            run_embed(trigger, RESOURCE, resource.id)


@add_app.command("transcription")
def add_transcription_cmd(
    file: Annotated[Path, typer.Argument(help="Text file holding the transcript.")],
    user: Annotated[str, typer.Option("--user", "-u", help="Owning user id.")],
    project: Annotated[
        str | None, typer.Option("--project", "-p", help="Project id (optional).")
    ] = None,
    title: Annotated[
        str | None, typer.Option("--title", help="Title (default: file name).")
    ] = None,
    meeting_date: Annotated[str | None, typer.Option("--meeting-date")] = None,
    no_embed: Annotated[
        bool, typer.Option("--no-embed", help="Store only; embed later with `kindex embed`.")
    ] = False,
    db: Annotated[Path | None, typer.Option("--db", help="Database path.")] = None,
) -> None:
    """Add a meeting transcription from FILE."""
    text = _read(file)
    cfg = load_settings()
    db_path = resolve_db(db, cfg)

    transcription = Transcription(
        id=str(uuid.uuid4()),
        user_id=user,
        transcription=text,
        title=title or file.name,
        project_id=project,
        meeting_date=meeting_date,
    )
    trigger = None if no_embed else build_trigger(db_path, cfg)
    conn = open_db(db_path)
    try:
        SourceRepository(conn).add_transcription(transcription)
    finally:
        conn.close()
    console.print(
        f"[green]✓[/] Added transcription [bold]{transcription.id}[/] ({escape(transcription.title)})"
    )

    if trigger is not None:
        with trigger:
            run_embed(trigger, TRANSCRIPTION, transcription.id)
