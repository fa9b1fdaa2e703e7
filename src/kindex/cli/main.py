"""kindex CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer

from kindex.cli.add import add_app
from kindex.cli.embed import embed_cmd, reembed_cmd
from kindex.cli.init import init_cmd
from kindex.cli.remove import remove_cmd
from kindex.cli.search import search_cmd
from kindex.cli.status import status_cmd
from kindex.logging_config import setup_logging


def _installed_version() -> str:
    try:
        return importlib.metadata.version("kindex")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"kindex {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="kindex",
    help=(
        "kindex — per-user semantic knowledge index.\n\n"
        "  kindex add       Store a resource or transcription and embed it.\n"
        "  kindex search    Semantic search over one user's chunks."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log debug output to stderr."),
    ] = False,
) -> None:
    """kindex — per-user semantic knowledge index."""
    setup_logging(logging.DEBUG if verbose else logging.WARNING)


app.command("init")(init_cmd)
app.add_typer(add_app, name="add")
app.command("embed")(embed_cmd)
app.command("reembed")(reembed_cmd)
app.command("search")(search_cmd)
app.command("status")(status_cmd)
app.command("remove")(remove_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed kindex version."""
    typer.echo(f"kindex {_installed_version()}")


if __name__ == "__main__":
    app()
