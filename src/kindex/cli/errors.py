"""kindex rich error messages — actionable feedback.

Every error shown to the user contains what went wrong and the exact action
to fix it.

Usage:
    from kindex.cli.errors import err_no_db
    console.print(err_no_db(".kindex.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from rich.markup import escape


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*."""
    env_map = {
        "openai": "OPENAI_API_KEY",
        "cohere": "COHERE_API_KEY",
        "gemini": "GEMINI_API_KEY",
        "mistral": "MISTRAL_API_KEY",
        "azure": "AZURE_API_KEY",
        "voyage": "VOYAGE_API_KEY",
    }
    env_var = env_map.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_no_db(db_path: str = ".kindex.db") -> str:
    """No database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  kindex init"
    )


def err_source_not_found(source_type: str, source_id: str) -> str:
    """Source entity missing from the database."""
    return (
        f"[yellow]Source not found:[/] {source_type} '{source_id}' does not exist.\n"
        "  Run:  kindex status  to see stored sources."
    )


def err_unknown_source_type(source_type: str, known: list[str]) -> str:
    return (
        f"[red]Error:[/] Unknown source type '{source_type}'.\n"
        f"  Use one of: {', '.join(known)}"
    )


def err_embedding_model_mismatch(detail: str) -> str:
    """Stored vectors come from a different embedding model than the config."""
    return (
        f"[red]Error:[/] {detail}\n"
        "  Either restore the previous embedding.model in kindex.yaml, or run:\n"
        "    kindex remove --all --yes && kindex reembed --all"
    )


def err_config(detail: str) -> str:
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {detail}\n"
        "  Fix kindex.yaml (or ~/.kindex/config.yaml) and retry."
    )


def err_queue_full(detail: str) -> str:
    return (
        f"[red]Error:[/] {detail}\n"
        "  Raise worker.max_pending in kindex.yaml or retry once the queue drains."
    )


def err_embed_failed(source_type: str, source_id: str, error: str) -> str:
    return (
        f"[red]✗ Embedding failed[/] for {source_type} '{source_id}': {escape(error)}\n"
        f"  Fix the cause, then run:  kindex embed {source_type} {source_id}"
    )
