"""Command line interface for semsearch."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table

from semsearch.config import ENV_DEFAULT_DB, AppConfig, load_config
from semsearch.errors import SemSearchError
from semsearch.index.progress import IndexStats, ProgressCallbacks
from semsearch.index.storage import SQLiteVectorStore
from semsearch.store import SemanticStore, collect_stats


console = Console()
app = typer.Typer(help="semsearch - semantic search over text files with Azure OpenAI reranking")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _fail(message: str) -> NoReturn:
    console.print(f"[red]Error: {message}[/red]")
    raise typer.Exit(code=1)


def _load(
    db: Optional[Path],
    endpoint: Optional[str] = None,
    api_key: Optional[str] = None,
    embedding_model: Optional[str] = None,
    llm_model: Optional[str] = None,
    **overrides: object,
) -> AppConfig:
    return load_config(
        endpoint=endpoint,
        api_key=api_key,
        embedding_deployment=embedding_model,
        rerank_deployment=llm_model,
        db_path=db,
        **overrides,
    )


def _console_callbacks() -> ProgressCallbacks:
    def on_complete(path: Path, elapsed: float, usage: object) -> None:
        console.print(f"[green]✓[/green] {path} ({elapsed:.1f}s)")

    def on_error(path: Path, error: BaseException) -> None:
        console.print(f"[red]✗[/red] {path}: {error}")

    return ProgressCallbacks(on_file_complete=on_complete, on_file_error=on_error)


def _print_index_summary(stats: IndexStats, total_documents: int) -> None:
    console.print(
        f"Completed: {stats.completed}, skipped: {stats.skipped}, "
        f"errored: {stats.errored} in {stats.elapsed_seconds:.1f}s"
    )
    if stats.usage.total:
        console.print(
            f"Tokens: {stats.usage.total} "
            f"(prompt {stats.usage.prompt}, completion {stats.usage.completion})"
        )
    for path, message in stats.errors.items():
        console.print(f"  [red]{path}[/red]: {message}")
    console.print(f"Total documents in index: [bold]{total_documents}[/bold]")


@app.command()
def index(
    path: Path = typer.Argument(..., help="File or directory to index.", resolve_path=True),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    endpoint: Optional[str] = typer.Option(None, help="Azure OpenAI endpoint"),
    api_key: Optional[str] = typer.Option(None, help="Azure OpenAI API key"),
    embedding_model: Optional[str] = typer.Option(None, help="Embedding deployment name"),
    llm_model: Optional[str] = typer.Option(None, help="Chat deployment used to summarize"),
    max_chars: Optional[int] = typer.Option(None, min=1, help="Characters read per file"),
    concurrency: Optional[int] = typer.Option(None, min=1, help="Files processed concurrently"),
    force: bool = typer.Option(False, "--force", help="Re-index files that are already indexed"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Index a file or every text file under a directory."""
    _setup_logging(verbose)
    if not path.exists():
        raise typer.BadParameter(f"Path not found: {path}")

    config = _load(
        db,
        endpoint,
        api_key,
        embedding_model,
        llm_model,
        max_chars=max_chars,
        concurrency=concurrency,
    )

    async def run() -> tuple[IndexStats, int]:
        store = SemanticStore.from_config(config)
        try:
            stats = await store.index_path(path, force=force, callbacks=_console_callbacks())
            return stats, store.count()
        finally:
            await store.aclose()

    console.print(f"Indexing into [bold]{config.resolve_db_path(Path.cwd())}[/bold]...")
    try:
        stats, total = asyncio.run(run())
    except SemSearchError as exc:
        _fail(str(exc))

    if stats.discovered == 0:
        console.print("[yellow]No text files found.[/yellow]")
        return
    _print_index_summary(stats, total)


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    endpoint: Optional[str] = typer.Option(None, help="Azure OpenAI endpoint"),
    api_key: Optional[str] = typer.Option(None, help="Azure OpenAI API key"),
    embedding_model: Optional[str] = typer.Option(None, help="Embedding deployment name"),
    llm_model: Optional[str] = typer.Option(None, help="Chat deployment used to rerank"),
    top_k: Optional[int] = typer.Option(None, "--top-k", "-k", min=1, help="Number of results to display"),
    min_similarity: Optional[float] = typer.Option(
        None, min=0.0, max=1.0, help="Minimum cosine similarity of candidates"
    ),
    min_score: Optional[float] = typer.Option(None, min=0.0, max=100.0, help="Minimum rerank score"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Execute a semantic search with LLM reranking."""
    _setup_logging(verbose)
    if not query.strip():
        raise typer.BadParameter("Query must not be empty")

    config = _load(
        db,
        endpoint,
        api_key,
        embedding_model,
        llm_model,
        top_k=top_k,
        min_similarity=min_similarity,
        min_score=min_score,
    )
    resolved_db = config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        raise typer.BadParameter(f"Database not found: {resolved_db}")

    async def run():
        store = SemanticStore.from_config(config)
        try:
            return await store.search(
                query,
                top_k=config.top_k,
                min_similarity=config.min_similarity,
                min_score=config.min_score,
            )
        finally:
            await store.aclose()

    try:
        results = asyncio.run(run())
    except SemSearchError as exc:
        _fail(str(exc))

    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("#")
    table.add_column("Score")
    table.add_column("Cosine")
    table.add_column("File")
    table.add_column("Summary")

    for rank, result in enumerate(results, start=1):
        summary = result.summary.replace("\n", " ")
        table.add_row(
            str(rank),
            f"{result.score:.0f}",
            f"{result.similarity:.3f}",
            result.metadata.path,
            summary[:180],
        )

    console.print(table)


@app.command()
def info(
    record_id: str = typer.Argument(..., help="Document id"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Show the stored metadata and summary of one document."""
    config = _load(db)
    resolved_db = config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        raise typer.BadParameter(f"Database not found: {resolved_db}")

    try:
        store = SQLiteVectorStore(resolved_db)
        try:
            record = store.get_by_id(record_id)
        finally:
            store.close()
    except SemSearchError as exc:
        _fail(str(exc))

    if record is None:
        _fail(f"No document with id {record_id}")

    meta = record.metadata
    console.print(f"[bold]{meta.filename}[/bold] ({record.id})")
    console.print(f"Path:     {meta.path}")
    console.print(f"Type:     {meta.mimetype or 'unknown'}")
    console.print(f"Size:     {meta.size} bytes")
    console.print(f"Created:  {meta.created_at}")
    console.print(f"Modified: {meta.modified_at}")
    console.print()
    console.print(record.summary)


@app.command()
def status(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Show configuration and index health."""
    config = _load(db)
    resolved_db = config.resolve_db_path(Path.cwd())

    table = Table(show_header=False)
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    table.add_row("Endpoint", config.azure.endpoint or "[red]not configured[/red]")
    table.add_row("Authentication", config.auth_mode)
    table.add_row("Embedding deployment", config.azure.embedding_deployment)
    table.add_row("Rerank deployment", config.azure.rerank_deployment)
    table.add_row("API version", config.azure.api_version)
    table.add_row("Database", str(resolved_db))

    if not resolved_db.exists():
        table.add_row("Documents", "[yellow]database not found[/yellow]")
        console.print(table)
        return

    try:
        store = SQLiteVectorStore(resolved_db)
        try:
            stats = collect_stats(store, endpoint=config.azure.endpoint)
        finally:
            store.close()
    except SemSearchError as exc:
        _fail(str(exc))

    table.add_row("Database size", stats.database_size)
    table.add_row("Documents", str(stats.total_documents))
    table.add_row(
        "Vector coverage",
        f"{stats.vector_count}/{stats.total_documents} ({stats.vector_index_coverage}%)",
    )
    table.add_row("Dimension", str(stats.dimension) if stats.dimension else "-")
    console.print(table)

    if stats.total_documents and stats.vector_count < stats.total_documents:
        console.print(
            "[yellow]Some documents have no embedding; run 'semsearch index --force' to rebuild.[/yellow]"
        )


@app.command()
def prune(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Remove documents that no longer exist on disk."""
    config = _load(db)
    resolved_db = config.resolve_db_path(Path.cwd())

    if not resolved_db.exists():
        console.print("[yellow]Database not found, nothing to prune.[/yellow]")
        return

    try:
        store = SQLiteVectorStore(resolved_db)
        try:
            removed = store.remove_missing_files()
        finally:
            store.close()
    except SemSearchError as exc:
        _fail(str(exc))
    console.print(f"Removed {removed} orphaned documents.")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Start the HTTP API."""
    import uvicorn

    from semsearch.web.app import app as web_app

    config = _load(db)
    resolved_db = config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        console.print("[yellow]Warning: database not found, searches might fail.[/yellow]")
    _ensure_db_parent(resolved_db)
    # Requests without a db field fall back to this database.
    os.environ[ENV_DEFAULT_DB] = str(resolved_db.resolve())

    console.print(f"Starting web API on http://{host}:{port} (database: {resolved_db})")
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )


if __name__ == "__main__":
    app()
