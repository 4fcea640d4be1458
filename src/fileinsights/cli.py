"""Command line interface for FileInsights."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from fileinsights.analytics import AnalyticsAggregator
from fileinsights.config import AppConfig
from fileinsights.errors import InvalidInputError
from fileinsights.extraction.extractor import CONTENT_TYPE, ContentExtractor
from fileinsights.index.basic_store import SQLiteBasicStore
from fileinsights.index.content_store import SQLiteContentStore
from fileinsights.index.pipeline import Walker
from fileinsights.models import SourceType
from fileinsights.utils.files import folder_prefix
from fileinsights.web.app import app as web_app


console = Console()
app = typer.Typer(help="FileInsights - file metadata indexing")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _build_config(db: Path | None, content_db: Path | None, **overrides) -> AppConfig:
    config = AppConfig(db_path=db, content_db_path=content_db)
    for key, value in overrides.items():
        if value is not None:
            setattr(config, key, value)
    return config


def _open_stores(config: AppConfig) -> tuple[SQLiteBasicStore, SQLiteContentStore]:
    basic_path = config.resolve_db_path(Path.cwd())
    content_path = config.resolve_content_db_path(Path.cwd())
    _ensure_db_parent(basic_path)
    _ensure_db_parent(content_path)
    return SQLiteBasicStore(basic_path), SQLiteContentStore(content_path)


@app.command()
def process(
    folder: Path = typer.Argument(..., help="Folder to walk.", resolve_path=True),
    path_type: str = typer.Option(SourceType.LOCAL.value, "--type", "-t", help="Local, NFS or SMB"),
    db: Path = typer.Option(None, "--db", help="Basic metadata database path"),
    content_db: Path = typer.Option(None, "--content-db", help="Content metadata database path"),
    workers: int = typer.Option(None, "--workers", "-w", help="Files processed in parallel"),
    timeout: float = typer.Option(None, "--timeout", help="Per-file extraction timeout in seconds"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Walk a folder and index basic and content metadata for every file."""
    _setup_logging(verbose)
    try:
        source_type = SourceType.parse(path_type)
    except InvalidInputError as exc:
        raise typer.BadParameter(str(exc)) from exc

    config = _build_config(db, content_db, workers=workers, extraction_timeout=timeout)
    basic_store, content_store = _open_stores(config)
    walker = Walker(
        basic_store,
        content_store,
        ContentExtractor(max_text_chars=config.max_text_chars),
        extraction_timeout=config.extraction_timeout,
        workers=config.workers,
        upload_prefix=config.upload_prefix,
    )

    console.print(f"Processing [bold]{folder}[/bold] ({source_type.value})...")
    try:
        stats = walker.walk(folder, source_type)
    except InvalidInputError as exc:
        raise typer.BadParameter(str(exc)) from exc
    finally:
        basic_store.close()
        content_store.close()

    console.print(
        f"Processed: {stats.processed}, failed: {stats.failed}, basic only: {stats.basic_only}"
    )
    for failure in stats.failures:
        console.print(f"[yellow]{failure.stage}[/yellow] {failure.path}: {failure.reason}")


@app.command()
def delete(
    folder: Path = typer.Argument(..., help="Folder whose metadata should be removed.", resolve_path=True),
    db: Path = typer.Option(None, "--db", help="Basic metadata database path"),
    content_db: Path = typer.Option(None, "--content-db", help="Content metadata database path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Remove stored metadata for every file under a folder."""
    _setup_logging(verbose)
    config = _build_config(db, content_db)
    basic_store, content_store = _open_stores(config)
    walker = Walker(basic_store, content_store, ContentExtractor())
    try:
        stats = walker.delete_folder(folder)
    finally:
        basic_store.close()
        content_store.close()

    console.print(
        f"Deleted: {stats.deleted}, failed: {stats.failed}, extra content documents: {stats.content_swept}"
    )


@app.command()
def show(
    folder: Path = typer.Argument(..., help="Folder to list.", resolve_path=True),
    advanced: bool = typer.Option(False, "--advanced", "-a", help="Show content metadata"),
    db: Path = typer.Option(None, "--db", help="Basic metadata database path"),
    content_db: Path = typer.Option(None, "--content-db", help="Content metadata database path"),
) -> None:
    """Display stored metadata for a folder."""
    config = _build_config(db, content_db)
    basic_store, content_store = _open_stores(config)
    prefix = folder_prefix(folder)
    try:
        if advanced:
            documents = content_store.query_by_path_prefix(prefix)
            rows = [
                (doc.path, doc.properties.get(CONTENT_TYPE, ""), str(len(doc.extracted_text)))
                for doc in documents
            ]
            headers = ("Path", "Content type", "Text chars")
        else:
            records = basic_store.find_by_path_prefix(prefix)
            rows = [
                (record.path, str(record.size), record.mtime.isoformat(), record.source_type.value)
                for record in records
            ]
            headers = ("Path", "Size", "Modified", "Type")
    finally:
        basic_store.close()
        content_store.close()

    if not rows:
        console.print("[yellow]No metadata found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    for header in headers:
        table.add_column(header)
    for row in rows:
        table.add_row(*row)
    console.print(table)


@app.command()
def stats(
    db: Path = typer.Option(None, "--db", help="Basic metadata database path"),
    content_db: Path = typer.Option(None, "--content-db", help="Content metadata database path"),
) -> None:
    """Show file counts by access age and by content type."""
    config = _build_config(db, content_db)
    basic_store, content_store = _open_stores(config)
    aggregator = AnalyticsAggregator(basic_store, content_store, max_terms=config.max_terms)
    try:
        by_age = aggregator.count_by_age()
        by_type = aggregator.count_by_type()
    finally:
        basic_store.close()
        content_store.close()

    age_table = Table(title="By age", show_header=True, header_style="bold magenta")
    age_table.add_column("Age")
    age_table.add_column("Files")
    for bucket, count in by_age.items():
        age_table.add_row(bucket, str(count))
    console.print(age_table)

    type_table = Table(title="By type", show_header=True, header_style="bold magenta")
    type_table.add_column("Content type")
    type_table.add_column("Files")
    for content_type, count in by_type.items():
        type_table.add_row(content_type, str(count))
    console.print(type_table)


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
) -> None:
    """Start the REST API."""
    import uvicorn

    console.print(f"Starting FileInsights API on http://{host}:{port}")
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )


if __name__ == "__main__":  # pragma: no cover
    app()
