"""ragdesk ingest: (re-)ingest a registered knowledge source by id.

The source's content is chunked, embedded and swapped in for its previous
chunks. Sources are registered (and ingested once) with  ragdesk source add.
"""

from __future__ import annotations

import warnings
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from ragdesk.cli.errors import (
    err_empty_input,
    err_ingestion_failed,
    err_source_not_found,
    err_storage,
    warn_partial_ingestion,
)
from ragdesk.cli.project import DEFAULT_DB, build_ingestion, load_project_config, open_db
from ragdesk.config import RagdeskConfig
from ragdesk.db.repository import Repository
from ragdesk.errors import (
    NotFoundError,
    PartialIngestionFailure,
    ProviderError,
    StorageError,
    ValidationError,
)

console = Console()


def ingest_cmd(
    source_id: Annotated[str, typer.Argument(help="Knowledge source id (see ragdesk status).")],
    db: Annotated[Path, typer.Option("--db", help="Path to .ragdesk.db.")] = DEFAULT_DB,
) -> None:
    """Chunk and embed a knowledge source, replacing its previous chunks."""
    cfg = load_project_config(db)
    conn = open_db(db)
    try:
        ok = run_ingestion(Repository(conn), cfg, source_id)
    finally:
        conn.close()
    if not ok:
        raise typer.Exit(1)


def run_ingestion(repo: Repository, cfg: RagdeskConfig, source_id: str) -> bool:
    """Ingest *source_id* and report the outcome. Returns False on failure."""
    orchestrator = build_ingestion(repo, cfg)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        transient=True,
        console=console,
    ) as prog:
        prog.add_task("Chunking + embedding…", total=None)
        try:
            with warnings.catch_warnings():
                # Reported from the result below.
                warnings.simplefilter("ignore", PartialIngestionFailure)
                result = orchestrator.ingest(source_id)
        except NotFoundError:
            console.print(err_source_not_found(source_id))
            return False
        except ValidationError:
            console.print(err_empty_input("Source content"))
            return False
        except ProviderError as exc:
            console.print(err_ingestion_failed(str(exc)))
            return False
        except StorageError as exc:
            console.print(err_storage(str(exc)))
            return False

    console.print(f"  [green]✓[/] {result.chunks_created} chunks stored for {source_id}")
    if result.partial:
        console.print(
            warn_partial_ingestion(result.chunks_failed, result.chunks_created + result.chunks_failed)
        )
    return True
