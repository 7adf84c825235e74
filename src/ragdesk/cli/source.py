"""ragdesk source: register knowledge sources for an agent.

  ragdesk source add --agent ID --name NAME (--text TEXT | --file PATH) [--url URL]

The source is ingested immediately unless --no-ingest is given.
"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from ragdesk.cli.errors import err_agent_not_found, err_empty_input, err_source_input
from ragdesk.cli.ingest import run_ingestion
from ragdesk.cli.project import DEFAULT_DB, load_project_config, open_db
from ragdesk.db.models import KnowledgeSource
from ragdesk.db.repository import Repository

console = Console()

source_app = typer.Typer(name="source", help="Manage knowledge sources.", add_completion=False)


@source_app.command("add")
def add_cmd(
    agent: Annotated[str, typer.Option("--agent", "-a", help="Agent id.")],
    name: Annotated[str, typer.Option("--name", "-n", help="Source display name.")],
    text: Annotated[
        str | None,
        typer.Option("--text", help="Source content given inline."),
    ] = None,
    file: Annotated[
        Path | None,
        typer.Option("--file", "-f", exists=True, dir_okay=False, help="Read content from a text file."),
    ] = None,
    url: Annotated[
        str | None,
        typer.Option("--url", help="Origin URL recorded with the source."),
    ] = None,
    ingest: Annotated[
        bool,
        typer.Option("--ingest/--no-ingest", help="Ingest right after registering."),
    ] = True,
    db: Annotated[Path, typer.Option("--db", help="Path to .ragdesk.db.")] = DEFAULT_DB,
) -> None:
    """Register a knowledge source for an agent and ingest it."""
    if (text is None) == (file is None):
        console.print(err_source_input())
        raise typer.Exit(1)
    if not name.strip():
        console.print(err_empty_input("--name"))
        raise typer.Exit(1)

    content = text if text is not None else file.read_text(encoding="utf-8")
    if not content.strip():
        console.print(err_empty_input("Source content"))
        raise typer.Exit(1)

    cfg = load_project_config(db)
    conn = open_db(db)
    try:
        repo = Repository(conn)
        if repo.get_agent(agent) is None:
            console.print(err_agent_not_found(agent))
            raise typer.Exit(1)

        source = KnowledgeSource(
            id=str(uuid.uuid4()),
            agent_id=agent,
            name=name.strip(),
            type="file" if file is not None else "text",
            url=url,
            content=content,
        )
        repo.add_source(source)
        console.print(f"[green]✓[/] Source '{source.name}' registered.")
        console.print(source.id, highlight=False)

        ok = run_ingestion(repo, cfg, source.id) if ingest else True
    finally:
        conn.close()

    if not ok:
        raise typer.Exit(1)
