"""ragdesk status: knowledge sources with processing status and chunk counts."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ragdesk.cli.errors import err_agent_not_found
from ragdesk.cli.project import DEFAULT_DB, open_db
from ragdesk.db.repository import Repository

console = Console()

_STATUS_STYLE = {
    "pending": "dim",
    "processing": "yellow",
    "completed": "green",
    "failed": "red",
}


def status_cmd(
    agent: Annotated[
        str | None,
        typer.Option("--agent", "-a", help="Only show this agent's sources."),
    ] = None,
    db: Annotated[Path, typer.Option("--db", help="Path to .ragdesk.db.")] = DEFAULT_DB,
) -> None:
    """Show knowledge sources: status, chunk count and last error."""
    if not db.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  ragdesk init",
                title="[bold]Knowledge Base[/]",
                expand=False,
            )
        )
        return

    conn = open_db(db)
    try:
        repo = Repository(conn)
        if agent is not None and repo.get_agent(agent) is None:
            console.print(err_agent_not_found(agent))
            raise typer.Exit(1)
        agents = {a.id: a.name for a in repo.list_agents()}
        sources = repo.list_sources(agent)
    finally:
        conn.close()

    console.print(
        Panel(
            f"Database: [bold]{db}[/]\n"
            f"Agents:   {len(agents)}\n"
            f"Sources:  {len(sources)}\n"
            f"Chunks:   {sum(s.chunks_count for s in sources)}",
            title="[bold]ragdesk[/]",
            expand=False,
        )
    )

    if not sources:
        console.print(
            "[dim]No knowledge sources yet.  "
            "Run:  ragdesk source add --agent <id> --name <name> --file <path>[/]"
        )
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Source ID", no_wrap=True)
    table.add_column("Agent")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Chunks", justify="right")
    table.add_column("Error")

    for s in sources:
        style = _STATUS_STYLE.get(s.status, "")
        table.add_row(
            s.id,
            agents.get(s.agent_id, s.agent_id),
            s.name,
            f"[{style}]{s.status}[/]" if style else s.status,
            str(s.chunks_count),
            s.error_message or "",
        )

    console.print(table)
