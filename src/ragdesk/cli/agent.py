"""ragdesk agent: create and list agents.

Commands:
  ragdesk agent create --name NAME [--tone TONE] [--instructions TEXT] ...
  ragdesk agent list
"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from ragdesk.cli.errors import err_empty_input
from ragdesk.cli.project import DEFAULT_DB, open_db
from ragdesk.db.models import Agent
from ragdesk.db.repository import Repository
from ragdesk.rag.prompt import Tone

console = Console()

agent_app = typer.Typer(name="agent", help="Manage agents.", add_completion=False)


@agent_app.command("create")
def create_cmd(
    name: Annotated[str, typer.Option("--name", "-n", help="Agent display name.")],
    tone: Annotated[
        str | None,
        typer.Option("--tone", help=f"One of: {', '.join(t.value for t in Tone)}."),
    ] = None,
    instructions: Annotated[
        str | None,
        typer.Option("--instructions", help="Custom instructions added to the system prompt."),
    ] = None,
    model: Annotated[
        str | None,
        typer.Option("--model", help="Completion model (default: completion.model)."),
    ] = None,
    temperature: Annotated[
        float | None,
        typer.Option("--temperature", min=0.0, max=2.0, help="Sampling temperature."),
    ] = None,
    max_tokens: Annotated[
        int | None,
        typer.Option("--max-tokens", min=1, help="Maximum reply tokens."),
    ] = None,
    db: Annotated[Path, typer.Option("--db", help="Path to .ragdesk.db.")] = DEFAULT_DB,
) -> None:
    """Create an agent and print its id."""
    if not name.strip():
        console.print(err_empty_input("--name"))
        raise typer.Exit(1)
    if tone is not None and Tone.parse(tone) is None:
        console.print(
            f"[yellow]⚠[/] Unknown tone '{tone}' — no tone sentence will be added to the prompt."
        )

    conn = open_db(db)
    try:
        agent = Agent(
            id=str(uuid.uuid4()),
            name=name.strip(),
            tone=tone,
            custom_instructions=instructions,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        Repository(conn).add_agent(agent)
    finally:
        conn.close()

    console.print(f"[green]✓[/] Agent '{agent.name}' created.")
    console.print(agent.id, highlight=False)


@agent_app.command("list")
def list_cmd(
    db: Annotated[Path, typer.Option("--db", help="Path to .ragdesk.db.")] = DEFAULT_DB,
) -> None:
    """List all agents."""
    conn = open_db(db)
    try:
        agents = Repository(conn).list_agents()
    finally:
        conn.close()

    if not agents:
        console.print("[dim]No agents yet.  Run:  ragdesk agent create --name <name>[/]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", no_wrap=True)
    table.add_column("Name")
    table.add_column("Tone")
    table.add_column("Model")
    for a in agents:
        table.add_row(a.id, a.name, a.tone or "—", a.model or "(default)")
    console.print(table)
