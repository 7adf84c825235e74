"""ragdesk init: create the project database and config.

Creates:
  .ragdesk.db      empty knowledge base with schema
  ragdesk.yaml     project config (provider, embedding, completion)
  .gitignore       .ragdesk.db appended if the file already exists
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from ragdesk.config import ensure_project_config
from ragdesk.db.connection import Database
from ragdesk.db.schema import initialize

console = Console()

_DB_NAME = ".ragdesk.db"


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = Path("."),
) -> None:
    """Initialize a ragdesk project (database + ragdesk.yaml)."""
    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)

    db_path = project_dir / _DB_NAME
    existed = db_path.exists()

    with Database(db_path) as conn:
        initialize(conn)
    if existed:
        console.print(f"  [dim]↷ {_DB_NAME} already exists — schema up to date[/]")
    else:
        console.print(f"  [green]✓[/] {_DB_NAME}")

    cfg_path = ensure_project_config(project_dir)
    console.print(f"  [green]✓[/] {cfg_path.name}")

    _update_gitignore(project_dir)

    console.print(f"\n[bold green]✓ ragdesk project initialized in {project_dir}[/]")
    console.print("\nNext steps:")
    console.print("  1. ragdesk agent create --name <name>                       (create an agent)")
    console.print("  2. ragdesk source add --agent <id> --name <n> --file <path>  (add knowledge)")
    console.print("  3. ragdesk ask --agent <id> \"<question>\"                    (chat)")


def _update_gitignore(project_dir: Path) -> None:
    gitignore = project_dir / ".gitignore"
    if not gitignore.exists():
        return
    existing = gitignore.read_text(encoding="utf-8")
    if _DB_NAME not in existing:
        with gitignore.open("a", encoding="utf-8") as f:
            f.write(f"\n# ragdesk\n{_DB_NAME}\n")
        console.print("  [green]✓[/] .gitignore (updated)")
