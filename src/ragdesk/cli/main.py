"""ragdesk CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer
from rich.logging import RichHandler

from ragdesk.cli.agent import agent_app
from ragdesk.cli.ask import ask_cmd
from ragdesk.cli.ingest import ingest_cmd
from ragdesk.cli.init import init_cmd
from ragdesk.cli.source import source_app
from ragdesk.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("ragdesk")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"ragdesk {_installed_version()}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=verbose, show_path=verbose)],
        force=True,
    )
    # LiteLLM logs every request at INFO; keep it quiet unless debugging.
    logging.getLogger("LiteLLM").setLevel(logging.DEBUG if verbose else logging.WARNING)


app = typer.Typer(
    name="ragdesk",
    help=(
        "ragdesk: grounded knowledge-base chat.\n\n"
        "  ragdesk source add  Register a document for an agent and ingest it.\n"
        "  ragdesk ask         Ask an agent a question, answered from its knowledge only."
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
        typer.Option("--verbose", "-v", help="Show debug logging."),
    ] = False,
) -> None:
    """ragdesk: grounded knowledge-base chat."""
    _configure_logging(verbose)


app.command("init")(init_cmd)
app.command("ingest")(ingest_cmd)
app.command("ask")(ask_cmd)
app.command("status")(status_cmd)
app.add_typer(agent_app, name="agent")
app.add_typer(source_app, name="source")


@app.command("version")
def version_cmd() -> None:
    """Show the installed ragdesk version."""
    typer.echo(f"ragdesk {_installed_version()}")


if __name__ == "__main__":
    app()
