"""ragdesk ask: run one chat turn against an agent's knowledge base.

Prints the reply, then the conversation id (pass it back with
--conversation to continue the same conversation).
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from ragdesk.cli.errors import (
    err_agent_not_found,
    err_conversation_not_found,
    err_empty_input,
    err_no_api_key,
    err_storage,
    err_turn_failed,
)
from ragdesk.cli.project import DEFAULT_DB, build_conversation, load_project_config, open_db
from ragdesk.db.repository import Repository
from ragdesk.errors import NotFoundError, ProviderError, StorageError, ValidationError
from ragdesk.rag.llm_client import validate_api_key

logger = logging.getLogger(__name__)

console = Console()


def ask_cmd(
    message: Annotated[str, typer.Argument(help="The user's question.")],
    agent: Annotated[str, typer.Option("--agent", "-a", help="Agent id.")],
    session: Annotated[
        str | None,
        typer.Option("--session", help="Visitor session id (random if omitted)."),
    ] = None,
    conversation: Annotated[
        str | None,
        typer.Option("--conversation", "-c", help="Continue an existing conversation."),
    ] = None,
    db: Annotated[Path, typer.Option("--db", help="Path to .ragdesk.db.")] = DEFAULT_DB,
) -> None:
    """Ask an agent a question; the reply is grounded in its knowledge only."""
    if not message.strip():
        console.print(err_empty_input("Message"))
        raise typer.Exit(1)

    cfg = load_project_config(db)
    try:
        validate_api_key(cfg.provider)
    except EnvironmentError:
        console.print(err_no_api_key(cfg.provider.api_key_env or ""))
        raise typer.Exit(1)

    conn = open_db(db)
    try:
        orchestrator = build_conversation(Repository(conn), cfg)
        result = orchestrator.handle_turn(
            agent_id=agent,
            message=message,
            session_id=session or str(uuid.uuid4()),
            conversation_id=conversation,
        )
    except NotFoundError:
        if conversation and Repository(conn).get_agent(agent) is not None:
            console.print(err_conversation_not_found(conversation))
        else:
            console.print(err_agent_not_found(agent))
        raise typer.Exit(1)
    except ValidationError as exc:
        console.print(f"[red]Error:[/] {exc}")
        raise typer.Exit(1)
    except ProviderError:
        logger.exception("Chat turn failed for agent %s", agent)
        console.print(err_turn_failed())
        raise typer.Exit(1)
    except StorageError as exc:
        console.print(err_storage(str(exc)))
        raise typer.Exit(1)
    finally:
        conn.close()

    console.print(result.response, highlight=False, markup=False)
    console.print(f"\n[dim]conversation: {result.conversation_id}[/]")
