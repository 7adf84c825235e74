"""ragdesk rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from ragdesk.cli.errors import err_no_db
    console.print(err_no_db(".ragdesk.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_api_key(env_var: str) -> str:
    """No API key in the environment variable named by provider.api_key_env."""
    return (
        f"[red]Error:[/] No API key found in ${env_var}.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_no_db(db_path: str = ".ragdesk.db") -> str:
    """No .ragdesk.db found."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  ragdesk init"
    )


def err_config(detail: str) -> str:
    """ragdesk.yaml or the global config is invalid."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {detail}\n"
        "  Fix ragdesk.yaml (or ~/.ragdesk/config.yaml) and retry."
    )


def err_agent_not_found(agent_id: str) -> str:
    return (
        f"[red]Error:[/] Agent '{agent_id}' not found.\n"
        "  Run:  ragdesk agent list  to see all agents."
    )


def err_source_not_found(source_id: str) -> str:
    return (
        f"[yellow]Source not found:[/] '{source_id}' is not in the knowledge base.\n"
        "  Run:  ragdesk status  to see all sources."
    )


def err_conversation_not_found(conversation_id: str) -> str:
    return (
        f"[red]Error:[/] Conversation '{conversation_id}' not found for this agent.\n"
        "  Omit --conversation to start a new one."
    )


def err_empty_input(what: str) -> str:
    return f"[red]Error:[/] {what} must not be empty."


def err_source_input() -> str:
    """Neither or both of --text / --file given to source add."""
    return (
        "[red]Error:[/] Provide exactly one of --text or --file.\n"
        "  Example:  ragdesk source add --agent <id> --name faq --file faq.txt"
    )


def err_ingestion_failed(detail: str) -> str:
    return (
        f"[red]✗ Ingestion failed:[/] {detail}\n"
        "  Check the provider settings in ragdesk.yaml, then run:  ragdesk ingest <source-id>"
    )


def err_turn_failed() -> str:
    """Completion provider failed. The underlying error is logged, not shown."""
    return (
        "[red]Error:[/] Sorry, something went wrong generating a reply. Please try again.\n"
        "  Run with --verbose for details."
    )


def err_storage(detail: str) -> str:
    return (
        f"[red]Error:[/] Database operation failed: {detail}\n"
        "  Check that the database is not locked by another process and retry."
    )


def warn_partial_ingestion(failed: int, total: int) -> str:
    return (
        f"[yellow]⚠[/] {failed} of {total} chunks failed to embed and were skipped.\n"
        "  Re-run  ragdesk ingest <source-id>  to retry the full source."
    )
