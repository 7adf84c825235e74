"""Shared CLI plumbing: database + config loading and pipeline wiring."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import typer
from rich.console import Console

from ragdesk.cli.errors import err_config, err_no_db, err_storage
from ragdesk.config import ConfigError, RagdeskConfig, load_config
from ragdesk.db.connection import Database
from ragdesk.db.repository import Repository
from ragdesk.db.schema import initialize
from ragdesk.errors import StorageError
from ragdesk.ingest.chunker import Chunker
from ragdesk.ingest.embedder import Embedder
from ragdesk.ingest.orchestrator import IngestionOrchestrator
from ragdesk.rag.conversation import ConversationOrchestrator
from ragdesk.rag.retriever import Retriever

console = Console()

DEFAULT_DB = Path(".ragdesk.db")


def open_db(db: Path) -> sqlite3.Connection:
    """Open an existing project database, or exit with an actionable error."""
    if not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)
    try:
        conn = Database(db).connect()
    except StorageError as exc:
        console.print(err_storage(str(exc)))
        raise typer.Exit(1) from exc
    initialize(conn)
    return conn


def load_project_config(db: Path) -> RagdeskConfig:
    """Load config from the directory holding *db*, exiting on ConfigError."""
    try:
        return load_config(db.resolve().parent)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc


def build_embedder(cfg: RagdeskConfig) -> Embedder:
    return Embedder(cfg.embedding, cfg.provider)


def build_ingestion(repo: Repository, cfg: RagdeskConfig) -> IngestionOrchestrator:
    chunker = Chunker(
        target_tokens=cfg.chunking.target_tokens,
        overlap_tokens=cfg.chunking.overlap_tokens,
        min_chunk_chars=cfg.chunking.min_chunk_chars,
    )
    return IngestionOrchestrator(repo, build_embedder(cfg), chunker)


def build_conversation(repo: Repository, cfg: RagdeskConfig) -> ConversationOrchestrator:
    retriever = Retriever(repo, build_embedder(cfg), cfg.retrieval)
    return ConversationOrchestrator(repo, retriever, cfg)
