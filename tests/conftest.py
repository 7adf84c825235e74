"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import yaml
from typer.testing import CliRunner

from ragdesk.cli.main import app
from ragdesk.db.connection import Database
from ragdesk.db.models import Agent, KnowledgeSource
from ragdesk.db.repository import Repository
from ragdesk.db.schema import initialize


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".ragdesk.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db) -> Repository:
    return Repository(tmp_db)


@pytest.fixture
def agent(repo) -> Agent:
    """A stored agent with no knowledge sources."""
    a = Agent(id="agent-1", name="Ada", tone="friendly")
    repo.add_agent(a)
    return a


@pytest.fixture
def make_source(repo):
    """Factory storing a knowledge source for the test agent."""

    def _make(
        source_id: str = "src-1",
        name: str = "FAQ",
        content: str | None = "Our opening hours are nine to five on weekdays.",
        agent_id: str = "agent-1",
    ) -> KnowledgeSource:
        source = KnowledgeSource(id=source_id, agent_id=agent_id, name=name, content=content)
        repo.add_source(source)
        return source

    return _make


# ------------------------------------------------------------------
# CLI fixtures
# ------------------------------------------------------------------


@pytest.fixture
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run ``ragdesk init`` in tmp_path with 3-dim embeddings; return the db path."""
    for var in ("RAGDESK_EMBEDDING_MODEL", "RAGDESK_COMPLETION_MODEL", "RAGDESK_API_BASE"):
        monkeypatch.delenv(var, raising=False)
    result = CliRunner().invoke(app, ["init", str(tmp_path)])
    assert result.exit_code == 0, result.output

    cfg_path = tmp_path / "ragdesk.yaml"
    data = yaml.safe_load(cfg_path.read_text(encoding="utf-8"))
    data["embedding"]["dimensions"] = 3
    cfg_path.write_text(yaml.dump(data), encoding="utf-8")
    return tmp_path / ".ragdesk.db"


@pytest.fixture
def open_repo(project: Path):
    """Factory opening a Repository on the project db (closed after the test)."""
    conns = []

    def _open() -> Repository:
        conn = Database(project).connect()
        conns.append(conn)
        return Repository(conn)

    yield _open
    for conn in conns:
        conn.close()


@pytest.fixture
def mock_embedding():
    """Patch litellm.embedding as called by the Embedder; always returns [1, 0, 0]."""
    response = MagicMock()
    response.data = [{"embedding": [1.0, 0.0, 0.0]}]
    with patch("ragdesk.ingest.embedder.litellm.embedding", return_value=response) as mock_embed:
        yield mock_embed
