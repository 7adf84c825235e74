"""Tests for ragdesk source add."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from ragdesk.cli.main import app
from ragdesk.db.models import Agent

runner = CliRunner()


@pytest.fixture
def agent_id(open_repo) -> str:
    open_repo().add_agent(Agent(id="agent-1", name="Ada"))
    return "agent-1"


def _add(project, *args: str):
    return runner.invoke(
        app, ["source", "add", "--agent", "agent-1", "--name", "FAQ", *args, "--db", str(project)]
    )


def test_add_text_source_and_ingest(project, open_repo, agent_id, mock_embedding):
    result = _add(project, "--text", "Our opening hours are nine to five on weekdays.")

    assert result.exit_code == 0, result.output
    assert "Source 'FAQ' registered" in result.output
    assert "1 chunks stored" in result.output

    source = open_repo().list_sources("agent-1")[0]
    assert source.type == "text"
    assert source.status == "completed"
    assert source.chunks_count == 1
    mock_embedding.assert_called_once()
    assert mock_embedding.call_args.kwargs["model"] == "openai/text-embedding-3-small"


def test_add_file_source(project, open_repo, agent_id, mock_embedding, tmp_path):
    doc = tmp_path / "faq.txt"
    doc.write_text("Returns are accepted within thirty days.", encoding="utf-8")

    result = _add(project, "--file", str(doc), "--url", "https://example.com/faq")

    assert result.exit_code == 0, result.output
    source = open_repo().list_sources("agent-1")[0]
    assert source.type == "file"
    assert source.url == "https://example.com/faq"
    assert source.content == "Returns are accepted within thirty days."


def test_add_without_ingest(project, open_repo, agent_id, mock_embedding):
    result = _add(project, "--text", "Some content.", "--no-ingest")

    assert result.exit_code == 0
    assert "chunks stored" not in result.output
    mock_embedding.assert_not_called()
    assert open_repo().list_sources("agent-1")[0].status == "pending"


@pytest.mark.parametrize("args", [[], ["--text", "x", "--file", "README.md"]])
def test_add_requires_exactly_one_input(project, agent_id, args, tmp_path, monkeypatch):
    (tmp_path / "README.md").write_text("readme", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    result = _add(project, *args)
    assert result.exit_code == 1
    assert "exactly one of --text or --file" in result.output


def test_add_empty_text(project, open_repo, agent_id):
    result = _add(project, "--text", "   ")
    assert result.exit_code == 1
    assert "must not be empty" in result.output
    assert open_repo().list_sources() == []


def test_add_unknown_agent(project, open_repo):
    result = _add(project, "--text", "content")
    assert result.exit_code == 1
    assert "not found" in result.output
    assert open_repo().list_sources() == []


def test_add_embedding_failure_marks_source_failed(project, open_repo, agent_id):
    with patch("ragdesk.ingest.embedder.litellm.embedding", side_effect=Exception("provider down")):
        result = _add(project, "--text", "Our opening hours are nine to five.")

    assert result.exit_code == 1
    assert "Ingestion failed" in result.output
    source = open_repo().list_sources("agent-1")[0]
    assert source.status == "failed"
    assert "provider down" in source.error_message
    assert source.chunks_count == 0
