"""Tests for IngestionOrchestrator: chunk → embed → transactional swap."""

from __future__ import annotations

import warnings

import pytest

from ragdesk.db.vectors import ensure_vec_table, model_to_slug, vec_table_for_model
from ragdesk.errors import (
    NotFoundError,
    PartialIngestionFailure,
    ProviderError,
    StorageError,
    ValidationError,
)
from ragdesk.ingest.chunker import Chunker
from ragdesk.ingest.orchestrator import IngestionOrchestrator

_MODEL = "test/embed"


class FakeEmbedder:
    """Deterministic 3-dim embedder; fails for texts containing a marker."""

    model = _MODEL
    dimensions = 3

    def __init__(self, fail_marker: str | None = None, fail_all: bool = False) -> None:
        self.fail_marker = fail_marker
        self.fail_all = fail_all
        self.calls: list[str] = []

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail_all or (self.fail_marker and self.fail_marker in text):
            raise ProviderError("rate limited", status_code=429)
        return [1.0, float(len(self.calls)), 0.0]


def _paragraph(tag: str) -> str:
    """Paragraph of roughly 60 estimated tokens carrying *tag*."""
    return f"Section {tag} begins here. " + ("Details about " + tag + ". ") * 10


def _multi_paragraph_content(*tags: str) -> str:
    return "\n\n".join(_paragraph(t) for t in tags)


def _small_chunker() -> Chunker:
    # Two paragraphs never fit in 80 tokens, so each paragraph is its own chunk.
    return Chunker(target_tokens=80, overlap_tokens=0)


def _vec_rows(conn) -> int:
    return conn.execute(f"SELECT COUNT(*) FROM {vec_table_for_model(_MODEL)}").fetchone()[0]


# ------------------------------------------------------------------
# Validation
# ------------------------------------------------------------------


def test_missing_source_raises_not_found(repo):
    orchestrator = IngestionOrchestrator(repo, FakeEmbedder())
    with pytest.raises(NotFoundError):
        orchestrator.ingest("nope")


@pytest.mark.parametrize("content", [None, "", "   \n\n  "])
def test_empty_content_raises_validation_error(repo, agent, make_source, content):
    make_source(content=content)
    embedder = FakeEmbedder()
    with pytest.raises(ValidationError):
        IngestionOrchestrator(repo, embedder).ingest("src-1")

    source = repo.get_source("src-1")
    assert source.status == "failed"
    assert source.error_message
    assert embedder.calls == []


# ------------------------------------------------------------------
# Happy path
# ------------------------------------------------------------------


def test_ingest_stores_chunks_and_completes(repo, agent, make_source, tmp_db):
    make_source(content=_multi_paragraph_content("alpha", "beta", "gamma"))
    result = IngestionOrchestrator(repo, FakeEmbedder(), _small_chunker()).ingest("src-1")

    assert result.source_id == "src-1"
    assert result.chunks_created == 3
    assert result.chunks_failed == 0
    assert result.warnings == []
    assert not result.partial

    source = repo.get_source("src-1")
    assert source.status == "completed"
    assert source.chunks_count == 3
    assert source.processed_at is not None
    assert source.error_message is None

    chunks = repo.list_chunks_by_source("src-1")
    assert [c.chunk_index for c in chunks] == [0, 1, 2]
    assert _vec_rows(tmp_db) == 3


def test_chunk_metadata(repo, agent, make_source):
    make_source(content=_multi_paragraph_content("alpha", "beta"))
    IngestionOrchestrator(repo, FakeEmbedder(), _small_chunker()).ingest("src-1")

    meta = repo.list_chunks_by_source("src-1")[0].metadata_dict
    assert meta["source_name"] == "FAQ"
    assert meta["source_type"] == "text"
    assert meta["source_url"] is None
    assert meta["total_chunks"] == 2
    assert meta["agent_id"] == "agent-1"
    assert meta["chunk_length"] > 0
    assert meta["estimated_tokens"] == -(-meta["chunk_length"] // 4)


def test_single_short_source(repo, agent, make_source):
    make_source(content="Para A.\n\nPara B.")
    result = IngestionOrchestrator(repo, FakeEmbedder()).ingest("src-1")
    assert result.chunks_created == 1
    assert repo.list_chunks_by_source("src-1")[0].content == "Para A.\n\nPara B."


def test_reingest_replaces_previous_generation(repo, agent, make_source, tmp_db):
    make_source(content=_multi_paragraph_content("alpha", "beta", "gamma"))
    orchestrator = IngestionOrchestrator(repo, FakeEmbedder(), _small_chunker())
    orchestrator.ingest("src-1")
    orchestrator.ingest("src-1")

    assert repo.count_chunks_by_source("src-1") == 3
    assert _vec_rows(tmp_db) == 3


# ------------------------------------------------------------------
# Partial + total failure
# ------------------------------------------------------------------


def test_partial_failure_skips_chunk_and_warns(repo, agent, make_source):
    make_source(content=_multi_paragraph_content("alpha", "beta", "gamma"))
    orchestrator = IngestionOrchestrator(repo, FakeEmbedder(fail_marker="beta"), _small_chunker())

    with pytest.warns(PartialIngestionFailure):
        result = orchestrator.ingest("src-1")

    assert result.chunks_created == 2
    assert result.chunks_failed == 1
    assert result.partial
    assert len(result.warnings) == 1

    chunks = repo.list_chunks_by_source("src-1")
    assert [c.chunk_index for c in chunks] == [0, 1]
    assert "alpha" in chunks[0].content
    assert "gamma" in chunks[1].content
    assert all(c.metadata_dict["total_chunks"] == 3 for c in chunks)
    assert repo.get_source("src-1").status == "completed"


def test_partial_failure_is_logged(repo, agent, make_source, caplog):
    make_source(content=_multi_paragraph_content("alpha", "beta"))
    orchestrator = IngestionOrchestrator(repo, FakeEmbedder(fail_marker="alpha"), _small_chunker())
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", PartialIngestionFailure)
        with caplog.at_level("WARNING", logger="ragdesk.ingest.orchestrator"):
            orchestrator.ingest("src-1")
    assert "Failed to embed chunk 0" in caplog.text


def test_total_failure_marks_failed_and_raises(repo, agent, make_source, tmp_db):
    make_source(content=_multi_paragraph_content("alpha", "beta"))
    orchestrator = IngestionOrchestrator(repo, FakeEmbedder(), _small_chunker())
    orchestrator.ingest("src-1")

    failing = IngestionOrchestrator(repo, FakeEmbedder(fail_all=True), _small_chunker())
    with pytest.raises(ProviderError) as exc_info:
        failing.ingest("src-1")

    assert exc_info.value.status_code == 429
    assert "rate limited" in exc_info.value.message
    source = repo.get_source("src-1")
    assert source.status == "failed"
    assert "2 chunks" in source.error_message
    assert repo.count_chunks_by_source("src-1") == 0
    assert _vec_rows(tmp_db) == 0


def test_failure_does_not_touch_other_sources(repo, agent, make_source):
    make_source("s1", content=_multi_paragraph_content("alpha"))
    make_source("s2", content=_multi_paragraph_content("beta"))
    IngestionOrchestrator(repo, FakeEmbedder(), _small_chunker()).ingest("s1")

    with pytest.raises(ProviderError):
        IngestionOrchestrator(repo, FakeEmbedder(fail_all=True), _small_chunker()).ingest("s2")

    assert repo.count_chunks_by_source("s1") == 1
    assert repo.get_source("s1").status == "completed"


# ------------------------------------------------------------------
# Storage failure during the chunk swap
# ------------------------------------------------------------------


def test_vector_dimension_mismatch_marks_failed(repo, agent, make_source, tmp_db):
    # Table created earlier for the same model with a different dimension.
    ensure_vec_table(tmp_db, model_to_slug(_MODEL), 4)
    make_source(content=_multi_paragraph_content("alpha", "beta"))

    with pytest.raises(StorageError):
        IngestionOrchestrator(repo, FakeEmbedder(), _small_chunker()).ingest("src-1")

    source = repo.get_source("src-1")
    assert source.status == "failed"
    assert source.error_message.startswith("Failed to store chunks")
    assert repo.count_chunks_by_source("src-1") == 0


def test_swap_failure_keeps_previous_generation(repo, agent, make_source, monkeypatch):
    make_source(content=_multi_paragraph_content("alpha", "beta"))
    orchestrator = IngestionOrchestrator(repo, FakeEmbedder(), _small_chunker())
    orchestrator.ingest("src-1")

    def _locked(*args, **kwargs):
        raise StorageError("Database write failed: database is locked")

    monkeypatch.setattr(repo, "replace_chunks", _locked)
    with pytest.raises(StorageError):
        orchestrator.ingest("src-1")

    source = repo.get_source("src-1")
    assert source.status == "failed"
    assert "database is locked" in source.error_message
    assert repo.count_chunks_by_source("src-1") == 2


def test_vec_table_creation_failure_marks_failed(repo, agent, make_source, monkeypatch):
    make_source(content=_multi_paragraph_content("alpha"))

    def _broken(*args, **kwargs):
        raise StorageError("Could not create vector table vec_chunks_test_embed: disk I/O error")

    monkeypatch.setattr("ragdesk.ingest.orchestrator.ensure_vec_table", _broken)
    with pytest.raises(StorageError):
        IngestionOrchestrator(repo, FakeEmbedder(), _small_chunker()).ingest("src-1")

    assert repo.get_source("src-1").status == "failed"
