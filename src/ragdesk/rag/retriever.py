"""Staged retriever: vector search → keyword scoring → raw source text.

Stages run in a fixed order. Each stage either answers with results or
returns None to hand over to the next one:

  1. sources      agent has no knowledge sources → [] (stage "none")
  2. embed_query  embed the query; a ProviderError skips the vector stage
  3. vector       cosine search over the agent's chunks, similarity >= threshold
  4. keyword      score up to N chunks: +100 full-query substring,
                  +10 per query token (> 2 chars) contained
  5. raw_source   first sources with non-empty raw content, returned whole

Retrieval never raises for provider or search failures; it degrades.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from ragdesk.config import RetrievalCfg
from ragdesk.db.models import Chunk, KnowledgeSource
from ragdesk.db.repository import Repository
from ragdesk.db.vectors import vec_table_exists, vec_table_for_model
from ragdesk.errors import ProviderError, StorageError
from ragdesk.ingest.embedder import Embedder

logger = logging.getLogger(__name__)

DEFAULT_LABEL = "Knowledge Base"

_PHRASE_SCORE = 100
_TOKEN_SCORE = 10
_MIN_TOKEN_LEN = 3


@dataclass
class RetrievalResult:
    """One piece of retrieved context.

    Attributes:
        content: Chunk text (or whole source text for raw-source results).
        source_label: Human-readable source name shown in the prompt.
        similarity: Cosine similarity in [0, 1]; vector hits only.
    """

    content: str
    source_label: str
    similarity: float | None = None


@dataclass
class RetrievalOutcome:
    results: list[RetrievalResult] = field(default_factory=list)
    stage: str = "none"


@dataclass
class _Pass:
    """Mutable state shared by the stages of one retrieve() call."""

    agent_id: str
    query: str
    sources: list[KnowledgeSource] = field(default_factory=list)
    embedding: list[float] | None = None

    @property
    def source_ids(self) -> list[str]:
        return [s.id for s in self.sources]

    def label_for(self, chunk: Chunk) -> str:
        name = chunk.metadata_dict.get("source_name")
        if name:
            return str(name)
        for source in self.sources:
            if source.id == chunk.source_id and source.name:
                return source.name
        return DEFAULT_LABEL


class Retriever:
    """Find the context for a user query within one agent's knowledge."""

    def __init__(
        self,
        repo: Repository,
        embedder: Embedder,
        config: RetrievalCfg | None = None,
    ) -> None:
        self._repo = repo
        self._embedder = embedder
        self._config = config or RetrievalCfg()
        self._stages: list[tuple[str, Callable[[_Pass], list[RetrievalResult] | None]]] = [
            ("sources", self._load_sources),
            ("embed_query", self._embed_query),
            ("vector", self._vector),
            ("keyword", self._keyword),
            ("raw_source", self._raw_source),
        ]

    def retrieve(self, agent_id: str, query: str) -> RetrievalOutcome:
        """Run the stages in order and return the first stage's answer."""
        state = _Pass(agent_id=agent_id, query=query)
        for name, stage in self._stages:
            results = stage(state)
            if results is None:
                continue
            stage_name = name if results else "none"
            logger.info(
                "Retrieved %d results for agent %s via %s stage",
                len(results),
                agent_id,
                stage_name,
            )
            return RetrievalOutcome(results=results, stage=stage_name)

        logger.info("No context found for agent %s", agent_id)
        return RetrievalOutcome()

    def retrieve_results(self, agent_id: str, query: str) -> list[RetrievalResult]:
        return self.retrieve(agent_id, query).results

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _load_sources(self, state: _Pass) -> list[RetrievalResult] | None:
        state.sources = self._repo.list_sources(state.agent_id)
        if not state.sources:
            return []
        return None

    def _embed_query(self, state: _Pass) -> list[RetrievalResult] | None:
        try:
            state.embedding = self._embedder.embed(state.query)
        except ProviderError as exc:
            logger.warning("Query embedding failed, falling back to keyword search: %s", exc)
        return None

    def _vector(self, state: _Pass) -> list[RetrievalResult] | None:
        if state.embedding is None:
            return None
        vec_table = vec_table_for_model(self._embedder.model)
        try:
            if not vec_table_exists(self._repo.conn, vec_table):
                logger.warning("No embeddings stored for model %s", self._embedder.model)
                return None
            matches = self._repo.match_chunks(
                vec_table,
                state.embedding,
                state.source_ids,
                threshold=self._config.similarity_threshold,
                limit=self._config.match_count,
            )
        except StorageError as exc:
            logger.warning("Vector search failed, falling back to keyword search: %s", exc)
            return None
        if not matches:
            return None
        matches.sort(key=lambda m: m[1], reverse=True)
        return [
            RetrievalResult(content=chunk.content, source_label=state.label_for(chunk), similarity=sim)
            for chunk, sim in matches[: self._config.match_count]
        ]

    def _keyword(self, state: _Pass) -> list[RetrievalResult] | None:
        try:
            candidates = self._repo.list_chunks_for_sources(
                state.source_ids, limit=self._config.keyword_candidates
            )
        except StorageError as exc:
            logger.warning("Keyword search failed: %s", exc)
            return None

        scored = [(chunk, keyword_score(state.query, chunk.content)) for chunk in candidates]
        scored = [(chunk, score) for chunk, score in scored if score > 0]
        if not scored:
            return None
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return [
            RetrievalResult(content=chunk.content, source_label=state.label_for(chunk))
            for chunk, _ in scored[: self._config.keyword_results]
        ]

    def _raw_source(self, state: _Pass) -> list[RetrievalResult] | None:
        raw = [s for s in state.sources if s.content and s.content.strip()]
        if not raw:
            return None
        return [
            RetrievalResult(content=s.content, source_label=s.name or DEFAULT_LABEL)
            for s in raw[: self._config.raw_source_limit]
        ]


def keyword_score(query: str, content: str) -> int:
    """Score *content* against *query*.

    +100 when the whole lowercase query occurs in the content, plus +10 for
    each whitespace-separated query token longer than two
    characters that occurs in it.
    """
    needle = query.lower().strip()
    haystack = content.lower()
    if not needle:
        return 0
    score = _PHRASE_SCORE if needle in haystack else 0
    for token in needle.split():
        if len(token) >= _MIN_TOKEN_LEN and token in haystack:
            score += _TOKEN_SCORE
    return score
