"""Ingestion pipeline for one knowledge source: chunk → embed → swap chunks.

Per-chunk embedding failures are logged and skipped. The run fails only when
no chunk could be embedded. Provider calls finish before the database is
touched, and the old chunk generation is replaced by the new one in a single
transaction.
"""

from __future__ import annotations

import json
import logging
import warnings
from dataclasses import dataclass, field

from ragdesk.db.models import Chunk, KnowledgeSource
from ragdesk.db.repository import Repository
from ragdesk.db.vectors import ensure_vec_table, model_to_slug
from ragdesk.errors import (
    NotFoundError,
    PartialIngestionFailure,
    ProviderError,
    StorageError,
    ValidationError,
)
from ragdesk.ingest.chunker import Chunker, estimate_tokens
from ragdesk.ingest.embedder import Embedder

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    """Outcome of a successful ingestion run.

    Attributes:
        source_id: The ingested knowledge source.
        chunks_created: Number of chunks stored.
        chunks_failed: Number of chunks skipped after an embedding failure.
        warnings: Human-readable notes on skipped chunks.
    """

    source_id: str
    chunks_created: int
    chunks_failed: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return self.chunks_failed > 0


class IngestionOrchestrator:
    """Coordinate chunking, embedding and persistence for knowledge sources."""

    def __init__(self, repo: Repository, embedder: Embedder, chunker: Chunker | None = None) -> None:
        self._repo = repo
        self._embedder = embedder
        self._chunker = chunker or Chunker()

    def ingest(self, source_id: str) -> IngestionResult:
        """Chunk, embed and store *source_id*.

        Raises:
            NotFoundError: The source does not exist.
            ValidationError: The source has no content.
            ProviderError: Every chunk failed to embed.
            StorageError: The chunk swap or a status update failed.
        """
        source = self._repo.get_source(source_id)
        if source is None:
            raise NotFoundError(f"Knowledge source not found: {source_id}")

        if not source.content or not source.content.strip():
            self._repo.set_source_status(
                source_id, "failed", error_message="Knowledge source has no content"
            )
            raise ValidationError(f"Knowledge source has no content: {source_id}")

        logger.info("Processing knowledge source %s (%s)", source_id, source.name)
        self._repo.set_source_status(source_id, "processing")

        texts = self._chunker.split(source.content)
        logger.info(
            "Created %d chunks (target: %d tokens, overlap: %d tokens)",
            len(texts),
            self._chunker.target_tokens,
            self._chunker.overlap_tokens,
        )

        embedded: list[tuple[Chunk, list[float]]] = []
        notes: list[str] = []
        last_error: ProviderError | None = None

        for i, text in enumerate(texts):
            try:
                vector = self._embedder.embed(text)
            except ProviderError as exc:
                logger.warning("Failed to embed chunk %d of source %s: %s", i, source_id, exc)
                notes.append(f"chunk {i}: {exc}")
                last_error = exc
                continue
            chunk = Chunk(
                source_id=source_id,
                chunk_index=len(embedded),
                content=text,
                metadata=_chunk_metadata(source, text, total_chunks=len(texts)),
            )
            embedded.append((chunk, vector))

        failed = len(texts) - len(embedded)

        if not embedded:
            detail = last_error.message if last_error else "no chunks produced"
            message = f"Failed to generate any embeddings ({failed} chunks): {detail}"
            self._repo.delete_chunks_by_source(source_id)
            self._repo.set_source_status(source_id, "failed", error_message=message)
            logger.error("Ingestion of source %s failed: %s", source_id, message)
            raise ProviderError(message, status_code=last_error.status_code if last_error else None)

        try:
            vec_table = ensure_vec_table(
                self._repo.conn, model_to_slug(self._embedder.model), self._embedder.dimensions
            )
            self._repo.replace_chunks(source_id, vec_table, embedded)
        except StorageError as exc:
            message = f"Failed to store chunks: {exc}"
            logger.error("Ingestion of source %s failed: %s", source_id, message)
            self._repo.set_source_status(source_id, "failed", error_message=message)
            raise
        self._repo.set_source_status(source_id, "completed", chunks_count=len(embedded))

        if failed:
            summary = (
                f"{failed} of {len(texts)} chunks of source {source_id} failed to embed; "
                f"{len(embedded)} stored"
            )
            logger.warning(summary)
            warnings.warn(summary, PartialIngestionFailure, stacklevel=2)

        logger.info("Stored %d chunks for source %s", len(embedded), source_id)
        return IngestionResult(
            source_id=source_id,
            chunks_created=len(embedded),
            chunks_failed=failed,
            warnings=notes,
        )


def _chunk_metadata(source: KnowledgeSource, text: str, total_chunks: int) -> str:
    return json.dumps(
        {
            "source_name": source.name,
            "source_type": source.type,
            "source_url": source.url,
            "chunk_length": len(text),
            "estimated_tokens": estimate_tokens(text),
            "total_chunks": total_chunks,
            "agent_id": source.agent_id,
        }
    )
