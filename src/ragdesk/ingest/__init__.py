"""ragdesk ingest pipeline: chunker, embedder, ingestion orchestrator."""

from ragdesk.ingest.chunker import Chunker, estimate_tokens
from ragdesk.ingest.embedder import Embedder
from ragdesk.ingest.orchestrator import IngestionOrchestrator, IngestionResult

__all__ = [
    "Chunker",
    "Embedder",
    "IngestionOrchestrator",
    "IngestionResult",
    "estimate_tokens",
]
