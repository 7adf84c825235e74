"""Error taxonomy shared by the ingestion and chat pipelines.

Propagation:
  - ValidationError / NotFoundError: raised to the caller immediately.
  - ProviderError: absorbed per chunk during ingestion and per stage during
    retrieval; propagated from the completion call of a chat turn.
  - StorageError: wraps sqlite3 failures; the failed write is rolled back.
  - PartialIngestionFailure: a warning, never raised as an error.
"""

from __future__ import annotations


class RagdeskError(Exception):
    """Base class for all ragdesk errors."""


class ValidationError(RagdeskError, ValueError):
    """Required input is empty or missing (e.g. a source with no content)."""


class NotFoundError(RagdeskError, LookupError):
    """A referenced agent, knowledge source or conversation does not exist."""


class ProviderError(RagdeskError):
    """An embedding or completion provider call failed or returned a malformed payload.

    Attributes:
        message: Provider message (or a description of the malformed payload).
        status_code: HTTP status reported by the provider, if any.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        prefix = f"[{status_code}] " if status_code is not None else ""
        super().__init__(f"{prefix}{message}")


class StorageError(RagdeskError):
    """A persistence call against the record store failed."""


class PartialIngestionFailure(UserWarning):
    """Some chunks of a source failed to embed, but at least one survived."""
