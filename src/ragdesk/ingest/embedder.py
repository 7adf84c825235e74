"""Embedding provider wrapper: truncation, one LiteLLM call, payload validation.

No retries happen here; retry/fallback policy belongs to the caller
(IngestionOrchestrator skips the chunk, Retriever falls back to keywords).
"""

from __future__ import annotations

import logging

import litellm

from ragdesk.config import EmbeddingCfg, ProviderCfg
from ragdesk.errors import ProviderError

logger = logging.getLogger(__name__)

litellm.suppress_debug_info = True


class Embedder:
    """Turn chunk or query text into a fixed-dimension embedding vector.

    Args:
        config: Embedding model, expected dimension and input character cap.
        provider: Endpoint, API key variable and retry count.
    """

    def __init__(self, config: EmbeddingCfg | None = None, provider: ProviderCfg | None = None) -> None:
        self.config = config or EmbeddingCfg()
        self.provider = provider or ProviderCfg()

    @property
    def model(self) -> str:
        return self.config.model

    @property
    def dimensions(self) -> int:
        return self.config.dimensions

    def embed(self, text: str) -> list[float]:
        """Embed *text* (stripped and truncated to ``max_chars``).

        Raises:
            ProviderError: On provider failure, a malformed response, or a
                vector whose length differs from the configured dimension.
        """
        clean = text.strip()[: self.config.max_chars]
        try:
            response = litellm.embedding(
                model=self.config.model,
                input=[clean],
                api_base=self.provider.api_base,
                api_key=self.provider.api_key,
                num_retries=self.provider.num_retries,
            )
        except Exception as exc:
            raise ProviderError(
                f"Embedding request failed: {_provider_message(exc)}",
                status_code=getattr(exc, "status_code", None),
            ) from exc

        try:
            vector = response.data[0]["embedding"]
        except (AttributeError, IndexError, KeyError, TypeError) as exc:
            raise ProviderError("Invalid embedding response: missing data[0].embedding") from exc

        if not isinstance(vector, list) or not vector:
            raise ProviderError("Invalid embedding response: empty embedding vector")
        if len(vector) != self.config.dimensions:
            raise ProviderError(
                f"Invalid embedding response: expected {self.config.dimensions} dimensions, "
                f"got {len(vector)}"
            )
        return [float(v) for v in vector]


def _provider_message(exc: Exception) -> str:
    return str(getattr(exc, "message", None) or exc)
