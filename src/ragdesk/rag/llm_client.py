"""LiteLLM completion wrapper with usage + cost accounting and API key validation.

Every chat completion in ragdesk routes through complete(). Retries are
off by default (provider.num_retries = 0) so a failure surfaces to the
caller as ProviderError on the first attempt.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import litellm

from ragdesk.config import ProviderCfg
from ragdesk.errors import ProviderError

logger = logging.getLogger(__name__)

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True


# ------------------------------------------------------------------
# Fallback pricing (USD per million tokens: input, output)
# ------------------------------------------------------------------

_PRICING_PER_MILLION: dict[str, tuple[float, float]] = {
    "anthropic/claude-3-haiku": (0.25, 1.25),
    "google/gemini-1.5-flash": (0.075, 0.30),
    "meta-llama/llama-3.1-70b-instruct": (0.35, 0.40),
    "mistralai/mistral-nemo": (0.13, 0.13),
    "deepseek/deepseek-chat": (0.14, 0.28),
}


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class Completion:
    """Result of one completion call.

    Attributes:
        content: Text of the first choice.
        model: Model string the request was made with.
        usage: Token usage reported by the provider (zeros if absent).
        cost: Estimated cost in USD.
    """

    content: str
    model: str
    usage: Usage = field(default_factory=Usage)
    cost: float = 0.0


def validate_api_key(provider: ProviderCfg) -> None:
    """Check that the API key env var named in *provider* is set.

    Raises:
        EnvironmentError: If ``api_key_env`` is configured but unset.
    """
    if not provider.api_key_env:
        return  # No key required (e.g. local endpoint)

    if provider.api_key is None:
        raise EnvironmentError(
            f"API key not found. Set the {provider.api_key_env} environment variable."
        )


def complete(
    messages: list[dict],
    *,
    model: str,
    temperature: float,
    max_tokens: int,
    provider: ProviderCfg | None = None,
) -> Completion:
    """Call litellm.completion() once and return content, usage and cost.

    Args:
        messages: OpenAI-style message list.
        model: LiteLLM model string (provider/model format).
        temperature: Sampling temperature.
        max_tokens: Maximum output tokens.
        provider: Endpoint, key variable and retry count.

    Raises:
        ProviderError: On API failure or a response without content.
    """
    provider = provider or ProviderCfg()
    try:
        response = litellm.completion(
            model=model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            api_base=provider.api_base,
            api_key=provider.api_key,
            num_retries=provider.num_retries,
        )
    except Exception as exc:
        raise ProviderError(
            f"Completion request failed: {getattr(exc, 'message', None) or exc}",
            status_code=getattr(exc, "status_code", None),
        ) from exc

    try:
        content = response.choices[0].message.content
    except (AttributeError, IndexError, TypeError) as exc:
        raise ProviderError("Invalid completion response: missing choices[0].message") from exc
    if content is None:
        raise ProviderError("Invalid completion response: empty message content")

    usage = _usage(response)
    return Completion(
        content=content,
        model=model,
        usage=usage,
        cost=estimate_cost(response, model, usage),
    )


def estimate_cost(response: object, model: str, usage: Usage) -> float:
    """Return the USD cost of *response*.

    Uses litellm.completion_cost() with a fallback pricing table for the
    default model catalogue. Returns 0.0 for unknown models.
    """
    try:
        cost = litellm.completion_cost(completion_response=response)
        if cost:
            return float(cost)
    except Exception:
        logger.debug("litellm has no price for %s; using fallback table", model)

    prices = _lookup_pricing(model)
    if prices is None:
        return 0.0
    input_price, output_price = prices
    return (
        usage.prompt_tokens * input_price + usage.completion_tokens * output_price
    ) / 1_000_000


def _lookup_pricing(model: str) -> tuple[float, float] | None:
    # Accept "openrouter/anthropic/claude-3-haiku" as well as "anthropic/claude-3-haiku".
    for key, prices in _PRICING_PER_MILLION.items():
        if model == key or model.endswith("/" + key):
            return prices
    return None


def _usage(response: object) -> Usage:
    raw = getattr(response, "usage", None)
    if raw is None:
        return Usage()
    prompt = int(getattr(raw, "prompt_tokens", 0) or 0)
    completion = int(getattr(raw, "completion_tokens", 0) or 0)
    total = int(getattr(raw, "total_tokens", 0) or (prompt + completion))
    return Usage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)
