"""ragdesk configuration loader.

Priority (high → low):
  1. CLI flags           (handled at the call site, not in this module)
  2. Environment variables  (RAGDESK_EMBEDDING_MODEL, RAGDESK_COMPLETION_MODEL,
                             RAGDESK_API_BASE)
  3. Per-project ragdesk.yaml  (next to .ragdesk.db)
  4. Global ~/.ragdesk/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; provider.api_key_env names the
environment variable that holds the key instead.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".ragdesk"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "ragdesk.yaml"

# Fields that suggest an API key are forbidden in global config.
# Does NOT match legitimate keys like max_tokens, target_tokens or api_key_env.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)$"  # api_key, api-key, api_secret, apikey
    r"|_token$"                  # access_token, auth_token (suffix)
    r"|^token$"                  # exactly "token"
    r"|_secret$"                 # client_secret (suffix)
    r"|^secret$"                 # exactly "secret"
    r"|passw(?:ord|d)"           # password, passwd
    r"|credential",              # credential, credentials
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["provider", "embedding", "completion", "chunking", "retrieval", "conversation"]
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class ProviderCfg:
    """Provider endpoint shared by embedding and completion calls (ragdesk.yaml: provider:).

    Attributes:
        api_base: Base URL of the OpenAI-compatible provider endpoint.
        api_key_env: Name of the environment variable holding the API key.
        num_retries: Retries per provider call. 0 means a failure surfaces
            immediately to the caller.
    """

    api_base: str | None = "https://openrouter.ai/api/v1"
    api_key_env: str | None = "OPENROUTER_API_KEY"
    num_retries: int = 0

    @property
    def api_key(self) -> str | None:
        """Resolve the API key from the environment (never stored in config)."""
        if not self.api_key_env:
            return None
        return os.environ.get(self.api_key_env) or None


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (ragdesk.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    max_chars: int = 32_000


@dataclass
class CompletionCfg:
    """Chat completion defaults, used when an agent leaves them unset (ragdesk.yaml: completion:)."""

    model: str = "openrouter/anthropic/claude-3-haiku"
    temperature: float = 0.7
    max_tokens: int = 100


@dataclass
class ChunkingCfg:
    """Chunk budget in estimated tokens (ragdesk.yaml: chunking:)."""

    target_tokens: int = 800
    overlap_tokens: int = 150
    min_chunk_chars: int = 100


@dataclass
class RetrievalCfg:
    """Staged retrieval configuration (ragdesk.yaml: retrieval:)."""

    similarity_threshold: float = 0.5
    match_count: int = 3
    keyword_candidates: int = 20
    keyword_results: int = 3
    raw_source_limit: int = 2


@dataclass
class ConversationCfg:
    """Chat turn configuration (ragdesk.yaml: conversation:)."""

    history_window: int = 10


@dataclass
class RagdeskConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    provider: ProviderCfg = field(default_factory=ProviderCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    completion: CompletionCfg = field(default_factory=CompletionCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    conversation: ConversationCfg = field(default_factory=ConversationCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: RagdeskConfig) -> None:
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")
    if cfg.chunking.target_tokens < 1:
        raise ConfigError(
            f"chunking.target_tokens must be >= 1, got {cfg.chunking.target_tokens}"
        )
    if not 0 <= cfg.chunking.overlap_tokens < cfg.chunking.target_tokens:
        raise ConfigError(
            "chunking.overlap_tokens must be >= 0 and smaller than chunking.target_tokens"
        )
    if not 0.0 <= cfg.retrieval.similarity_threshold <= 1.0:
        raise ConfigError(
            "retrieval.similarity_threshold must be in [0, 1], "
            f"got {cfg.retrieval.similarity_threshold}"
        )
    if cfg.conversation.history_window < 0:
        raise ConfigError(
            f"conversation.history_window must be >= 0, got {cfg.conversation.history_window}"
        )


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> RagdeskConfig:
    """Build a *RagdeskConfig* from a merged raw YAML dict."""
    cfg = RagdeskConfig()

    if "provider" in data:
        p = data["provider"] or {}
        cfg.provider = ProviderCfg(
            api_base=p.get("api_base", cfg.provider.api_base),
            api_key_env=p.get("api_key_env", cfg.provider.api_key_env),
            num_retries=int(p.get("num_retries", cfg.provider.num_retries)),
        )

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
            max_chars=int(e.get("max_chars", cfg.embedding.max_chars)),
        )

    if "completion" in data:
        c = data["completion"] or {}
        cfg.completion = CompletionCfg(
            model=str(c.get("model", cfg.completion.model)),
            temperature=float(c.get("temperature", cfg.completion.temperature)),
            max_tokens=int(c.get("max_tokens", cfg.completion.max_tokens)),
        )

    if "chunking" in data:
        ch = data["chunking"] or {}
        cfg.chunking = ChunkingCfg(
            target_tokens=int(ch.get("target_tokens", cfg.chunking.target_tokens)),
            overlap_tokens=int(ch.get("overlap_tokens", cfg.chunking.overlap_tokens)),
            min_chunk_chars=int(ch.get("min_chunk_chars", cfg.chunking.min_chunk_chars)),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        cfg.retrieval = RetrievalCfg(
            similarity_threshold=float(
                r.get("similarity_threshold", cfg.retrieval.similarity_threshold)
            ),
            match_count=int(r.get("match_count", cfg.retrieval.match_count)),
            keyword_candidates=int(
                r.get("keyword_candidates", cfg.retrieval.keyword_candidates)
            ),
            keyword_results=int(r.get("keyword_results", cfg.retrieval.keyword_results)),
            raw_source_limit=int(r.get("raw_source_limit", cfg.retrieval.raw_source_limit)),
        )

    if "conversation" in data:
        cv = data["conversation"] or {}
        cfg.conversation = ConversationCfg(
            history_window=int(cv.get("history_window", cfg.conversation.history_window)),
        )

    return cfg


def _apply_env_overrides(cfg: RagdeskConfig) -> RagdeskConfig:
    """Apply RAGDESK_* environment variable overrides."""
    if model := os.environ.get("RAGDESK_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if model := os.environ.get("RAGDESK_COMPLETION_MODEL"):
        cfg.completion.model = model
    if api_base := os.environ.get("RAGDESK_API_BASE"):
        cfg.provider.api_base = api_base
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> RagdeskConfig:
    """Load and return a merged *RagdeskConfig*.

    Applies layers in order: global → per-project → env vars.

    Args:
        project_dir: Directory to search for *ragdesk.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *RagdeskConfig* with env var overrides applied.

    Raises:
        ConfigError: If global config contains API-key-like fields, or a
            value is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg


def ensure_project_config(project_dir: Path) -> Path:
    """Write a commented default ``ragdesk.yaml`` into *project_dir* if missing.

    Returns:
        Path to the project config file.
    """
    target = project_dir / _PROJECT_CONFIG_NAME
    if not target.exists():
        content = (
            "# ragdesk project configuration.\n"
            "# NEVER store API keys here — set the variable named by provider.api_key_env:\n"
            "#   export OPENROUTER_API_KEY=sk-or-...\n"
            "\n"
            "provider:\n"
            "  api_base: https://openrouter.ai/api/v1\n"
            "  api_key_env: OPENROUTER_API_KEY\n"
            "\n"
            "embedding:\n"
            "  model: openai/text-embedding-3-small\n"
            "  dimensions: 1536\n"
            "\n"
            "completion:\n"
            "  model: openrouter/anthropic/claude-3-haiku\n"
            "  temperature: 0.7\n"
            "  max_tokens: 100\n"
        )
        target.write_text(content, encoding="utf-8")
    return target
