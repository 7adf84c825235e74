"""Per-model sqlite-vec virtual table management."""

from __future__ import annotations

import re
import sqlite3

from ragdesk.errors import StorageError


def model_to_slug(model: str) -> str:
    """Convert a provider/model string to a valid table name suffix.

    Examples:
        "openai/text-embedding-3-small" -> "openai_text_embedding_3_small"
    """
    return re.sub(r"[^a-z0-9]", "_", model.lower())


def vec_table_name(model_slug: str) -> str:
    """Return the full vec table name for a model slug."""
    return f"vec_chunks_{model_slug}"


def vec_table_for_model(model: str) -> str:
    """Return the vec table name used for embeddings produced by *model*."""
    return vec_table_name(model_to_slug(model))


def vec_table_exists(conn: sqlite3.Connection, table: str) -> bool:
    return (
        conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
        ).fetchone()
        is not None
    )


def ensure_vec_table(conn: sqlite3.Connection, model_slug: str, dimensions: int) -> str:
    """Create vec_chunks_{model_slug} virtual table if it doesn't already exist.

    The dimension is fixed at creation time; every embedding stored for this
    model must have exactly *dimensions* floats.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        model_slug: Sanitized model identifier (use model_to_slug() to generate).
        dimensions: Embedding vector dimensions (e.g. 1536 for text-embedding-3-small).

    Returns:
        The table name (vec_chunks_{model_slug}).

    Raises:
        StorageError: The table could not be created.
    """
    if not re.fullmatch(r"[a-z0-9_]+", model_slug):
        raise ValueError(
            f"Invalid model_slug '{model_slug}' — use model_to_slug() to sanitize."
        )
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    table = vec_table_name(model_slug)
    try:
        if not vec_table_exists(conn, table):
            conn.execute(
                f"CREATE VIRTUAL TABLE {table} USING vec0(embedding float[{dimensions}])"
            )
            conn.commit()
    except sqlite3.Error as exc:
        raise StorageError(f"Could not create vector table {table}: {exc}") from exc

    return table


def cosine_similarity_from_distance(distance: float) -> float:
    """Map a sqlite-vec cosine distance (0..2) onto a similarity in [0, 1]."""
    return max(0.0, min(1.0, 1.0 - distance))
