"""Repository pattern for all ragdesk database operations.

Single interface for: agents, knowledge sources, chunks + vec embeddings,
the similarity search primitive, conversations and messages.
Vec tables are model-managed (ensure_vec_table); repository handles read + write.
Every sqlite3 failure surfaces as StorageError; failed writes are rolled back.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager

from ragdesk.db.models import Agent, Chunk, Conversation, KnowledgeSource, Message
from ragdesk.db.vectors import cosine_similarity_from_distance
from ragdesk.errors import StorageError

_NOW = "strftime('%Y-%m-%dT%H:%M:%f', 'now')"

_SOURCE_COLS = (
    "id, agent_id, name, type, url, content, status, error_message, "
    "chunks_count, processed_at, created_at"
)
_CHUNK_COLS = "rowid, source_id, chunk_index, content, metadata, created_at"
_CONVERSATION_COLS = (
    "id, agent_id, session_id, status, message_count, last_message_at, created_at"
)
_MESSAGE_COLS = "id, conversation_id, role, content, metadata, created_at"


class Repository:
    """Data access layer for all ragdesk records.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see ragdesk.db.schema.initialize).
        """
        self._conn = conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Transaction helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit on success; roll back and raise StorageError on sqlite failure."""
        try:
            yield self._conn
            self._conn.commit()
        except sqlite3.Error as exc:
            self._conn.rollback()
            raise StorageError(f"Database write failed: {exc}") from exc
        except Exception:
            self._conn.rollback()
            raise

    def _fetchall(self, sql: str, params: Sequence = ()) -> list[sqlite3.Row]:
        try:
            return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Database read failed: {exc}") from exc

    def _fetchone(self, sql: str, params: Sequence = ()) -> sqlite3.Row | None:
        try:
            return self._conn.execute(sql, params).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Database read failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    def add_agent(self, agent: Agent) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO agents (id, name, tone, custom_instructions, model, temperature, max_tokens)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    agent.id,
                    agent.name,
                    agent.tone,
                    agent.custom_instructions,
                    agent.model,
                    agent.temperature,
                    agent.max_tokens,
                ),
            )

    def get_agent(self, agent_id: str) -> Agent | None:
        row = self._fetchone(
            """
            SELECT id, name, tone, custom_instructions, model, temperature, max_tokens, created_at
            FROM agents WHERE id = ?
            """,
            (agent_id,),
        )
        return _row_to_agent(row) if row else None

    def list_agents(self) -> list[Agent]:
        rows = self._fetchall(
            """
            SELECT id, name, tone, custom_instructions, model, temperature, max_tokens, created_at
            FROM agents ORDER BY created_at
            """
        )
        return [_row_to_agent(r) for r in rows]

    # ------------------------------------------------------------------
    # Knowledge sources
    # ------------------------------------------------------------------

    def add_source(self, source: KnowledgeSource) -> None:
        """Insert a new knowledge source record.

        Args:
            source: KnowledgeSource instance to persist.
        """
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO knowledge_sources (id, agent_id, name, type, url, content, status)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    source.id,
                    source.agent_id,
                    source.name,
                    source.type,
                    source.url,
                    source.content,
                    source.status,
                ),
            )

    def get_source(self, source_id: str) -> KnowledgeSource | None:
        """Return a knowledge source by ID, or None if not found."""
        row = self._fetchone(
            f"SELECT {_SOURCE_COLS} FROM knowledge_sources WHERE id = ?", (source_id,)
        )
        return _row_to_source(row) if row else None

    def list_sources(self, agent_id: str | None = None) -> list[KnowledgeSource]:
        """Return knowledge sources, newest first.

        Args:
            agent_id: Restrict to one agent's sources; None lists every source.
        """
        if agent_id is None:
            rows = self._fetchall(
                f"SELECT {_SOURCE_COLS} FROM knowledge_sources "
                "ORDER BY created_at DESC, rowid DESC"
            )
        else:
            rows = self._fetchall(
                f"SELECT {_SOURCE_COLS} FROM knowledge_sources WHERE agent_id = ? "
                "ORDER BY created_at DESC, rowid DESC",
                (agent_id,),
            )
        return [_row_to_source(r) for r in rows]

    def set_source_status(
        self,
        source_id: str,
        status: str,
        *,
        error_message: str | None = None,
        chunks_count: int | None = None,
    ) -> None:
        """Update processing status. 'completed' also stamps processed_at."""
        assignments = ["status = ?", "error_message = ?"]
        params: list = [status, error_message]
        if chunks_count is not None:
            assignments.append("chunks_count = ?")
            params.append(chunks_count)
        if status == "completed":
            assignments.append(f"processed_at = {_NOW}")
        params.append(source_id)
        with self._transaction() as conn:
            conn.execute(
                f"UPDATE knowledge_sources SET {', '.join(assignments)} WHERE id = ?",
                params,
            )

    def delete_source(self, source_id: str) -> None:
        """Delete a source together with its chunks and embeddings."""
        with self._transaction() as conn:
            self._delete_chunk_rows(conn, source_id)
            conn.execute("DELETE FROM knowledge_sources WHERE id = ?", (source_id,))

    # ------------------------------------------------------------------
    # Chunks + vec embeddings
    # ------------------------------------------------------------------

    def replace_chunks(
        self,
        source_id: str,
        vec_table: str,
        embedded: Sequence[tuple[Chunk, list[float]]],
    ) -> list[int]:
        """Swap a source's chunk generation in one transaction.

        Old chunks and their embeddings are deleted and *embedded* inserted
        atomically, so readers see either the old or the new generation.

        Returns:
            Rowids of the inserted chunks, in input order.
        """
        rowids: list[int] = []
        with self._transaction() as conn:
            self._delete_chunk_rows(conn, source_id)
            for chunk, embedding in embedded:
                cur = conn.execute(
                    """
                    INSERT INTO knowledge_chunks (source_id, chunk_index, content, metadata)
                    VALUES (?, ?, ?, ?)
                    """,
                    (source_id, chunk.chunk_index, chunk.content, chunk.metadata),
                )
                rowid = cur.lastrowid
                conn.execute(
                    f"INSERT INTO {vec_table}(rowid, embedding) VALUES (?, ?)",
                    (rowid, json.dumps(embedding)),
                )
                chunk.rowid = rowid
                rowids.append(rowid)
        return rowids

    def delete_chunks_by_source(self, source_id: str) -> None:
        """Delete chunks and their embeddings (every vec table) for a source."""
        with self._transaction() as conn:
            self._delete_chunk_rows(conn, source_id)

    def _delete_chunk_rows(self, conn: sqlite3.Connection, source_id: str) -> None:
        rowids = [
            r[0]
            for r in conn.execute(
                "SELECT rowid FROM knowledge_chunks WHERE source_id = ?", (source_id,)
            ).fetchall()
        ]
        if rowids:
            placeholders = ",".join("?" * len(rowids))
            for table in _vec_tables(conn):
                conn.execute(
                    f"DELETE FROM [{table}] WHERE rowid IN ({placeholders})",  # noqa: S608
                    rowids,
                )
        conn.execute("DELETE FROM knowledge_chunks WHERE source_id = ?", (source_id,))

    def count_chunks_by_source(self, source_id: str) -> int:
        return self._fetchone(
            "SELECT COUNT(*) FROM knowledge_chunks WHERE source_id = ?", (source_id,)
        )[0]

    def list_chunks_by_source(self, source_id: str) -> list[Chunk]:
        """Return a source's chunks ordered by chunk_index."""
        rows = self._fetchall(
            f"SELECT {_CHUNK_COLS} FROM knowledge_chunks WHERE source_id = ? ORDER BY chunk_index",
            (source_id,),
        )
        return [_row_to_chunk(r) for r in rows]

    def list_chunks_for_sources(self, source_ids: Sequence[str], limit: int) -> list[Chunk]:
        """Return up to *limit* chunks across *source_ids*, in insertion order."""
        if not source_ids:
            return []
        placeholders = ",".join("?" * len(source_ids))
        rows = self._fetchall(
            f"SELECT {_CHUNK_COLS} FROM knowledge_chunks "
            f"WHERE source_id IN ({placeholders}) ORDER BY rowid LIMIT ?",
            (*source_ids, limit),
        )
        return [_row_to_chunk(r) for r in rows]

    def get_chunk_by_rowid(self, rowid: int) -> Chunk | None:
        row = self._fetchone(
            f"SELECT {_CHUNK_COLS} FROM knowledge_chunks WHERE rowid = ?", (rowid,)
        )
        return _row_to_chunk(row) if row else None

    def match_chunks(
        self,
        vec_table: str,
        query_embedding: list[float],
        source_ids: Sequence[str],
        threshold: float,
        limit: int,
    ) -> list[tuple[Chunk, float]]:
        """Cosine similarity search restricted to *source_ids*.

        Returns:
            (chunk, similarity) pairs with similarity >= *threshold*, best
            first, at most *limit* rows. Similarity is 1 - cosine distance,
            clamped to [0, 1].
        """
        if not source_ids or limit < 1:
            return []
        placeholders = ",".join("?" * len(source_ids))
        max_distance = 1.0 - threshold
        rows = self._fetchall(
            f"""
            SELECT * FROM (
                SELECT c.rowid AS chunk_rowid, c.source_id, c.chunk_index, c.content,
                       c.metadata, c.created_at,
                       vec_distance_cosine(v.embedding, ?) AS distance
                FROM knowledge_chunks c
                JOIN {vec_table} v ON v.rowid = c.rowid
                WHERE c.source_id IN ({placeholders})
            )
            WHERE distance <= ?
            ORDER BY distance ASC, chunk_rowid ASC
            LIMIT ?
            """,
            (json.dumps(query_embedding), *source_ids, max_distance, limit),
        )
        return [
            (_row_to_chunk(r, rowid_key="chunk_rowid"), cosine_similarity_from_distance(r["distance"]))
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def add_conversation(self, conversation: Conversation) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO conversations (id, agent_id, session_id, status) VALUES (?, ?, ?, ?)",
                (
                    conversation.id,
                    conversation.agent_id,
                    conversation.session_id,
                    conversation.status,
                ),
            )

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        row = self._fetchone(
            f"SELECT {_CONVERSATION_COLS} FROM conversations WHERE id = ?", (conversation_id,)
        )
        return _row_to_conversation(row) if row else None

    def touch_conversation(self, conversation_id: str) -> None:
        """Recount messages and stamp last_message_at."""
        with self._transaction() as conn:
            conn.execute(
                f"""
                UPDATE conversations SET
                    message_count = (
                        SELECT COUNT(*) FROM messages WHERE conversation_id = ?
                    ),
                    last_message_at = {_NOW}
                WHERE id = ?
                """,
                (conversation_id, conversation_id),
            )

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def add_message(self, message: Message) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO messages (id, conversation_id, role, content, metadata)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    message.id,
                    message.conversation_id,
                    message.role,
                    message.content,
                    message.metadata,
                ),
            )

    def get_message(self, message_id: str) -> Message | None:
        row = self._fetchone(f"SELECT {_MESSAGE_COLS} FROM messages WHERE id = ?", (message_id,))
        return _row_to_message(row) if row else None

    def list_messages(self, conversation_id: str) -> list[Message]:
        """Return every message of a conversation, oldest first."""
        rows = self._fetchall(
            f"SELECT {_MESSAGE_COLS} FROM messages WHERE conversation_id = ? "
            "ORDER BY created_at, rowid",
            (conversation_id,),
        )
        return [_row_to_message(r) for r in rows]

    def recent_messages(
        self,
        conversation_id: str,
        limit: int,
        exclude_id: str | None = None,
    ) -> list[Message]:
        """Return the newest *limit* messages, oldest first, skipping *exclude_id*."""
        if limit < 1:
            return []
        rows = self._fetchall(
            f"""
            SELECT {_MESSAGE_COLS} FROM messages
            WHERE conversation_id = ? AND id != ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT ?
            """,
            (conversation_id, exclude_id or "", limit),
        )
        return [_row_to_message(r) for r in reversed(rows)]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _vec_tables(conn: sqlite3.Connection) -> list[str]:
    return [
        r[0]
        for r in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name LIKE 'vec_chunks_%'"
        ).fetchall()
    ]


def _row_to_agent(row: sqlite3.Row) -> Agent:
    return Agent(
        id=row["id"],
        name=row["name"],
        tone=row["tone"],
        custom_instructions=row["custom_instructions"],
        model=row["model"],
        temperature=row["temperature"],
        max_tokens=row["max_tokens"],
        created_at=row["created_at"],
    )


def _row_to_source(row: sqlite3.Row) -> KnowledgeSource:
    return KnowledgeSource(
        id=row["id"],
        agent_id=row["agent_id"],
        name=row["name"],
        type=row["type"],
        url=row["url"],
        content=row["content"],
        status=row["status"],
        error_message=row["error_message"],
        chunks_count=row["chunks_count"],
        processed_at=row["processed_at"],
        created_at=row["created_at"],
    )


def _row_to_chunk(row: sqlite3.Row, rowid_key: str = "rowid") -> Chunk:
    return Chunk(
        rowid=row[rowid_key],
        source_id=row["source_id"],
        chunk_index=row["chunk_index"],
        content=row["content"],
        metadata=row["metadata"],
        created_at=row["created_at"],
    )


def _row_to_conversation(row: sqlite3.Row) -> Conversation:
    return Conversation(
        id=row["id"],
        agent_id=row["agent_id"],
        session_id=row["session_id"],
        status=row["status"],
        message_count=row["message_count"],
        last_message_at=row["last_message_at"],
        created_at=row["created_at"],
    )


def _row_to_message(row: sqlite3.Row) -> Message:
    return Message(
        id=row["id"],
        conversation_id=row["conversation_id"],
        role=row["role"],
        content=row["content"],
        metadata=row["metadata"],
        created_at=row["created_at"],
    )
