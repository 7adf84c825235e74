"""Record types for the ragdesk database layer."""

from __future__ import annotations

import json
from dataclasses import dataclass, field

SOURCE_STATUSES = ("pending", "processing", "completed", "failed")


@dataclass
class Agent:
    id: str
    name: str
    tone: str | None = None
    custom_instructions: str | None = None
    model: str | None = None  # None → completion.model from config
    temperature: float | None = None
    max_tokens: int | None = None
    created_at: str | None = None


@dataclass
class KnowledgeSource:
    id: str
    agent_id: str
    name: str
    type: str = "text"
    url: str | None = None
    content: str | None = None
    status: str = "pending"
    error_message: str | None = None
    chunks_count: int = 0
    processed_at: str | None = None
    created_at: str | None = None


@dataclass
class Chunk:
    source_id: str
    chunk_index: int
    content: str
    metadata: str = field(default_factory=lambda: "{}")
    created_at: str | None = None
    rowid: int | None = None  # set after insert; None for unsaved chunks

    @property
    def metadata_dict(self) -> dict:
        return json.loads(self.metadata)


@dataclass
class Conversation:
    id: str
    agent_id: str
    session_id: str
    status: str = "active"
    message_count: int = 0
    last_message_at: str | None = None
    created_at: str | None = None


@dataclass
class Message:
    id: str
    conversation_id: str
    role: str  # user | assistant
    content: str
    metadata: str = field(default_factory=lambda: "{}")
    created_at: str | None = None

    @property
    def metadata_dict(self) -> dict:
        return json.loads(self.metadata)
