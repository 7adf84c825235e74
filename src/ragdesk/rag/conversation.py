"""One chat turn: persist the user message, retrieve, prompt, complete, persist the reply.

Ordering guarantees:
  - The user message is stored before retrieval and is never part of the
    history sent to the model (it is appended last, exactly once).
  - A completion failure propagates as ProviderError and nothing besides the
    user message is written for that turn.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from typing import Callable

from ragdesk.config import RagdeskConfig
from ragdesk.db.models import Agent, Conversation, Message
from ragdesk.db.repository import Repository
from ragdesk.errors import NotFoundError, ValidationError
from ragdesk.rag.llm_client import Completion, complete
from ragdesk.rag.prompt import Persona, PromptBuilder
from ragdesk.rag.retriever import Retriever

logger = logging.getLogger(__name__)

Completer = Callable[..., Completion]


@dataclass
class TurnResult:
    response: str
    conversation_id: str
    message_id: str


class ConversationOrchestrator:
    """Handle chat turns for agents backed by a knowledge base.

    Args:
        repo: Record storage.
        retriever: Staged retriever for the agent's knowledge.
        config: Completion defaults, provider settings and history window.
        prompt_builder: System prompt builder.
        completer: Completion function; defaults to llm_client.complete.
    """

    def __init__(
        self,
        repo: Repository,
        retriever: Retriever,
        config: RagdeskConfig | None = None,
        prompt_builder: PromptBuilder | None = None,
        completer: Completer = complete,
    ) -> None:
        self._repo = repo
        self._retriever = retriever
        self._config = config or RagdeskConfig()
        self._prompt_builder = prompt_builder or PromptBuilder()
        self._complete = completer

    def handle_turn(
        self,
        agent_id: str,
        message: str,
        session_id: str,
        conversation_id: str | None = None,
    ) -> TurnResult:
        """Answer *message* for *agent_id* and persist both sides of the turn.

        Raises:
            ValidationError: Empty message or session id.
            NotFoundError: Unknown agent, or a conversation that does not
                exist or belongs to another agent.
            ProviderError: The completion call failed.
        """
        if not message or not message.strip():
            raise ValidationError("Message must not be empty")
        if not session_id or not session_id.strip():
            raise ValidationError("Session id must not be empty")

        agent = self._repo.get_agent(agent_id)
        if agent is None:
            raise NotFoundError(f"Agent not found: {agent_id}")

        conversation = self._resolve_conversation(agent, session_id, conversation_id)

        user_message = Message(
            id=str(uuid.uuid4()),
            conversation_id=conversation.id,
            role="user",
            content=message,
        )
        self._repo.add_message(user_message)

        outcome = self._retriever.retrieve(agent.id, message)
        history = self._repo.recent_messages(
            conversation.id,
            self._config.conversation.history_window,
            exclude_id=user_message.id,
        )

        system_prompt = self._prompt_builder.build(
            Persona(
                name=agent.name,
                tone=agent.tone,
                custom_instructions=agent.custom_instructions,
            ),
            outcome.results,
        )
        messages = [
            {"role": "system", "content": system_prompt},
            *({"role": m.role, "content": m.content} for m in history),
            {"role": "user", "content": message},
        ]

        model, temperature, max_tokens = self._completion_settings(agent)
        completion = self._complete(
            messages,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            provider=self._config.provider,
        )

        reply = Message(
            id=str(uuid.uuid4()),
            conversation_id=conversation.id,
            role="assistant",
            content=completion.content,
            metadata=json.dumps(
                {
                    "model": completion.model,
                    "prompt_tokens": completion.usage.prompt_tokens,
                    "completion_tokens": completion.usage.completion_tokens,
                    "total_tokens": completion.usage.total_tokens,
                    "cost": completion.cost,
                    "context_used": bool(outcome.results),
                    "retrieval_stage": outcome.stage,
                }
            ),
        )
        self._repo.add_message(reply)
        self._repo.touch_conversation(conversation.id)

        logger.info(
            "Turn completed for agent %s in conversation %s (%d context items, stage %s)",
            agent.id,
            conversation.id,
            len(outcome.results),
            outcome.stage,
        )
        return TurnResult(
            response=completion.content,
            conversation_id=conversation.id,
            message_id=reply.id,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_conversation(
        self, agent: Agent, session_id: str, conversation_id: str | None
    ) -> Conversation:
        if conversation_id:
            conversation = self._repo.get_conversation(conversation_id)
            if conversation is None or conversation.agent_id != agent.id:
                raise NotFoundError(f"Conversation not found: {conversation_id}")
            return conversation

        conversation = Conversation(id=str(uuid.uuid4()), agent_id=agent.id, session_id=session_id)
        self._repo.add_conversation(conversation)
        logger.debug("Started conversation %s for session %s", conversation.id, session_id)
        return conversation

    def _completion_settings(self, agent: Agent) -> tuple[str, float, int]:
        defaults = self._config.completion
        return (
            agent.model or defaults.model,
            agent.temperature if agent.temperature is not None else defaults.temperature,
            agent.max_tokens if agent.max_tokens is not None else defaults.max_tokens,
        )
