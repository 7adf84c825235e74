"""System prompt assembly for knowledge-grounded agents.

Two fixed templates:
  - grounded:      the retrieved results plus strict answer-from-context rules
  - refusal-only:  no context found, so the model must politely decline

build() is pure: the same persona and results always produce the same prompt.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from ragdesk.rag.retriever import RetrievalResult

GROUNDED_REFUSAL = "I don't have that information. Can I help with something else?"
EMPTY_REFUSAL = "I don't have information on that yet. Can I help with anything else?"

_RULE = "=" * 40
_SEPARATOR = "-" * 60


class Tone(str, Enum):
    PROFESSIONAL = "professional"
    FRIENDLY = "friendly"
    CASUAL = "casual"
    HELPFUL = "helpful"
    FORMAL = "formal"
    ENTHUSIASTIC = "enthusiastic"

    @classmethod
    def parse(cls, value: str | None) -> Tone | None:
        """Return the Tone for *value* (case-insensitive), or None if unmapped."""
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


TONE_SENTENCES: dict[Tone, str] = {
    Tone.PROFESSIONAL: "You are professional, courteous, and formal in your responses.",
    Tone.FRIENDLY: "You are warm, approachable, and conversational in your responses.",
    Tone.CASUAL: "You are relaxed, informal, and easy-going in your responses.",
    Tone.HELPFUL: "You are helpful, supportive, and eager to assist in your responses.",
    Tone.FORMAL: "You are highly formal, respectful, and structured in your responses.",
    Tone.ENTHUSIASTIC: "You are energetic, excited, and passionate in your responses.",
}

GROUNDED_HEADER = f"""{_RULE}
KNOWLEDGE BASE - STRICT MODE
{_RULE}

CRITICAL INSTRUCTIONS:
- You are a knowledge base assistant, not a general AI.
- Your entire knowledge consists only of the information below.
- You have no general knowledge, no training data and no external information.
- Be warm, empathetic and conversational. Sound human, not robotic.
- If information is not in the knowledge base below, you cannot answer it.

YOUR COMPLETE KNOWLEDGE BASE:
"""

GROUNDED_RULES = f"""{_RULE}

MANDATORY RULES:
1. Only use information from the knowledge base above.
2. Format responses with clear structure:
   - Use bullet points for lists.
   - Add line breaks between sections.
   - Use paragraph breaks when covering multiple topics.
   - Keep each point concise but complete.
3. Be warm and empathetic in your tone.
4. If the answer is not clearly in the knowledge base, say:
   "{GROUNDED_REFUSAL}"
5. Never use general knowledge, assumptions or external information.
6. Never discuss your capabilities as an AI assistant.
7. Sound natural and conversational."""

REFUSAL_TEMPLATE = f"""{_RULE}
NO KNOWLEDGE BASE AVAILABLE
{_RULE}

You have no knowledge base loaded.

You must respond to every question briefly and warmly with:
"{EMPTY_REFUSAL}"

Keep it under 20 words.

Do not:
- Use your training data or general knowledge.
- Provide general AI assistance.
- Describe your capabilities.

You are a knowledge base assistant with no knowledge loaded. Decline all content questions."""


@dataclass
class Persona:
    """Who the agent is: display name, tone and operator instructions."""

    name: str
    tone: str | None = None
    custom_instructions: str | None = None


class PromptBuilder:
    """Build the system prompt for one chat turn."""

    def build(self, persona: Persona, results: Sequence[RetrievalResult]) -> str:
        parts = [self.preamble(persona)]
        if results:
            parts.append(GROUNDED_HEADER + self.knowledge_block(results) + GROUNDED_RULES)
        else:
            parts.append(REFUSAL_TEMPLATE)
        return "\n\n".join(parts)

    def preamble(self, persona: Persona) -> str:
        text = f"You are {persona.name}, an AI assistant."
        tone = Tone.parse(persona.tone)
        if tone is not None:
            text += f" {TONE_SENTENCES[tone]}"
        if persona.custom_instructions:
            text += f"\n\nSpecial Instructions: {persona.custom_instructions}"
        return text

    def knowledge_block(self, results: Sequence[RetrievalResult]) -> str:
        entries = [
            f"\n[Source {i}: {result.source_label}]\n{result.content}\n\n{_SEPARATOR}\n"
            for i, result in enumerate(results, start=1)
        ]
        return "".join(entries) + "\n"
