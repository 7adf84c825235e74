"""Paragraph-aware chunker with sentence-level overlap.

Strategy:
- Normalize line endings and collapse 3+ newlines to a single blank line.
- Accumulate blank-line-delimited paragraphs into a chunk while its estimated
  token count stays within ``target_tokens``.
- When the next paragraph does not fit, emit the chunk and seed the next one
  with an overlap tail: the longest run of complete trailing sentences whose
  estimate is ≤ ``overlap_tokens``.
- A paragraph larger than ``1.2 × target_tokens`` is split into sentences and
  filled the same way, at sentence granularity.
- Chunks of ``min_chunk_chars`` characters or fewer are dropped unless only one
  chunk exists.
"""

from __future__ import annotations

import math
import re

_CRLF_RE = re.compile(r"\r\n")
_BLANK_RUN_RE = re.compile(r"\n{3,}")
_PARAGRAPH_SPLIT_RE = re.compile(r"\n\n+")
_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]+(?=\s|$)")

_LARGE_PARAGRAPH_FACTOR = 1.2


def estimate_tokens(text: str) -> int:
    """Approximate token count: 4 characters ≈ 1 token (rounded up)."""
    return math.ceil(len(text) / 4)


def normalize(text: str) -> str:
    """Normalize line endings and collapse 3+ newlines into one blank line."""
    return _BLANK_RUN_RE.sub("\n\n", _CRLF_RE.sub("\n", text)).strip()


def split_sentences(text: str) -> list[str]:
    """Return the terminated sentences of *text* (leading whitespace kept)."""
    return _SENTENCE_RE.findall(text)


class Chunker:
    """Split document text into token-budgeted, overlapping chunks.

    Args:
        target_tokens: Estimated-token budget per chunk.
        overlap_tokens: Estimated-token budget for the sentence tail carried
            into the next chunk.
        min_chunk_chars: Chunks of this many characters or fewer are dropped
            when more than one chunk is produced.
    """

    def __init__(
        self,
        target_tokens: int = 800,
        overlap_tokens: int = 150,
        min_chunk_chars: int = 100,
    ) -> None:
        if target_tokens < 1:
            raise ValueError("target_tokens must be >= 1")
        if not 0 <= overlap_tokens < target_tokens:
            raise ValueError("overlap_tokens must be in [0, target_tokens)")
        self.target_tokens = target_tokens
        self.overlap_tokens = overlap_tokens
        self.min_chunk_chars = min_chunk_chars

    def split(self, text: str) -> list[str]:
        """Split *text* into ordered chunk strings.

        Returns an empty list for empty or whitespace-only input, and at least
        one chunk otherwise.
        """
        cleaned = normalize(text)
        if not cleaned:
            return []

        paragraphs = [p for p in _PARAGRAPH_SPLIT_RE.split(cleaned) if p.strip()]

        chunks: list[str] = []
        current = ""
        current_tokens = 0

        for paragraph in paragraphs:
            paragraph_tokens = estimate_tokens(paragraph)

            if paragraph_tokens > self.target_tokens * _LARGE_PARAGRAPH_FACTOR:
                # Flush so the oversized paragraph starts on a fresh chunk.
                if current:
                    chunks.append(current.strip())
                    current = ""
                    current_tokens = 0

                for sentence in _sentence_units(paragraph):
                    sentence_tokens = estimate_tokens(sentence)
                    if current and current_tokens + sentence_tokens > self.target_tokens:
                        chunks.append(current.strip())
                        tail = self.overlap_tail(current)
                        current = f"{tail} {sentence}" if tail else sentence
                        current_tokens = estimate_tokens(current)
                    else:
                        current = f"{current} {sentence}" if current else sentence
                        current_tokens += sentence_tokens
                continue

            if current and current_tokens + paragraph_tokens > self.target_tokens:
                chunks.append(current.strip())
                tail = self.overlap_tail(current)
                current = f"{tail}\n\n{paragraph}" if tail else paragraph
                current_tokens = estimate_tokens(current)
            else:
                current = f"{current}\n\n{paragraph}" if current else paragraph
                current_tokens += paragraph_tokens

        if current.strip():
            chunks.append(current.strip())

        if len(chunks) == 1:
            return chunks
        kept = [c for c in chunks if len(c) > self.min_chunk_chars]
        return kept or chunks

    def overlap_tail(self, text: str) -> str:
        """Return the longest suffix of whole sentences within the overlap budget."""
        sentences = split_sentences(text)
        tail: list[str] = []
        tokens = 0
        for sentence in reversed(sentences):
            sentence_tokens = estimate_tokens(sentence)
            if tokens + sentence_tokens > self.overlap_tokens:
                break
            tail.insert(0, sentence)
            tokens += sentence_tokens
        return "".join(tail).strip()


def _sentence_units(paragraph: str) -> list[str]:
    """Stripped sentences of *paragraph*, plus any unterminated trailing text."""
    units: list[str] = []
    end = 0
    for match in _SENTENCE_RE.finditer(paragraph):
        units.append(match.group().strip())
        end = match.end()
    remainder = paragraph[end:].strip()
    if remainder:
        units.append(remainder)
    return units or [paragraph]
