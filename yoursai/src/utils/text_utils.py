"""
YoursAI - Text Utilities
=========================
Helper functions for document chunking and message matching.

These utilities are consumed by the ``IngestOrchestrator`` and the
``ChatOrchestrator`` and should remain stateless and side-effect-free.
"""

from __future__ import annotations

from collections.abc import Iterable

# Rough conversion used for chunk sizing: 1 token ≈ 0.75 words
_WORDS_PER_TOKEN_NUM = 3
_WORDS_PER_TOKEN_DEN = 4


# ── Public API ─────────────────────────────────────────────────────────

def words_per_chunk(max_tokens: int) -> int:
    """Convert a per-chunk token budget into a word budget (500 → 375)."""
    return max(1, max_tokens * _WORDS_PER_TOKEN_NUM // _WORDS_PER_TOKEN_DEN)


def chunk_text(text: str, max_tokens: int) -> list[str]:
    """
    Split text into word-bounded chunks that fit a token budget.

    Splitting happens on whitespace only: no sentence awareness and no
    overlap between chunks.  Every chunk except possibly the last holds
    exactly ``words_per_chunk(max_tokens)`` words, joined by single spaces.

    Args:
        text:       Plain document text.
        max_tokens: Token budget per chunk.

    Returns:
        The chunks in document order.  Empty for blank text.
    """
    words = text.split()
    budget = words_per_chunk(max_tokens)
    return [" ".join(words[i : i + budget]) for i in range(0, len(words), budget)]


def is_greeting(message: str, greetings: Iterable[str]) -> bool:
    """
    Return True when *message* is exactly one of *greetings*.

    Matching is case-insensitive on the whitespace-trimmed message and
    tolerates a single trailing ``"!"``::

        "Hello!"       → True
        "  hello  "    → True
        "Hello there"  → False
        "hello!!"      → False
    """
    normalised = message.strip().lower()
    for greeting in greetings:
        if normalised == greeting or normalised == greeting + "!":
            return True
    return False
