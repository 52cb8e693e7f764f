"""Heuristic token estimation for text and conversation turns."""

import math
from collections.abc import Iterable

from .models import ConversationTurn, MessageContent

TOKENS_PER_WORD = 1.33
CHARS_PER_TOKEN = 4
TURN_OVERHEAD_TOKENS = 4


def extract_text(content: MessageContent) -> str:
    """Return the plain-text portion of a turn's content.

    Image parts are ignored; text parts are joined with newlines.
    """
    if isinstance(content, str):
        return content
    return "\n".join(
        str(part.get("text", ""))
        for part in content
        if isinstance(part, dict) and part.get("type") == "text"
    )


def estimate_tokens(text: str | None) -> int:
    """Approximate the token count of ``text``.

    Returns:
        ``ceil(max(words * 1.33, chars / 4))``, or 0 for empty input.
    """
    if not text:
        return 0
    word_count = len(text.split())
    return math.ceil(max(word_count * TOKENS_PER_WORD, len(text) / CHARS_PER_TOKEN))


def estimate_conversation_tokens(
    turns: Iterable[ConversationTurn], context: str | None = None
) -> int:
    """Approximate the token count of a list of turns plus a context string.

    Returns:
        Sum of per-turn estimates with a fixed per-turn overhead.
    """
    total = sum(
        estimate_tokens(extract_text(turn.content)) + TURN_OVERHEAD_TOKENS
        for turn in turns
    )
    return total + estimate_tokens(context)
