"""Compression of old conversation turns into one synthetic system turn."""

from .models import ConversationTurn
from .tokens import extract_text

QUESTION_CHARS = {True: 50, False: 80}
ANSWER_CHARS = {True: 80, False: 120}


def _clip(text: str, limit: int) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def summarize_history(
    old_turns: list[ConversationTurn], *, aggressive: bool = False
) -> ConversationTurn:
    """Condense ``old_turns`` into ``Q:``/``A:`` lines under a short header.

    Args:
        old_turns: Turns being dropped from the raw history, oldest first.
        aggressive: Use tighter clipping and a shorter header.

    Returns:
        A system turn; its content is empty when there was nothing to
        summarize.
    """
    if not old_turns:
        return ConversationTurn(role="system", content="", kind="summary")

    lines = []
    for turn in old_turns:
        text = extract_text(turn.content)
        if turn.role == "user":
            lines.append(f"Q: {_clip(text, QUESTION_CHARS[aggressive])}")
        elif turn.role == "assistant":
            lines.append(f"A: {_clip(text, ANSWER_CHARS[aggressive])}")

    count = len(old_turns)
    if aggressive:
        header = f"[Prev ({count})]"
    else:
        header = f"[Previous conversation ({count} msgs)]"
    return ConversationTurn(
        role="system", content="\n".join([header, *lines]), kind="summary"
    )
