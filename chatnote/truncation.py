"""Boundary-aware head/tail truncation of long text."""

import math
import re

from .tokens import CHARS_PER_TOKEN

TRUNCATION_MARKER = "\n\n[... middle content truncated ...]\n\n"

HEAD_SHARE = 0.6
HEAD_SENTENCE_CUTOFF = 0.7
HEAD_WORD_CUTOFF = 0.8
TAIL_SENTENCE_WINDOW = 0.3
TAIL_WORD_WINDOW = 0.2
# Share of any remaining overflow taken back from the head
HEAD_OVERFLOW_SHARE = 0.6

_SENTENCE_BOUNDARY = re.compile(r"[.!?](?=\s)|\n")


def _cut_head(head: str) -> str:
    """Shorten a head slice to its last sentence or word boundary."""
    length = len(head)
    last_boundary = None
    for match in _SENTENCE_BOUNDARY.finditer(head):
        last_boundary = match
    if (
        last_boundary is not None
        and last_boundary.end() >= length * HEAD_SENTENCE_CUTOFF
    ):
        return head[: last_boundary.end()]

    last_space = head.rfind(" ")
    if last_space != -1 and last_space >= length * HEAD_WORD_CUTOFF:
        return head[:last_space]
    return head


def _cut_tail(tail: str) -> str:
    """Start a tail slice after its first sentence or word boundary."""
    length = len(tail)
    match = _SENTENCE_BOUNDARY.search(tail)
    if match is not None and match.start() < length * TAIL_SENTENCE_WINDOW:
        return tail[match.end() :]

    first_space = tail.find(" ", 0, int(length * TAIL_WORD_WINDOW))
    if first_space != -1:
        return tail[first_space + 1 :]
    return tail


def truncate_text(text: str, token_budget: int) -> str:
    """Shrink ``text`` to roughly ``token_budget`` tokens, keeping both ends.

    The head receives 60% of the character budget and the tail 40%; each
    slice is trimmed back to a sentence or word boundary where one is close
    to the cut. If joining the two with the truncation marker still
    overflows, the overflow is taken from the head so the tail stays intact.

    Args:
        text: Text to shrink.
        token_budget: Target size in estimated tokens.

    Returns:
        ``text`` unchanged when it already fits, otherwise head, marker and
        tail joined together.
    """
    char_budget = max(0, int(token_budget)) * CHARS_PER_TOKEN
    if len(text) <= char_budget:
        return text

    head_budget = int(char_budget * HEAD_SHARE)
    tail_budget = char_budget - head_budget

    head = _cut_head(text[:head_budget]).rstrip()
    tail = ""
    if tail_budget:
        tail = _cut_tail(text[len(text) - tail_budget :]).lstrip()

    result = f"{head}{TRUNCATION_MARKER}{tail}"
    excess = len(result) - char_budget
    if excess > 0:
        trim = min(len(head), math.ceil(excess * HEAD_OVERFLOW_SHARE))
        result = f"{head[: len(head) - trim]}{TRUNCATION_MARKER}{tail}"
    return result
