"""Split model output into reasoning and answer.

Two delimiter styles occur: the generation client's own sentinel markers,
and ``<think>`` tags emitted inline by some reasoning models. Sentinel
markers win when both are present.
"""

import re

from .models import ParsedResponse

REASONING_START = "__REASONING_START__"
REASONING_END = "__REASONING_END__"

_THINK_BLOCK = re.compile(r"<think>(.*?)</think>", re.DOTALL)
_OPEN_THINK = re.compile(r"<think>(.*)$", re.DOTALL)

_CONCLUSION_PATTERNS = (
    re.compile(
        r"(?:^|(?<=[.!?\n]))\s*((?:therefore|thus|hence|so|in conclusion|in summary|"
        r"overall|to summari[sz]e)\b[,:]?\s+[^\n]{10,})",
        re.IGNORECASE,
    ),
    re.compile(r"((?:the (?:final )?answer is|answer:)\s*[^\n]{3,})", re.IGNORECASE),
)
MAX_FALLBACK_PARAGRAPH_CHARS = 600


def wrap_reasoning(reasoning: str, content: str) -> str:
    """Embed separately-streamed reasoning in front of the answer text."""
    return f"{REASONING_START}{reasoning}{REASONING_END}{content}"


def parse_reasoning_response(text: str) -> ParsedResponse:
    """Separate reasoning from the user-visible answer.

    Returns:
        The answer with any reasoning markup stripped, and the reasoning
        text when there was some.
    """
    start = text.find(REASONING_START)
    if start != -1:
        body_start = start + len(REASONING_START)
        end = text.find(REASONING_END, body_start)
        if end == -1:
            # Still streaming the reasoning part
            return ParsedResponse(
                answer=text[:start].strip(), reasoning=text[body_start:].strip()
            )
        answer = text[:start] + text[end + len(REASONING_END) :]
        return ParsedResponse(
            answer=answer.strip(),
            reasoning=text[body_start:end].strip() or None,
        )

    blocks = _THINK_BLOCK.findall(text)
    remainder = _THINK_BLOCK.sub("", text)
    open_block = _OPEN_THINK.search(remainder)
    if open_block is not None:
        blocks.append(open_block.group(1))
        remainder = remainder[: open_block.start()]
    if blocks:
        reasoning = "\n\n".join(block.strip() for block in blocks if block.strip())
        return ParsedResponse(answer=remainder.strip(), reasoning=reasoning or None)

    return ParsedResponse(answer=text.strip())


def synthesize_conclusion(reasoning: str) -> str | None:
    """Best-effort answer recovered from reasoning when the answer came back empty.

    Looks for concluding phrases ("Therefore ...", "The answer is ...") and
    falls back to a short final paragraph. English-only and often wrong;
    callers should treat ``None`` as the normal outcome.
    """
    for pattern in _CONCLUSION_PATTERNS:
        matches = pattern.findall(reasoning)
        if matches:
            return matches[-1].strip()

    paragraphs = [p.strip() for p in reasoning.split("\n\n") if p.strip()]
    if paragraphs and len(paragraphs[-1]) <= MAX_FALLBACK_PARAGRAPH_CHARS:
        return paragraphs[-1]
    return None
