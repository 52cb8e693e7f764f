"""Keyword relevance search used when semantic retrieval is unavailable."""

import re
from dataclasses import dataclass

from .config import config
from .truncation import truncate_text

logger = config.get_logger(__name__)

STOP_WORDS = frozenset(
    """
    about above after again all also and any are because been before being
    between both but can could did does doing document down during each
    explain file for from further give had has have having her here hers him
    his how into its itself just let like mean means more most much not now
    off once only other our out over own page paper pdf please same say says
    she should some such tell text than that the their them then there these
    they this those through too under until very was were what when where
    which while who whom why will with would you your
    """.split()
)

# Terms a document may use for the same concept as the question
SYNONYMS: dict[str, tuple[str, ...]] = {
    "distribution": ("spread", "scatter", "allocation", "dispersion", "range"),
    "increase": ("growth", "rise", "gain", "boost"),
    "decrease": ("decline", "drop", "reduction", "fall"),
    "result": ("finding", "outcome", "conclusion", "effect"),
    "method": ("approach", "technique", "procedure", "methodology"),
    "cause": ("reason", "factor", "driver", "source"),
    "problem": ("issue", "challenge", "limitation", "difficulty"),
    "important": ("significant", "key", "critical", "essential"),
    "revenue": ("income", "sales", "earnings", "turnover"),
    "cost": ("expense", "price", "spending", "expenditure"),
    "goal": ("objective", "aim", "purpose", "target"),
    "example": ("instance", "case", "illustration", "sample"),
    "performance": ("accuracy", "efficiency", "results", "score"),
    "summary": ("overview", "abstract", "synopsis", "conclusion"),
    "data": ("dataset", "measurements", "observations", "records"),
    "model": ("framework", "architecture", "system", "algorithm"),
}

MIN_WORD_LENGTH = 3
MIN_PHRASE_WORD_LENGTH = 4
MAX_PHRASE_WORDS = 3
SUFFIXES = ("ing", "ed", "s")

WINDOW_CHARS = 800
MERGE_GAP_CHARS = 200
LONG_KEYWORD_LENGTH = 4
LONG_KEYWORD_SCORE = 3
SHORT_KEYWORD_SCORE = 2

FILL_RATIO = 0.9
MIN_PARTIAL_WINDOW_CHARS = 200
WINDOW_SEPARATOR = "\n\n---\n\n"

MIN_ROOM_FOR_EDGES = 500
INTRO_SHARE = 0.3
INTRO_MAX_CHARS = 500
CONCLUSION_SHARE = 0.2
CONCLUSION_MAX_CHARS = 300


@dataclass
class ContextWindow:
    """A scored slice of the document around one or more keyword hits."""

    start: int
    end: int
    score: int


def extract_keywords(question: str) -> list[str]:
    """Pull search terms out of a question.

    Returns:
        Unique single words and 2-3 word phrases, longest first.
    """
    cleaned = re.sub(r"[^\w\s]", " ", question.lower())
    words = [
        word
        for word in cleaned.split()
        if len(word) >= MIN_WORD_LENGTH and word not in STOP_WORDS
    ]

    terms = set(words)
    for size in range(2, MAX_PHRASE_WORDS + 1):
        for i in range(len(words) - size + 1):
            parts = words[i : i + size]
            if all(len(part) >= MIN_PHRASE_WORD_LENGTH for part in parts):
                terms.add(" ".join(parts))

    return sorted(terms, key=lambda term: (-len(term), term))


def _stem_variants(word: str) -> list[str]:
    variants = []
    for suffix in SUFFIXES:
        if word.endswith(suffix) and len(word) - len(suffix) >= MIN_WORD_LENGTH:
            variants.append(word[: -len(suffix)])
    return variants


def expand_query(keywords: list[str]) -> list[str]:
    """Add synonyms and naive suffix-stripped variants to the keywords.

    Returns:
        Unique terms, longest first.
    """
    expanded = set(keywords)
    for keyword in keywords:
        for term, synonyms in SYNONYMS.items():
            if term in keyword or keyword in term:
                expanded.update(synonyms)
        if " " not in keyword:
            expanded.update(_stem_variants(keyword))

    return sorted(expanded, key=lambda term: (-len(term), term))


def _find_windows(doc_text: str, keywords: list[str]) -> list[ContextWindow]:
    windows = []
    for keyword in keywords:
        score = (
            LONG_KEYWORD_SCORE
            if len(keyword) > LONG_KEYWORD_LENGTH
            else SHORT_KEYWORD_SCORE
        )
        for match in re.finditer(re.escape(keyword), doc_text, re.IGNORECASE):
            windows.append(
                ContextWindow(
                    start=max(0, match.start() - WINDOW_CHARS),
                    end=min(len(doc_text), match.end() + WINDOW_CHARS),
                    score=score,
                )
            )
    return windows


def merge_windows(windows: list[ContextWindow]) -> list[ContextWindow]:
    """Merge windows that overlap or sit within 200 chars of each other.

    Returns:
        Merged windows ordered by position, scores summed.
    """
    merged: list[ContextWindow] = []
    for window in sorted(windows, key=lambda w: w.start):
        if merged and window.start <= merged[-1].end + MERGE_GAP_CHARS:
            last = merged[-1]
            last.end = max(last.end, window.end)
            last.score += window.score
        else:
            merged.append(ContextWindow(window.start, window.end, window.score))
    return merged


def search_by_keywords(doc_text: str, keywords: list[str], max_chars: int) -> str:
    """Collect the document passages around keyword hits.

    Windows of 800 chars either side of each hit are merged, ranked by score
    and packed into 90% of ``max_chars``. Leftover room is spent on the
    document's opening and closing lines. With no hits at all the document
    is truncated blind.

    Args:
        doc_text: Full document text.
        keywords: Search terms, typically from ``expand_query``.
        max_chars: Character budget for the result.

    Returns:
        The packed excerpt.
    """
    windows = merge_windows(_find_windows(doc_text, keywords))
    if not windows:
        logger.info("No keyword matches, falling back to truncation")
        return truncate_text(doc_text, max_chars // 4)

    # Stable sort keeps document order among equal scores
    ranked = sorted(windows, key=lambda w: w.score, reverse=True)
    limit = int(max_chars * FILL_RATIO)

    parts: list[str] = []
    packed: list[ContextWindow] = []
    used = 0
    for window in ranked:
        separator = len(WINDOW_SEPARATOR) if parts else 0
        text = doc_text[window.start : window.end]
        if used + separator + len(text) <= limit:
            parts.append(text)
            packed.append(window)
            used += separator + len(text)
            continue

        room = limit - used - separator
        if room >= MIN_PARTIAL_WINDOW_CHARS:
            parts.append(text[: room - 3] + "...")
            packed.append(window)
            used += separator + room
        break

    logger.info(
        "Keyword search packed %d of %d windows (%d chars)",
        len(parts),
        len(windows),
        used,
    )

    result = WINDOW_SEPARATOR.join(parts)
    remaining = max_chars - len(result)
    if remaining <= MIN_ROOM_FOR_EDGES:
        return result

    if all(window.start > 0 for window in packed):
        intro_chars = min(INTRO_MAX_CHARS, int(remaining * INTRO_SHARE))
        intro = doc_text[:intro_chars].strip()
        if intro:
            result = f"[Document Introduction]\n{intro}{WINDOW_SEPARATOR}{result}"

    if all(window.end < len(doc_text) for window in packed):
        conclusion_chars = min(CONCLUSION_MAX_CHARS, int(remaining * CONCLUSION_SHARE))
        conclusion = doc_text[-conclusion_chars:].strip()
        if conclusion:
            result = f"{result}{WINDOW_SEPARATOR}[Document Conclusion]\n{conclusion}"

    return result
