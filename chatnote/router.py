"""Turn a question classification into a context budget and a model choice."""

from .config import config
from .models import GenerationMode, QuestionClassification, RoutingDecision

logger = config.get_logger(__name__)

# Raw history turns kept even when the question does not ask for history
CONTINUITY_FLOOR = 2
FOLLOW_UP_DEPTH = 2
REASONING_MODE_DEPTH = 2
DEFAULT_DEPTH = 5

# Document-only questions: the excerpt stays generous even for quick questions.
# Overview questions ("What is this PDF about?") are "detailed" and get 1500.
DOC_ONLY_TOKENS = {"quick": 1500, "detailed": 1500, "reasoning": 2000}
DOC_ONLY_REASONING_MODE_TOKENS = 1500
COMBINED_TOKENS = {"quick": 1200, "detailed": 1500, "reasoning": 2000}
COMBINED_REASONING_MODE_TOKENS = 1200
ADVANCED_MODE_TOKENS = 2000


def _doc_tokens(
    classification: QuestionClassification,
    mode: GenerationMode,
    table: dict[str, int],
    reasoning_mode_tokens: int,
) -> int:
    if mode == "reasoning":
        return reasoning_mode_tokens
    if mode == "advanced":
        return ADVANCED_MODE_TOKENS
    return table[classification.answer_complexity]


def _explicit_depth(
    classification: QuestionClassification, mode: GenerationMode
) -> int:
    if classification.is_follow_up:
        return FOLLOW_UP_DEPTH
    if mode == "reasoning":
        return REASONING_MODE_DEPTH
    return DEFAULT_DEPTH


def _decision(
    *,
    classification: QuestionClassification,
    mode: GenerationMode,
    history_length: int,
    doc_tokens: int,
    depth: int,
    prefer_quick_model: bool = False,
) -> RoutingDecision:
    depth = min(depth, history_length)
    return RoutingDecision(
        include_doc_context=doc_tokens > 0,
        doc_context_tokens=doc_tokens,
        include_history=depth > 0,
        history_depth=depth,
        summarize_old_turns=history_length > depth,
        recent_turn_count=depth,
        prefer_quick_model=prefer_quick_model,
        needs_reasoning=(
            mode == "reasoning" or classification.answer_complexity == "reasoning"
        ),
    )


def route(
    classification: QuestionClassification,
    *,
    history_length: int,
    mode: GenerationMode = "auto",
) -> RoutingDecision:
    """Decide the document budget and history depth for one turn.

    Branches, in order: document only, history only, quick with neither,
    and the combined default. Every branch keeps at least the last two
    history turns when there are any, and flags anything older for
    summarization.

    Args:
        classification: The question's classification.
        history_length: Number of prior turns in the conversation.
        mode: Active generation mode.

    Returns:
        The routing decision.
    """
    needs_doc = classification.needs_doc_context
    needs_history = classification.needs_history

    if needs_doc and not needs_history:
        branch = "doc-only"
        decision = _decision(
            classification=classification,
            mode=mode,
            history_length=history_length,
            doc_tokens=_doc_tokens(
                classification, mode, DOC_ONLY_TOKENS, DOC_ONLY_REASONING_MODE_TOKENS
            ),
            depth=CONTINUITY_FLOOR,
        )
    elif needs_history and not needs_doc:
        branch = "history-only"
        decision = _decision(
            classification=classification,
            mode=mode,
            history_length=history_length,
            doc_tokens=0,
            depth=_explicit_depth(classification, mode),
        )
    elif classification.answer_complexity == "quick" and not needs_doc:
        branch = "quick"
        decision = _decision(
            classification=classification,
            mode=mode,
            history_length=history_length,
            doc_tokens=0,
            depth=CONTINUITY_FLOOR,
            prefer_quick_model=True,
        )
    else:
        branch = "combined"
        doc_tokens = 0
        if needs_doc:
            doc_tokens = _doc_tokens(
                classification, mode, COMBINED_TOKENS, COMBINED_REASONING_MODE_TOKENS
            )
        depth = (
            _explicit_depth(classification, mode) if needs_history else CONTINUITY_FLOOR
        )
        decision = _decision(
            classification=classification,
            mode=mode,
            history_length=history_length,
            doc_tokens=doc_tokens,
            depth=depth,
        )

    logger.info(
        "Routed %s: doc_tokens=%d history_depth=%d summarize=%s",
        branch,
        decision.doc_context_tokens,
        decision.history_depth,
        decision.summarize_old_turns,
    )
    return decision


def select_models(decision: RoutingDecision, mode: GenerationMode) -> list[str]:
    """Return the candidate model chain for a routed turn, best first."""
    if mode == "reasoning":
        return list(config.REASONING_MODELS)
    if mode == "advanced":
        return list(config.ADVANCED_MODELS)
    if decision.prefer_quick_model:
        return list(config.QUICK_MODELS)
    return list(config.AUTO_MODELS)
