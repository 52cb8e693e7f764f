"""Per-model token ceilings and the degradation cascade that enforces them."""

from collections.abc import Mapping, Sequence
from types import MappingProxyType

from .config import config
from .models import ConversationTurn, Payload
from .tokens import estimate_conversation_tokens, estimate_tokens
from .truncation import truncate_text

logger = config.get_logger(__name__)

# Models with small context windows or tight per-request limits
MODEL_TOKEN_CEILINGS: Mapping[str, int] = MappingProxyType({
    "qwen/qwen3-32b": 5000,
    "openai/gpt-oss-20b": 6000,
    "openai/gpt-oss-safeguard-20b": 6000,
    "llama-3.1-8b-instant": 5000,
    "meta-llama/llama-4-maverick-17b-128e-instruct": 6000,
})

SHRINK_SAFETY_MARGIN = 0.9
RECENT_TURNS_ON_COLLAPSE = 2

FORMATTING_INSTRUCTIONS = (
    "Format answers in Markdown. Use short paragraphs, bullet lists for "
    "enumerations and fenced code blocks for code. Use LaTeX between $...$ "
    "for math. When you rely on the provided document, say which part."
)


def preamble_turn() -> ConversationTurn:
    return ConversationTurn(
        role="system", content=FORMATTING_INSTRUCTIONS, kind="preamble"
    )


class BudgetEnforcer:
    """Shrinks an assembled payload until it fits under the model's ceiling.

    The steps run in a fixed order and stop as soon as the estimate is under
    the ceiling: shrink the document context, add the formatting preamble,
    collapse history to the summary plus the last two turns, then drop the
    document context. The user's question and the preamble are never removed.
    """

    def __init__(self, ceilings: Mapping[str, int] | None = None) -> None:
        """Initialize BudgetEnforcer.

        Args:
            ceilings: Override for the per-model ceiling table.
        """
        self.ceilings = ceilings if ceilings is not None else MODEL_TOKEN_CEILINGS

    def ceiling_for(self, models: str | Sequence[str]) -> int:
        """Return the smallest ceiling across one model or a fallback chain."""
        if isinstance(models, str):
            models = [models]
        return min(
            (self.ceilings.get(m, config.DEFAULT_TOKEN_CEILING) for m in models),
            default=config.DEFAULT_TOKEN_CEILING,
        )

    def enforce(
        self,
        *,
        document_context: str | None,
        history: Sequence[ConversationTurn],
        user_turn: ConversationTurn,
        model: str,
        fallback_models: Sequence[str] = (),
    ) -> Payload:
        """Assemble the payload and degrade it until it fits.

        Args:
            document_context: Routed document excerpt, if any.
            history: Routed history, possibly starting with a summary turn.
            user_turn: The new user question.
            model: Primary model for this turn.
            fallback_models: Other models the turn may fall back to.

        Returns:
            The final payload. Its estimate is under the ceiling unless the
            document context had to be dropped and it still does not fit.
        """
        ceiling = self.ceiling_for([model, *fallback_models])
        turns = list(history)
        context = document_context or None
        degradations: list[str] = []

        def estimate() -> int:
            return estimate_conversation_tokens([*turns, user_turn], context)

        total = estimate()

        if total > ceiling and context:
            context_tokens = estimate_tokens(context)
            target = int(context_tokens * (ceiling / total) * SHRINK_SAFETY_MARGIN)
            context = truncate_text(context, target) or None
            degradations.append("shrink_context")
            logger.info(
                "Context over budget (%d > %d), shrinking %d -> %d tokens",
                total,
                ceiling,
                context_tokens,
                target,
            )
            total = estimate()

        if not (turns and turns[0].role == "system" and turns[0].kind != "summary"):
            turns.insert(0, preamble_turn())
            total = estimate()

        if total > ceiling and len(turns) > 1:
            summaries = [turn for turn in turns[1:] if turn.kind == "summary"]
            raw = [turn for turn in turns[1:] if turn.role != "system"]
            turns = [turns[0], *summaries, *raw[-RECENT_TURNS_ON_COLLAPSE:]]
            degradations.append("collapse_history")
            logger.info("History collapsed to %d turns", len(turns))
            total = estimate()

        if total > ceiling and context:
            context = None
            degradations.append("drop_context")
            logger.warning("Dropped document context to fit %s", model)
            total = estimate()

        if total > ceiling:
            logger.warning(
                "Payload still over budget (%d > %d), sending best effort",
                total,
                ceiling,
            )

        return Payload(
            turns=[*turns, user_turn],
            document_context=context,
            model=model,
            ceiling=ceiling,
            estimated_tokens=total,
            degradations=degradations,
        )
