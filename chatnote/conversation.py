"""Conversation management: routes each turn's context and streams the answer."""

from collections.abc import Sequence

from openai import AsyncOpenAI

from .budget import BudgetEnforcer
from .classifier import QuestionClassifier
from .config import config
from .context import ContextExtractor
from .embeddings import EmbeddingService
from .exceptions import GenerationCancelledError, GenerationError
from .generation import CancellationToken, ChunkCallback, GenerationService
from .models import (
    ConversationTurn,
    GenerationMode,
    RoutingDecision,
    TurnMetadata,
    TurnResult,
)
from .reasoning import parse_reasoning_response, synthesize_conclusion
from .retrieval import SemanticRetriever
from .router import route, select_models
from .summarizer import summarize_history
from .tokens import extract_text

logger = config.get_logger(__name__)

EMPTY_ANSWER = "I apologize, but I couldn't generate a response."


def build_user_turn(
    question: str, selected_text: str | None = None
) -> ConversationTurn:
    """Compose the user turn from the typed question and the PDF selection.

    Returns:
        The user turn, with the selection recorded as its linked text.
    """
    question = question.strip()
    if not selected_text:
        return ConversationTurn(role="user", content=question)

    if question:
        content = f"{question}\n\nContext from PDF: {selected_text}"
    else:
        content = f"Tell me about this: {selected_text}"
    return ConversationTurn(
        role="user",
        content=content,
        metadata=TurnMetadata(linked_doc_text=selected_text),
    )


def build_history(
    history: Sequence[ConversationTurn],
    decision: RoutingDecision,
    *,
    aggressive: bool = False,
) -> list[ConversationTurn]:
    """Select the recent raw turns and summarize the older ones.

    Returns:
        An optional summary turn followed by the most recent turns.
    """
    if not decision.include_history:
        return []

    count = decision.recent_turn_count
    split = len(history) - count
    recent = list(history[split:])
    if decision.summarize_old_turns and split > 0:
        summary = summarize_history(list(history[:split]), aggressive=aggressive)
        if summary.content:
            return [summary, *recent]
    return recent


class ConversationManager:
    """Manages one conversation: its turns and the in-flight generation."""

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        *,
        classifier: QuestionClassifier | None = None,
        extractor: ContextExtractor | None = None,
        generator: GenerationService | None = None,
        enforcer: BudgetEnforcer | None = None,
    ) -> None:
        """Initialize ConversationManager.

        Args:
            client: OpenAI-compatible client shared by every component. If
                None, one is built from config.
            classifier: Question classifier override.
            extractor: Context extractor override.
            generator: Generation service override.
            enforcer: Budget enforcer override.
        """
        self.client = client or AsyncOpenAI(
            api_key=config.get_openai_api_key(),
            base_url=config.OPENAI_BASE_URL,
            default_headers=config.get_api_headers() or None,
        )
        self.classifier = classifier or QuestionClassifier(self.client)
        self.extractor = extractor or ContextExtractor(
            SemanticRetriever(EmbeddingService(client=self.client))
        )
        self.generator = generator or GenerationService(self.client)
        self.enforcer = enforcer or BudgetEnforcer()
        self.conversation_history: list[ConversationTurn] = []
        self._cancel_token: CancellationToken | None = None

    def cancel(self) -> None:
        """Cancel the in-flight generation, if any. Safe to call repeatedly."""
        if self._cancel_token is not None:
            self._cancel_token.cancel()

    async def answer_question(
        self,
        question: str,
        *,
        document_text: str | None = None,
        selected_text: str | None = None,
        mode: GenerationMode = "auto",
        on_chunk: ChunkCallback | None = None,
    ) -> TurnResult:
        """Answer a question with routed document context and history.

        A new call cancels any generation still running for this conversation.

        Args:
            question: The typed question; may be empty when text is selected.
            document_text: Full text of the open document, if any.
            selected_text: Text the user selected in the document.
            mode: Generation mode.
            on_chunk: Called with each streamed answer fragment.

        Returns:
            The answer and how it was routed. ``cancelled`` is set when the
            turn was cancelled; the answer then holds the partial output.

        Raises:
            GenerationError: If the generation service failed on every model.
        """
        self.cancel()
        token = CancellationToken()
        self._cancel_token = token

        user_turn = build_user_turn(question, selected_text)
        user_text = extract_text(user_turn.content)
        history = [
            turn
            for turn in self.conversation_history
            if turn.role != "assistant" or turn.content
        ]
        logger.info("Processing question: %s", user_text[:100])

        classification = await self.classifier.classify(
            user_text, has_document=bool(document_text), history=history
        )
        decision = route(classification, history_length=len(history), mode=mode)

        document_context = None
        if decision.include_doc_context and document_text:
            document_context = await self.extractor.extract_context(
                document_text, user_text, decision.doc_context_tokens
            )
            logger.info(
                "Document context via %s (%d chars)",
                self.extractor.last_method,
                len(document_context),
            )

        routed_history = build_history(
            history, decision, aggressive=mode == "reasoning"
        )
        models = select_models(decision, mode)
        if not models:
            msg = f"No models are configured for {mode} mode."
            raise GenerationError(msg)

        payload = self.enforcer.enforce(
            document_context=document_context,
            history=routed_history,
            user_turn=user_turn,
            model=models[0],
            fallback_models=models[1:],
        )
        if payload.degradations:
            logger.info("Payload degraded: %s", ", ".join(payload.degradations))

        def result(
            answer: str, reasoning: str | None, model: str, *, cancelled: bool = False
        ) -> TurnResult:
            return TurnResult(
                answer=answer,
                reasoning=reasoning,
                classification=classification,
                routing=decision,
                model=model,
                estimated_tokens=payload.estimated_tokens,
                cancelled=cancelled,
            )

        if token.cancelled:
            # Cancelled while routing; nothing was added to the history yet
            if self._cancel_token is token:
                self._cancel_token = None
            logger.info("Turn cancelled before generation")
            return result("", None, payload.model, cancelled=True)

        placeholder = ConversationTurn(role="assistant", content="")
        self.conversation_history.extend([user_turn, placeholder])
        parts: list[str] = []

        def handle_chunk(chunk: str) -> None:
            nonlocal placeholder
            parts.append(chunk)
            placeholder = self._replace_turn(
                placeholder, ConversationTurn(role="assistant", content="".join(parts))
            )
            if on_chunk is not None:
                on_chunk(chunk)

        try:
            model, text = await self.generator.generate(
                payload.turns,
                payload.document_context,
                models,
                token,
                handle_chunk,
                reasoning=decision.needs_reasoning,
            )
        except GenerationCancelledError:
            partial = parse_reasoning_response("".join(parts))
            self._replace_turn(
                placeholder,
                ConversationTurn(role="assistant", content=partial.answer)
                if partial.answer
                else None,
            )
            logger.info("Generation cancelled after %d chunks", len(parts))
            return result(
                partial.answer, partial.reasoning, payload.model, cancelled=True
            )
        except GenerationError:
            self._replace_turn(placeholder, None)
            raise
        except Exception as exc:
            self._replace_turn(placeholder, None)
            logger.exception("Unexpected generation failure")
            msg = "An error occurred while processing your request. Please try again."
            raise GenerationError(msg) from exc
        finally:
            if self._cancel_token is token:
                self._cancel_token = None

        parsed = parse_reasoning_response(text)
        answer = parsed.answer
        if not answer and parsed.reasoning:
            answer = synthesize_conclusion(parsed.reasoning) or ""
            logger.warning("Empty answer from %s, recovered from reasoning", model)
        answer = answer or EMPTY_ANSWER

        self._replace_turn(
            placeholder, ConversationTurn(role="assistant", content=answer)
        )
        logger.info(
            "Answered with %s (~%d tokens sent)", model, payload.estimated_tokens
        )
        return result(answer, parsed.reasoning, model)

    def _replace_turn(
        self, turn: ConversationTurn, replacement: ConversationTurn | None
    ) -> ConversationTurn | None:
        """Swap ``turn`` (matched by identity) for ``replacement``, or remove it.

        Returns:
            The replacement. Nothing changes if ``turn`` is no longer in the
            history, e.g. after ``clear_history``.
        """
        for position, existing in enumerate(self.conversation_history):
            if existing is turn:
                if replacement is None:
                    del self.conversation_history[position]
                else:
                    self.conversation_history[position] = replacement
                break
        return replacement

    def clear_history(self) -> None:
        """Clear the conversation history."""
        self.cancel()
        self.conversation_history = []
        logger.info("Conversation history cleared.")
