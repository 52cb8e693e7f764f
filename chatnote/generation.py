"""Streaming client for the downstream text-generation service."""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

import openai
from openai import AsyncOpenAI

from .config import config
from .exceptions import (
    AllAttemptsFailedError,
    GenerationCancelledError,
    GenerationError,
)
from .fallback import first_success
from .models import ConversationTurn
from .reasoning import wrap_reasoning

logger = config.get_logger(__name__)

ASSISTANT_INSTRUCTIONS = """You are an AI assistant for ChatNote, a personal \
knowledge management application. Help users understand and work with their \
notes and documents. Be helpful, accurate and concise. Use the provided PDF \
context when it is relevant, and say so when it does not contain the answer."""

GPT_OSS_MODELS = frozenset({"openai/gpt-oss-120b", "openai/gpt-oss-20b"})
QWEN_MODELS = frozenset({"qwen/qwen3-32b"})

RETRYABLE_PATTERNS = (
    "rate limit",
    "too many requests",
    "service unavailable",
    "internal server error",
    "bad gateway",
    "gateway timeout",
    "timeout",
)
# Statuses another model may not hit (unknown model, oversized request)
MODEL_SPECIFIC_STATUSES = frozenset({400, 404, 413, 422})

ChunkCallback = Callable[[str], None]
T = TypeVar("T")


class CancellationToken:
    """Signals that an in-flight generation should stop."""

    def __init__(self) -> None:
        """Initialize an unset token."""
        self._event = asyncio.Event()

    def cancel(self) -> None:
        """Cancel; calling again has no effect."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise GenerationCancelledError if the token was cancelled.

        Raises:
            GenerationCancelledError: If ``cancel`` has been called.
        """
        if self.cancelled:
            msg = "Request aborted by user"
            raise GenerationCancelledError(msg)

    async def wait_for(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable``, abandoning it as soon as the token is cancelled.

        Returns:
            The awaitable's result.

        Raises:
            GenerationCancelledError: If the token was cancelled first.
        """
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
        self.raise_if_cancelled()
        return task.result()


def _status_of(error: Exception) -> int | None:
    return getattr(error, "status_code", None)


def is_retryable_error(error: Exception) -> bool:
    """Check if an error is worth retrying (rate limit, temporary server error).

    Returns:
        True for 429, 5xx, or messages naming a transient failure.
    """
    status = _status_of(error)
    if status == 429 or (status is not None and 500 <= status < 600):
        return True
    if isinstance(error, (openai.APIConnectionError, openai.APITimeoutError)):
        return True
    message = str(error).lower()
    return any(pattern in message for pattern in RETRYABLE_PATTERNS)


def sanitize_error_message(error: Exception) -> str:
    """Map a service error to a user-friendly message without provider details.

    Returns:
        A message safe to show to the user.
    """
    status = _status_of(error)
    message = str(error)

    if status == 429:
        return "Rate limit reached. Please wait a moment and try again."
    if status == 401:
        return "Authentication failed. Please check your API key."
    if status == 400:
        if "API key not configured" in message:
            return "API key not configured. Please add your API key in settings."
        if "model" in message or "invalid" in message:
            return "Invalid request. Please try again or select a different model."
        return "Invalid request. Please check your input and try again."
    if status == 403:
        return "Access denied. Please check your API key permissions."
    if status == 404:
        return "Model not found. Please select a different model."
    if status is not None and 500 <= status < 600:
        return "Service temporarily unavailable. Please try again in a moment."
    if isinstance(error, (openai.APIConnectionError, openai.APITimeoutError)):
        return "Could not reach the AI service. Please check your connection."

    logger.error("API error details (not shown to user): status=%s %s", status, message)
    return "An error occurred while processing your request. Please try again."


def build_messages(
    turns: Sequence[ConversationTurn], document_context: str | None
) -> list[dict[str, Any]]:
    """Prefix the turns with the assistant instructions and document context.

    Returns:
        Chat-completions messages.
    """
    system_content = ASSISTANT_INSTRUCTIONS
    if document_context:
        system_content = (
            f"{ASSISTANT_INSTRUCTIONS}\n\n"
            "## Current PDF Context\n\n"
            "The user is reading the following document content:\n"
            f'"{document_context}"\n\n'
            "Use this context to provide relevant and accurate answers. If the "
            "context doesn't contain relevant information, you can still help "
            "with general questions."
        )
    return [
        {"role": "system", "content": system_content},
        *(turn.to_message() for turn in turns),
    ]


def reasoning_options(model: str, *, reasoning: bool) -> dict[str, Any]:
    """Provider-specific request fields asking a model to return its reasoning.

    Returns:
        Extra request body fields, empty for models without native reasoning.
    """
    if not reasoning:
        return {}
    if model in GPT_OSS_MODELS:
        return {"include_reasoning": True}
    if model in QWEN_MODELS:
        return {"reasoning_format": "parsed"}
    return {}


class GenerationService:
    """Streams completions, falling back through a model chain on failure."""

    def __init__(self, client: AsyncOpenAI | None = None) -> None:
        """Initialize GenerationService.

        Args:
            client: OpenAI-compatible client. If None, one is built from config.
        """
        self.client = client or AsyncOpenAI(
            api_key=config.get_openai_api_key(),
            base_url=config.OPENAI_BASE_URL,
            default_headers=config.get_api_headers() or None,
        )

    async def generate(  # noqa: PLR0913
        self,
        turns: Sequence[ConversationTurn],
        document_context: str | None,
        models: Sequence[str],
        cancel_token: CancellationToken,
        on_chunk: ChunkCallback | None = None,
        *,
        reasoning: bool = False,
    ) -> tuple[str, str]:
        """Generate a reply, trying each model until one answers.

        A model that has already streamed output is not retried with another
        model, and cancellation is never retried.

        Args:
            turns: Payload turns, ending with the user's question.
            document_context: Document excerpt to place in the system message.
            models: Candidate models, best first.
            cancel_token: Cancellation signal checked between chunks.
            on_chunk: Called with each streamed content fragment.
            reasoning: Ask models with native reasoning support to return it.

        Returns:
            The model that answered and its full text, with any separately
            streamed reasoning embedded between sentinel markers.

        Raises:
            GenerationCancelledError: If the token was cancelled.
            GenerationError: If every model failed.
        """
        messages = build_messages(turns, document_context)
        streamed = False

        def mark_streamed(text: str) -> None:
            nonlocal streamed
            streamed = True
            if on_chunk is not None:
                on_chunk(text)

        async def attempt(model: str) -> str:
            return await self._stream(
                model, messages, cancel_token, mark_streamed, reasoning=reasoning
            )

        def should_continue(error: Exception) -> bool:
            if streamed or not isinstance(error, openai.APIError):
                return False
            return (
                is_retryable_error(error)
                or _status_of(error) in MODEL_SPECIFIC_STATUSES
            )

        try:
            return await first_success(
                models, attempt, should_continue=should_continue
            )
        except AllAttemptsFailedError as exc:
            last = exc.last_error
            logger.error("Generation failed on all models: %s", ", ".join(exc.errors))
            if last is None:
                msg = "Unable to process your request. Please try again later."
                raise GenerationError(msg) from exc
            raise GenerationError(
                sanitize_error_message(last), _status_of(last)
            ) from exc
        except openai.APIError as exc:
            logger.exception("Generation failed")
            raise GenerationError(
                sanitize_error_message(exc), _status_of(exc)
            ) from exc

    async def _stream(
        self,
        model: str,
        messages: list[dict[str, Any]],
        cancel_token: CancellationToken,
        on_chunk: ChunkCallback,
        *,
        reasoning: bool,
    ) -> str:
        cancel_token.raise_if_cancelled()
        logger.info("Generating with %s", model)
        stream = await self.client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=config.CHAT_MAX_TOKENS,
            temperature=config.CHAT_TEMPERATURE,
            stream=True,
            extra_body=reasoning_options(model, reasoning=reasoning) or None,
        )

        content_parts: list[str] = []
        reasoning_parts: list[str] = []
        async with stream:
            chunks = aiter(stream)
            while True:
                try:
                    chunk = await cancel_token.wait_for(anext(chunks))
                except StopAsyncIteration:
                    break
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                reasoning_text = getattr(delta, "reasoning", None)
                if reasoning_text:
                    reasoning_parts.append(reasoning_text)
                if delta.content:
                    content_parts.append(delta.content)
                    on_chunk(delta.content)

        content = "".join(content_parts)
        if reasoning_parts:
            return wrap_reasoning("".join(reasoning_parts), content)
        return content
