"""Test configuration and fixtures for ChatNote tests.

This module provides reusable test fixtures organized by functionality:
- Constants and test data
- Mock services and API responses
- EmbeddingService fixtures
- Text processing fixtures
- Conversation turn factories
- Streaming generation helpers
"""

import asyncio
import hashlib
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

import httpx
import numpy as np
import openai
import pytest

from chatnote import (
    ConversationTurn,
    EmbeddingService,
    QuestionClassification,
    TextChunker,
)


class TestConstants:
    """Centralized test constants to avoid repetition across test files.

    All test constants are defined here to maintain consistency across
    the test suite and make it easy to update values globally.
    """

    # API Configuration
    TEST_API_KEY = "test-key"
    TEST_OPENAI_MODEL = "text-embedding-3-small"
    DEFAULT_EMBEDDING_DIMENSION = 384

    # Text Chunking Configuration
    SMALL_CHUNK_SIZE = 100
    SMALL_CHUNK_OVERLAP = 20
    DEFAULT_CHUNK_SIZE = 500
    DEFAULT_CHUNK_OVERLAP = 100

    # Models
    PRIMARY_MODEL = "primary-model"
    BACKUP_MODEL = "backup-model"
    SMALL_MODEL = "small-model"
    SMALL_MODEL_CEILING = 5000


class MockEmbeddingService:
    """Mock embedding service for testing without API calls.

    Generates deterministic embeddings based on text content hash,
    ensuring consistent test results across runs.
    """

    def __init__(
        self, dimension: int = TestConstants.DEFAULT_EMBEDDING_DIMENSION
    ) -> None:
        """Initialize mock embedding service.

        Args:
            dimension: Dimensionality of generated embeddings.
        """
        self.dimension = dimension
        self.batch_calls = 0

    def embed(self, text: str) -> np.ndarray:
        """Generate deterministic mock embedding based on text hash."""
        seed = int.from_bytes(
            hashlib.sha256(text.lower().encode("utf-8")).digest()[:8],
            byteorder="big",
            signed=False,
        )
        rng = np.random.default_rng(seed)
        embedding = rng.normal(0, 1, self.dimension)
        return (embedding / np.linalg.norm(embedding)).astype(np.float32)

    async def get_embedding(self, text: str) -> np.ndarray:
        return self.embed(text)

    async def get_embeddings_batch(self, texts: list[str]) -> list[np.ndarray]:
        """Generate batch of mock embeddings."""
        self.batch_calls += 1
        return [self.embed(text) for text in texts]


class FakeStream:
    """Async iterable standing in for an OpenAI chat completion stream."""

    def __init__(
        self, chunks, error: Exception | None = None, *, stall: bool = False
    ) -> None:
        self.chunks = list(chunks)
        self.error = error
        self.stall = stall
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self.chunks:
            yield chunk
        if self.stall:
            # Provider stops sending without closing the connection
            await asyncio.Event().wait()
        if self.error is not None:
            raise self.error


def create_stream_chunk(
    content: str | None = None, reasoning: str | None = None
) -> SimpleNamespace:
    """Create one streamed chat completion chunk."""
    delta = SimpleNamespace(content=content, reasoning=reasoning)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta)])


def create_mock_stream(
    contents: list[str],
    *,
    reasoning: list[str] | None = None,
    error: Exception | None = None,
    stall: bool = False,
) -> FakeStream:
    """Create a stream yielding reasoning chunks, then content chunks."""
    chunks = [create_stream_chunk(reasoning=part) for part in reasoning or []]
    chunks.extend(create_stream_chunk(content=part) for part in contents)
    return FakeStream(chunks, error=error, stall=stall)


def create_mock_openai_response(embeddings: list[list[float]]) -> Mock:
    """Create a mock OpenAI embeddings API response.

    Args:
        embeddings: List of embedding vectors to return.

    Returns:
        Mock object representing OpenAI embeddings API response.
    """
    mock_response = Mock()
    mock_response.data = [Mock(embedding=emb) for emb in embeddings]
    return mock_response


def create_mock_chat_response(content: str | None) -> Mock:
    """Create a mock OpenAI chat completion response.

    Args:
        content: The content for the chat completion response.

    Returns:
        Mock object representing OpenAI chat completion response.
    """
    mock_response = Mock()
    mock_response.choices = [Mock(message=Mock(content=content))]
    return mock_response


def create_mock_chat_client(side_effect=None, return_value=None) -> Mock:
    """Create a client whose ``chat.completions.create`` is an AsyncMock."""
    client = Mock()
    client.chat.completions.create = AsyncMock(
        side_effect=side_effect, return_value=return_value
    )
    return client


def make_status_error(status: int, message: str = "error"):
    """Build an ``openai.APIStatusError`` subclass instance for ``status``."""
    request = httpx.Request("POST", "https://api.example.test/v1/chat/completions")
    response = httpx.Response(status, request=request)
    error_classes = {
        400: openai.BadRequestError,
        401: openai.AuthenticationError,
        403: openai.PermissionDeniedError,
        404: openai.NotFoundError,
        429: openai.RateLimitError,
    }
    error_class = error_classes.get(status, openai.InternalServerError)
    return error_class(message, response=response, body=None)


@pytest.fixture
def openai_embeddings_api_mock():
    """Base fixture that patches the async OpenAI embeddings.create method.

    This is the foundation fixture that others can build upon.
    Returns the mock object directly without any pre-configuration.
    """
    with patch(
        "openai.resources.embeddings.AsyncEmbeddings.create", new_callable=AsyncMock
    ) as mock_create:
        yield mock_create


@pytest.fixture
def openai_embeddings_factory(openai_embeddings_api_mock):
    """Factory for creating OpenAI embeddings API mocks with different scenarios."""

    def _create_mock(  # noqa: ANN202
        scenario="single_success",
        embeddings=None,
        error_message="API Error",
    ):
        """Create a mock based on scenario type.

        Args:
            scenario: Type of mock ('single_success', 'batch_success', 'error',
                'multiple_batches', 'partial_failure')
            embeddings: Custom embeddings to return, or None for defaults
            error_message: Custom error message for error scenarios
        """
        openai_embeddings_api_mock.reset_mock()
        openai_embeddings_api_mock.side_effect = None
        openai_embeddings_api_mock.return_value = None

        if scenario == "single_success":
            mock_embedding = embeddings or [0.1, 0.2, 0.3, 0.4, 0.5]
            openai_embeddings_api_mock.return_value = create_mock_openai_response(
                [mock_embedding]
            )
        elif scenario == "batch_success":
            mock_embeddings = embeddings or [
                [0.1, 0.2, 0.3],
                [0.4, 0.5, 0.6],
                [0.7, 0.8, 0.9],
            ]
            openai_embeddings_api_mock.return_value = create_mock_openai_response(
                mock_embeddings
            )
        elif scenario == "error":
            openai_embeddings_api_mock.side_effect = Exception(error_message)
        elif scenario == "multiple_batches":
            openai_embeddings_api_mock.side_effect = [
                create_mock_openai_response([[0.1, 0.2], [0.3, 0.4]]),
                create_mock_openai_response([[0.5, 0.6], [0.7, 0.8]]),
            ]
        elif scenario == "partial_failure":
            openai_embeddings_api_mock.side_effect = [
                create_mock_openai_response([[0.1, 0.2]]),
                Exception("Second batch failed"),
            ]

        return openai_embeddings_api_mock

    return _create_mock


@pytest.fixture
def embedding_service_factory():
    """Factory for creating EmbeddingService instances with different configurations."""

    def _create_service(api_key=None, model=None):  # noqa: ANN202
        """Create an EmbeddingService instance.

        Args:
            api_key: API key to use, defaults to TestConstants.TEST_API_KEY
            model: Model to use, defaults to config default
        """
        api_key = api_key or TestConstants.TEST_API_KEY

        if model is not None:
            return EmbeddingService(api_key=api_key, model=model)
        return EmbeddingService(api_key=api_key)

    return _create_service


@pytest.fixture
def embedding_service(embedding_service_factory):
    """Default EmbeddingService with test API key for most tests."""
    return embedding_service_factory(model=TestConstants.TEST_OPENAI_MODEL)


@pytest.fixture
def mock_embedding_service():
    """Fresh MockEmbeddingService for consistent test embeddings."""
    return MockEmbeddingService()


@pytest.fixture
def text_chunker_small():
    """Text chunker configured for small chunks (100/20)."""
    return TextChunker(
        chunk_size=TestConstants.SMALL_CHUNK_SIZE,
        overlap=TestConstants.SMALL_CHUNK_OVERLAP,
    )


@pytest.fixture
def turn_factory():
    """Factory for conversation turns."""

    def _create_turn(
        role: str = "user", content="Hello", **kwargs
    ) -> ConversationTurn:
        return ConversationTurn(role=role, content=content, **kwargs)

    return _create_turn


@pytest.fixture
def history_factory():
    """Factory for alternating user/assistant histories of ``n`` turns."""

    def _create_history(n: int) -> list[ConversationTurn]:
        return [
            ConversationTurn(
                role="user" if i % 2 == 0 else "assistant",
                content=f"Question {i // 2}" if i % 2 == 0 else f"Answer {i // 2}",
            )
            for i in range(n)
        ]

    return _create_history


@pytest.fixture
def classification_factory():
    """Factory for QuestionClassification with overridable fields."""

    def _create_classification(**overrides) -> QuestionClassification:
        fields = {
            "needs_doc_context": False,
            "needs_history": False,
            "needs_full_context": False,
            "answer_complexity": "detailed",
            "is_clarification": False,
            "is_follow_up": False,
            "is_definition": False,
            "is_calculation": False,
            "is_comparison": False,
            "doc_relevance_score": 0.0,
            "history_relevance_score": 0.0,
            "classification_method": "rule-based",
            "confidence": 0.9,
        }
        fields.update(overrides)
        return QuestionClassification(**fields)

    return _create_classification


@pytest.fixture
def long_document():
    """Document of numbered sentences, well over any context budget."""
    return " ".join(
        f"Sentence number {i} talks about general background material."
        for i in range(1000)
    )


@pytest.fixture
def chat_client_factory():
    """Factory for clients with a mocked async ``chat.completions.create``."""
    return create_mock_chat_client


@pytest.fixture
def chat_response_factory():
    """Factory for non-streaming chat completion responses."""
    return create_mock_chat_response


@pytest.fixture
def stream_factory():
    """Factory for streamed chat completions."""
    return create_mock_stream


@pytest.fixture
def status_error_factory():
    """Factory for OpenAI API status errors."""
    return make_status_error
