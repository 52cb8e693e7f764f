"""Data models for the context-routing engine."""

from dataclasses import dataclass, field
from typing import Any, Literal

import numpy as np

Role = Literal["user", "assistant", "system"]
AnswerComplexity = Literal["quick", "detailed", "reasoning"]
ClassificationMethod = Literal["rule-based", "llm"]
GenerationMode = Literal["auto", "reasoning", "advanced"]
TurnKind = Literal["message", "preamble", "summary"]

# Plain text, or OpenAI-style parts: {"type": "text", "text": ...} and
# {"type": "image_url", "image_url": {"url": ...}}
MessageContent = str | list[dict[str, Any]]


@dataclass(frozen=True)
class TurnMetadata:
    """Optional document anchoring for a turn."""

    linked_doc_text: str | None = None
    page_number: int | None = None
    text_position: dict[str, float] | None = None


@dataclass(frozen=True)
class ConversationTurn:
    """Represents a single message in the conversation."""

    role: Role
    content: MessageContent
    metadata: TurnMetadata = field(default_factory=TurnMetadata)
    kind: TurnKind = "message"

    def to_message(self) -> dict[str, Any]:
        """Render the turn in chat-completions message format.

        Returns:
            Mapping with ``role`` and ``content`` keys.
        """
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class QuestionClassification:
    """Information needs of a single user question."""

    needs_doc_context: bool
    needs_history: bool
    needs_full_context: bool
    answer_complexity: AnswerComplexity
    is_clarification: bool
    is_follow_up: bool
    is_definition: bool
    is_calculation: bool
    is_comparison: bool
    doc_relevance_score: float
    history_relevance_score: float
    classification_method: ClassificationMethod
    confidence: float


@dataclass(frozen=True)
class RoutingDecision:
    """How much document and history a turn may carry."""

    include_doc_context: bool
    doc_context_tokens: int
    include_history: bool
    history_depth: int
    summarize_old_turns: bool
    recent_turn_count: int
    prefer_quick_model: bool
    needs_reasoning: bool


@dataclass(frozen=True)
class ParsedResponse:
    """Model output split into optional reasoning and the visible answer."""

    answer: str
    reasoning: str | None = None


@dataclass
class Payload:
    """Everything handed to the generation service for one turn."""

    turns: list[ConversationTurn]
    document_context: str | None
    model: str
    ceiling: int
    estimated_tokens: int
    degradations: list[str] = field(default_factory=list)

    @property
    def within_ceiling(self) -> bool:
        return self.estimated_tokens <= self.ceiling


@dataclass
class TurnResult:
    """Outcome of one processed user turn."""

    answer: str
    reasoning: str | None
    classification: QuestionClassification
    routing: RoutingDecision
    model: str
    estimated_tokens: int
    cancelled: bool = False


@dataclass
class DocumentChunk:
    """Represents a chunk of text from a document."""

    content: str
    metadata: dict[str, Any]
    embedding: np.ndarray | None = None
