"""ChatNote - context routing and token budgeting for document chat."""

from .budget import BudgetEnforcer
from .classifier import QuestionClassifier, classify_rules
from .context import ContextExtractor
from .conversation import ConversationManager
from .document_processing import DocumentLoader, TextChunker
from .embeddings import EmbeddingService
from .exceptions import (
    AllAttemptsFailedError,
    ChatNoteError,
    GenerationCancelledError,
    GenerationError,
)
from .generation import CancellationToken, GenerationService
from .keyword_search import expand_query, extract_keywords, search_by_keywords
from .models import (
    ConversationTurn,
    DocumentChunk,
    ParsedResponse,
    Payload,
    QuestionClassification,
    RoutingDecision,
    TurnMetadata,
    TurnResult,
)
from .reasoning import parse_reasoning_response
from .retrieval import SemanticRetriever
from .router import route, select_models
from .summarizer import summarize_history
from .tokens import estimate_tokens
from .truncation import truncate_text

__all__ = [
    "AllAttemptsFailedError",
    "BudgetEnforcer",
    "CancellationToken",
    "ChatNoteError",
    "ContextExtractor",
    "ConversationManager",
    "ConversationTurn",
    "DocumentChunk",
    "DocumentLoader",
    "EmbeddingService",
    "GenerationCancelledError",
    "GenerationError",
    "GenerationService",
    "ParsedResponse",
    "Payload",
    "QuestionClassification",
    "QuestionClassifier",
    "RoutingDecision",
    "SemanticRetriever",
    "TextChunker",
    "TurnMetadata",
    "TurnResult",
    "classify_rules",
    "estimate_tokens",
    "expand_query",
    "extract_keywords",
    "parse_reasoning_response",
    "route",
    "search_by_keywords",
    "select_models",
    "summarize_history",
    "truncate_text",
]
