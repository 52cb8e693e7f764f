"""Document context extraction with semantic, keyword and blind fallbacks."""

from .config import config
from .keyword_search import expand_query, extract_keywords, search_by_keywords
from .retrieval import ContextRetriever
from .tokens import CHARS_PER_TOKEN, estimate_tokens
from .truncation import truncate_text

logger = config.get_logger(__name__)

MIN_USEFUL_CONTEXT_CHARS = 100


class ContextExtractor:
    """Cuts a document down to the part worth sending with a question.

    Tries semantic retrieval first, then keyword search, then plain
    head/tail truncation. Each tier is only accepted if it returns more
    than 100 characters.
    """

    def __init__(self, retriever: ContextRetriever | None = None) -> None:
        """Initialize ContextExtractor.

        Args:
            retriever: Optional semantic retrieval service.
        """
        self.retriever = retriever
        self.last_method: str | None = None

    async def extract_context(
        self, doc_text: str, question: str, token_budget: int
    ) -> str:
        """Return document text that fits ``token_budget`` tokens.

        Returns:
            The document itself when it fits, otherwise the best excerpt.
        """
        if estimate_tokens(doc_text) <= token_budget:
            self.last_method = "full"
            return doc_text

        if self.retriever is not None:
            try:
                result = await self.retriever.retrieve(doc_text, question, token_budget)
            except Exception:
                logger.warning(
                    "Semantic retrieval failed, trying keyword search", exc_info=True
                )
            else:
                if len(result) > MIN_USEFUL_CONTEXT_CHARS:
                    self.last_method = "semantic"
                    return result
                logger.info("Semantic retrieval result too small (%d)", len(result))

        try:
            keywords = expand_query(extract_keywords(question))
            result = search_by_keywords(
                doc_text, keywords, token_budget * CHARS_PER_TOKEN
            )
        except Exception:
            logger.warning("Keyword search failed, truncating", exc_info=True)
        else:
            if len(result) > MIN_USEFUL_CONTEXT_CHARS:
                self.last_method = "keyword"
                return result

        self.last_method = "truncated"
        return truncate_text(doc_text, token_budget)
