"""Tests for the three-tier document context extractor."""

from unittest.mock import patch

import pytest

from chatnote import ContextExtractor
from chatnote.tokens import CHARS_PER_TOKEN, estimate_tokens
from chatnote.truncation import TRUNCATION_MARKER


class FakeRetriever:
    def __init__(self, result: str = "", error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.calls = []

    async def retrieve(self, doc_text: str, question: str, token_budget: int) -> str:
        self.calls.append((question, token_budget))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def document_with_topic(long_document):
    middle = len(long_document) // 2
    return (
        long_document[:middle]
        + " Photosynthesis converts light into chemical energy. "
        + long_document[middle:]
    )


@pytest.mark.asyncio
async def test_document_that_fits_is_returned_whole():
    retriever = FakeRetriever("unused")
    extractor = ContextExtractor(retriever)

    result = await extractor.extract_context("Small document.", "Anything?", 100)

    assert result == "Small document."
    assert extractor.last_method == "full"
    assert retriever.calls == []


@pytest.mark.asyncio
async def test_semantic_result_is_preferred(long_document):
    passage = "Relevant passage. " * 20
    retriever = FakeRetriever(passage)
    extractor = ContextExtractor(retriever)

    result = await extractor.extract_context(long_document, "What is it?", 500)

    assert result == passage
    assert extractor.last_method == "semantic"
    assert retriever.calls == [("What is it?", 500)]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "retriever",
    [
        FakeRetriever(error=RuntimeError("embedding service down")),
        FakeRetriever("too short"),
        None,
    ],
)
async def test_keyword_search_used_when_semantic_unavailable(
    retriever, document_with_topic
):
    extractor = ContextExtractor(retriever)

    result = await extractor.extract_context(
        document_with_topic, "How does photosynthesis work?", 500
    )

    assert extractor.last_method == "keyword"
    assert "Photosynthesis converts light" in result
    assert len(result) <= 500 * CHARS_PER_TOKEN


@pytest.mark.asyncio
async def test_truncation_is_last_resort(long_document):
    extractor = ContextExtractor()

    with patch(
        "chatnote.context.search_by_keywords", side_effect=RuntimeError("boom")
    ):
        result = await extractor.extract_context(long_document, "Anything?", 300)

    assert extractor.last_method == "truncated"
    assert TRUNCATION_MARKER in result
    assert estimate_tokens(result) <= 300 + estimate_tokens(TRUNCATION_MARKER)
