"""Embedding-based retrieval of the document passages relevant to a question."""

import hashlib
from collections import OrderedDict
from typing import Protocol

import numpy as np

from .config import config
from .document_processing import TextChunker
from .embeddings import EmbeddingService
from .models import DocumentChunk
from .tokens import CHARS_PER_TOKEN

logger = config.get_logger(__name__)

PASSAGE_SEPARATOR = "\n\n---\n\n"


class ContextRetriever(Protocol):
    """Anything that can pick question-relevant text out of a document."""

    async def retrieve(self, doc_text: str, question: str, token_budget: int) -> str:
        """Return relevant document text within ``token_budget`` tokens."""
        ...


def cosine_similarity(
    query_embedding: np.ndarray,
    embeddings: np.ndarray,
) -> np.ndarray:
    """Calculate cosine similarity between query and document embeddings.

    Returns:
        np.ndarray: Array of cosine similarity scores
                between the query and each document embedding.
    """
    query_norm = query_embedding / np.linalg.norm(query_embedding)
    doc_norms = embeddings / np.linalg.norm(embeddings, axis=1, keepdims=True)

    return np.dot(doc_norms, query_norm)


class SemanticRetriever:
    """Ranks document chunks against the question by embedding similarity.

    Chunk embeddings are computed once per distinct document text. The most
    recently used ``max_documents`` indices stay in memory; older ones are
    evicted and rebuilt on demand.
    """

    def __init__(
        self,
        embedding_service: EmbeddingService | None = None,
        chunker: TextChunker | None = None,
        max_documents: int | None = None,
    ) -> None:
        """Initialize SemanticRetriever.

        Args:
            embedding_service: Embedding client. If None, one is built from config.
            chunker: Chunker. If None, uses config.CHUNK_SIZE / config.CHUNK_OVERLAP.
            max_documents: Index cache size. If None, uses
                config.MAX_INDEXED_DOCUMENTS.
        """
        self.embedding_service = embedding_service or EmbeddingService()
        self.chunker = chunker or TextChunker(
            chunk_size=config.CHUNK_SIZE, overlap=config.CHUNK_OVERLAP
        )
        self.max_documents = max(1, max_documents or config.MAX_INDEXED_DOCUMENTS)
        self._index: OrderedDict[str, tuple[list[DocumentChunk], np.ndarray]] = (
            OrderedDict()
        )

    def clear(self) -> None:
        """Drop every cached document index."""
        self._index.clear()
        logger.info("Cleared document indices")

    async def _get_index(self, doc_text: str) -> tuple[list[DocumentChunk], np.ndarray]:
        key = hashlib.sha256(doc_text.encode("utf-8")).hexdigest()
        if key in self._index:
            self._index.move_to_end(key)
        else:
            chunks = self.chunker.chunk_text(doc_text)
            embeddings = await self.embedding_service.get_embeddings_batch(
                [chunk.content for chunk in chunks]
            )
            for chunk, embedding in zip(chunks, embeddings, strict=True):
                chunk.embedding = embedding
            matrix = np.vstack(embeddings) if embeddings else np.empty((0, 0))
            self._index[key] = (chunks, matrix)
            logger.info("Indexed document %s (%d chunks)", key[:8], len(chunks))
            while len(self._index) > self.max_documents:
                evicted, _ = self._index.popitem(last=False)
                logger.debug("Evicted document index %s", evicted[:8])
        return self._index[key]

    async def search(
        self, doc_text: str, question: str, top_k: int | None = None
    ) -> list[tuple[DocumentChunk, float]]:
        """Rank the document's chunks against the question.

        Returns:
            (chunk, similarity) pairs, most similar first.
        """
        chunks, matrix = await self._get_index(doc_text)
        if not chunks:
            return []

        query_embedding = await self.embedding_service.get_embedding(question)
        similarities = cosine_similarity(query_embedding, matrix)
        order = np.argsort(similarities)[::-1]
        if top_k is not None:
            order = order[:top_k]
        return [(chunks[idx], float(similarities[idx])) for idx in order]

    async def retrieve(self, doc_text: str, question: str, token_budget: int) -> str:
        """Pack the most similar chunks into the budget, in document order.

        Returns:
            The selected passages joined by a separator, or an empty string.
        """
        char_budget = token_budget * CHARS_PER_TOKEN
        selected: list[DocumentChunk] = []
        used = 0
        for chunk, score in await self.search(doc_text, question):
            cost = len(chunk.content) + (len(PASSAGE_SEPARATOR) if selected else 0)
            if used + cost > char_budget:
                continue
            selected.append(chunk)
            used += cost
            logger.debug(
                "Selected chunk %s (similarity %.4f)", chunk.metadata["chunk_id"], score
            )

        selected.sort(key=lambda chunk: chunk.metadata["start_char"])
        return PASSAGE_SEPARATOR.join(chunk.content for chunk in selected)
