"""Document loading and text chunking for semantic retrieval."""

import re
from pathlib import Path

from .config import config
from .models import DocumentChunk

logger = config.get_logger(__name__)

# Page separators written by the PDF text extractor
PAGE_MARKER = re.compile(r"^--- Page (\d+) ---$", re.MULTILINE)


class DocumentLoader:
    """Loads the plain-text form of an uploaded document."""

    SUPPORTED_EXTENSIONS = frozenset({".txt", ".md"})

    @classmethod
    def load_document(cls, file_path: Path) -> str:
        """Load document text based on file extension.

        Args:
            file_path: Path to the document file.

        Returns:
            The text content of the document as a string.

        Raises:
            ValueError: If the file type is not supported.
        """
        file_ext = file_path.suffix.lower()
        if file_ext not in cls.SUPPORTED_EXTENSIONS:
            msg = f"Unsupported file type: {file_ext}"
            raise ValueError(msg)

        try:
            with file_path.open(encoding="utf-8") as file:
                text = file.read()
        except Exception:
            logger.exception("Error loading document %s", file_path)
            raise
        else:
            logger.info("Loaded %s (%d chars)", file_path.name, len(text))
            return text


def page_at(text: str, offset: int) -> int | None:
    """Return the page number in effect at ``offset``, if the text has markers."""
    page = None
    for match in PAGE_MARKER.finditer(text, 0, offset + 1):
        page = int(match.group(1))
    return page


class TextChunker:
    """Handles text chunking with fixed length and overlap strategy."""

    def __init__(self, chunk_size: int = 1000, overlap: int = 200) -> None:
        """Initialize the TextChunker with chunk size and overlap.

        Args:
            chunk_size: The size of each text chunk.
            overlap: The number of overlapping characters between chunks.

        Raises:
            ValueError: If the overlap would stop the chunker from advancing.
        """
        if overlap >= chunk_size:
            msg = "overlap must be smaller than chunk_size"
            raise ValueError(msg)
        self.chunk_size = chunk_size
        self.overlap = overlap

    def chunk_text(self, text: str, source: str = "document") -> list[DocumentChunk]:
        """Split text into overlapping chunks.

        Returns:
            A list of DocumentChunk objects in document order.
        """
        chunks = []
        start = 0
        chunk_id = 0

        while start < len(text):
            end = start + self.chunk_size
            chunk_text = text[start:end]

            # Ensure we don't break in the middle of a word (except for last chunk)
            if end < len(text) and not chunk_text.endswith(" "):
                last_space = chunk_text.rfind(" ")
                # At least half chunk size to prevent too small chunks after adjustment
                if last_space > self.chunk_size // 2:
                    end = start + last_space
                    chunk_text = text[start:end]

            if chunk_text.strip():
                chunks.append(
                    DocumentChunk(
                        content=chunk_text.strip(),
                        metadata={
                            "source": source,
                            "chunk_id": chunk_id,
                            "start_char": start,
                            "end_char": end,
                            "page": page_at(text, start),
                        },
                    )
                )
                chunk_id += 1

            if end >= len(text):
                break
            start = end - self.overlap

        logger.debug("Text split into %d chunks", len(chunks))
        return chunks
