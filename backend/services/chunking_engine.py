"""Sentence-aware chunking engine with character overlap."""
import logging
import re
from typing import Dict, List

from models.chunk import Chunk
from config import CHUNK_SIZE, CHUNK_OVERLAP

logger = logging.getLogger(__name__)

# A terminated unit keeps its terminator; a trailing fragment has none.
_SENTENCE_PATTERN = re.compile(r"[^.!?\n]*[.!?\n]|[^.!?\n]+")


class ChunkingEngine:
    """Segments raw text into overlapping, sentence-aligned chunks for indexing."""

    def __init__(self, chunk_size: int = CHUNK_SIZE, chunk_overlap: int = CHUNK_OVERLAP):
        """
        Initialize ChunkingEngine.

        Args:
            chunk_size: Target chunk size in characters (non-positive falls back to the default)
            chunk_overlap: Characters carried from the end of one chunk into the next,
                clamped to half of chunk_size
        """
        if chunk_size <= 0:
            chunk_size = CHUNK_SIZE
        self.chunk_size = chunk_size
        self.chunk_overlap = min(max(chunk_overlap, 0), chunk_size // 2)

    def chunk(self, text: str) -> List[Chunk]:
        """
        Split text into chunks near chunk_size characters.

        Sentences are accumulated greedily. When the next sentence would overflow
        the buffer, the buffer is emitted and a new one starts from its tail
        overlap. A buffer that still overflows after that (an oversized sentence)
        is emitted immediately.

        Args:
            text: Raw document text

        Returns:
            Chunks with gap-free zero-based indices, empty for blank input
        """
        chunks: List[Chunk] = []
        sentences = self.split_sentences(text)
        if not sentences:
            return chunks

        current = ""
        for sentence in sentences:
            if not current:
                current = sentence
                continue

            if len(current) + 1 + len(sentence) <= self.chunk_size:
                current = f"{current} {sentence}"
                continue

            chunks.append(Chunk(text=current.strip(), index=len(chunks)))

            current = self._tail_overlap(current)
            if current and not current[-1].isspace():
                current += " "
            current += sentence

            if len(current) > self.chunk_size:
                chunks.append(Chunk(text=current.strip(), index=len(chunks)))
                current = ""

        if current.strip():
            chunks.append(Chunk(text=current.strip(), index=len(chunks)))

        logger.debug(f"Chunked {len(text)} chars into {len(chunks)} chunks")
        return chunks

    def chunk_documents(self, documents: Dict[int, str]) -> Dict[int, List[Chunk]]:
        """
        Chunk several documents keyed by content id.

        Args:
            documents: Mapping of content id to raw text

        Returns:
            Mapping of content id to its chunks (documents with no text map to [])
        """
        chunked = {content_id: self.chunk(text) for content_id, text in documents.items()}
        total = sum(len(chunks) for chunks in chunked.values())
        logger.info(f"Created {total} chunks from {len(documents)} documents")
        return chunked

    @staticmethod
    def split_sentences(text: str) -> List[str]:
        """Split on '.', '!', '?' and newlines, returning trimmed non-empty units."""
        if not text:
            return []
        units = (match.group(0).strip() for match in _SENTENCE_PATTERN.finditer(text))
        return [unit for unit in units if unit]

    def _tail_overlap(self, text: str) -> str:
        if self.chunk_overlap == 0:
            return ""
        if len(text) <= self.chunk_overlap:
            return text
        return text[-self.chunk_overlap:]
