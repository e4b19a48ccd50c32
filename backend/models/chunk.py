"""Chunk data models."""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Chunk:
    """A trimmed, sentence-aligned slice of a source document."""
    text: str
    index: int  # zero-based position in document order


@dataclass
class RetrievedCandidate:
    """Raw vector-search hit, one per matching indexed chunk."""
    content_id: int
    chunk_index: int
    text: str
    similarity: float  # 0.0 to 1.0, higher is closer
    grade_level: Optional[str] = None
    subject: Optional[str] = None
    scope: Optional[str] = None


@dataclass
class RankedChunk(RetrievedCandidate):
    """Candidate that survived threshold filtering and per-document dedup."""

    @classmethod
    def from_candidate(cls, candidate: RetrievedCandidate) -> "RankedChunk":
        return cls(
            content_id=candidate.content_id,
            chunk_index=candidate.chunk_index,
            text=candidate.text,
            similarity=candidate.similarity,
            grade_level=candidate.grade_level,
            subject=candidate.subject,
            scope=candidate.scope,
        )
