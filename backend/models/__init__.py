"""Data models for the tutoring-agent RAG core."""
from .chunk import Chunk, RetrievedCandidate, RankedChunk
from .search import SearchRequest, SearchFilters, normalize_metric, COSINE, L2
from .agent import Agent, ChatResult

__all__ = [
    "Chunk",
    "RetrievedCandidate",
    "RankedChunk",
    "SearchRequest",
    "SearchFilters",
    "normalize_metric",
    "COSINE",
    "L2",
    "Agent",
    "ChatResult",
]
