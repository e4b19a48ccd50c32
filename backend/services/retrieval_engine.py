"""Retrieval ranking: threshold filtering, per-document dedup and ordering."""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from models.chunk import RetrievedCandidate, RankedChunk
from models.search import SearchFilters, SearchRequest, L2, normalize_metric
from services.embedding_model import EmbeddingGenerator

logger = logging.getLogger(__name__)


def similarity_from_distance(distance: float, metric: str) -> float:
    """
    Convert a vector-store distance into a [0, 1] similarity.

    L2 distance d maps to 1 / (1 + max(d, 0)); cosine distance d maps to 1 - d.
    Both are clamped so the ranking threshold has one meaning for every metric.
    """
    if normalize_metric(metric) == L2:
        similarity = 1.0 / (1.0 + max(distance, 0.0))
    else:
        similarity = 1.0 - distance
    return max(0.0, min(1.0, similarity))


class CandidateSource(Protocol):
    """External nearest-neighbour search returning converted candidates."""

    def search(
        self,
        query_embedding: List[float],
        top_k: int,
        metric: str,
        filters: SearchFilters
    ) -> List[RetrievedCandidate]:
        ...


@dataclass
class RankStats:
    """Counters from one ranking pass."""
    candidates: int = 0
    kept: int = 0
    dropped_threshold: int = 0
    dropped_duplicates: int = 0
    min_similarity: float = 0.0
    max_similarity: float = 0.0


class RetrievalRanker:
    """Deduplicates, threshold-filters and orders retrieved candidates."""

    def rank(
        self,
        candidates: Sequence[RetrievedCandidate],
        threshold: float
    ) -> List[RankedChunk]:
        """
        Rank candidates for prompt injection.

        Args:
            candidates: Raw search hits with similarity already normalized
            threshold: Minimum similarity; hits strictly below it are dropped

        Returns:
            At most one chunk per content_id, sorted by similarity descending
        """
        ranked, _ = self.rank_with_stats(candidates, threshold)
        return ranked

    def rank_with_stats(
        self,
        candidates: Sequence[RetrievedCandidate],
        threshold: float
    ) -> Tuple[List[RankedChunk], RankStats]:
        """Rank candidates and report what was dropped and why."""
        stats = RankStats(candidates=len(candidates))
        best_by_content: Dict[int, RetrievedCandidate] = {}

        for candidate in candidates:
            if candidate.similarity < threshold:
                stats.dropped_threshold += 1
                logger.debug(
                    f"drop chunk content_id={candidate.content_id} "
                    f"sim={candidate.similarity:.2f} reason=below_threshold"
                )
                continue

            best = best_by_content.get(candidate.content_id)
            if best is None:
                best_by_content[candidate.content_id] = candidate
            elif candidate.similarity > best.similarity:
                stats.dropped_duplicates += 1
                logger.debug(
                    f"dedupe replaced content_id={candidate.content_id} "
                    f"old_sim={best.similarity:.2f} new_sim={candidate.similarity:.2f}"
                )
                best_by_content[candidate.content_id] = candidate
            else:
                stats.dropped_duplicates += 1
                logger.debug(
                    f"dedupe dropped content_id={candidate.content_id} "
                    f"sim={candidate.similarity:.2f}"
                )

        # dicts keep first-insertion order, so exact ties stay in search order
        ranked = sorted(
            (RankedChunk.from_candidate(c) for c in best_by_content.values()),
            key=lambda chunk: chunk.similarity,
            reverse=True
        )

        stats.kept = len(ranked)
        if ranked:
            stats.max_similarity = ranked[0].similarity
            stats.min_similarity = ranked[-1].similarity

        return ranked, stats


class RetrievalEngine:
    """Orchestrate query embedding, candidate search and ranking."""

    def __init__(
        self,
        candidate_source: Optional[CandidateSource],
        embedding_generator: Optional[EmbeddingGenerator],
        ranker: Optional[RetrievalRanker] = None
    ):
        """
        Initialize the retrieval engine.

        Args:
            candidate_source: Vector search collaborator, or None when no database is configured
            embedding_generator: Query embedding generator, or None when unavailable
            ranker: Ranking strategy (defaults to RetrievalRanker)
        """
        self.candidate_source = candidate_source
        self.embedding_generator = embedding_generator
        self.ranker = ranker or RetrievalRanker()
        logger.info("Initialized RetrievalEngine")

    def retrieve(self, request: SearchRequest, query: str) -> List[RankedChunk]:
        """
        Retrieve ranked knowledge for a query.

        Any missing collaborator or failure degrades to an empty result so the
        caller can still answer without injected knowledge.

        Args:
            request: Agent retrieval parameters (defaults applied here)
            query: User question

        Returns:
            Ranked chunks, empty if nothing relevant or retrieval is impossible
        """
        if self.candidate_source is None:
            logger.warning("Candidate source unavailable for search")
            return []

        if self.embedding_generator is None:
            logger.warning("Embedding generator unavailable")
            return []

        if not query or not query.strip():
            logger.warning("Empty query string provided, returning empty results")
            return []

        query_embedding = self.embedding_generator.generate(query)
        if not query_embedding:
            logger.warning("Failed to generate query embedding")
            return []

        effective = request.normalized()
        logger.info(
            f"RAGSearch filters agent={effective.agent_id} "
            f"scope={effective.scope or 'any'} "
            f"grade={effective.grade_level or 'any'} "
            f"subject={effective.subject or 'any'} "
            f"metric={effective.metric} topK={effective.top_k} "
            f"threshold={effective.similarity_threshold:.2f}"
        )

        try:
            candidates = self.candidate_source.search(
                query_embedding,
                top_k=effective.top_k,
                metric=effective.metric,
                filters=effective.filters
            )
        except Exception as e:
            logger.error(f"Candidate search failed: {str(e)}")
            return []

        ranked, stats = self.ranker.rank_with_stats(candidates, effective.similarity_threshold)

        logger.info(
            f"RAGSearch metric={effective.metric} topK_req={effective.top_k} "
            f"candidates={stats.candidates} kept={stats.kept} "
            f"dropped_threshold={stats.dropped_threshold} "
            f"dropped_dedupe={stats.dropped_duplicates} "
            f"min_sim={stats.min_similarity:.2f} max_sim={stats.max_similarity:.2f}"
        )
        return ranked
