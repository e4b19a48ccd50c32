"""Search request data models."""
from dataclasses import dataclass, replace
from typing import Optional

from config import DEFAULT_TOP_K, SIMILARITY_THRESHOLD, DEFAULT_METRIC

COSINE = "cosine"
L2 = "l2"

_METRIC_ALIASES = {
    "cosine": COSINE,
    "cos": COSINE,
    "l2": L2,
    "euclidean": L2,
    "l2_distance": L2,
}


def normalize_metric(metric: Optional[str]) -> str:
    """Map a metric name (case-insensitive, with aliases) to ``cosine`` or ``l2``."""
    if not metric or not metric.strip():
        return DEFAULT_METRIC
    return _METRIC_ALIASES.get(metric.strip().lower(), DEFAULT_METRIC)


@dataclass(frozen=True)
class SearchFilters:
    """Metadata filters narrowing which indexed content is eligible."""
    scope: Optional[str] = None
    grade_level: Optional[str] = None
    subject: Optional[str] = None


@dataclass(frozen=True)
class SearchRequest:
    """Caller-supplied retrieval parameters for one agent query."""
    agent_id: int
    scope: Optional[str] = None
    grade_level: Optional[str] = None
    subject: Optional[str] = None
    top_k: int = DEFAULT_TOP_K
    similarity_threshold: float = SIMILARITY_THRESHOLD
    metric: str = DEFAULT_METRIC

    def normalized(self) -> "SearchRequest":
        """Return a copy with defaults applied to unset or non-positive values."""
        return replace(
            self,
            scope=self.scope or None,
            grade_level=self.grade_level or None,
            subject=self.subject or None,
            top_k=self.top_k if self.top_k and self.top_k > 0 else DEFAULT_TOP_K,
            similarity_threshold=(
                self.similarity_threshold
                if self.similarity_threshold and self.similarity_threshold > 0
                else SIMILARITY_THRESHOLD
            ),
            metric=normalize_metric(self.metric),
        )

    @property
    def filters(self) -> SearchFilters:
        return SearchFilters(scope=self.scope, grade_level=self.grade_level, subject=self.subject)
