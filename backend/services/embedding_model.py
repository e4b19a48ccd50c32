"""Embedding generation with fixed-dimension validation."""
import time
import logging
from typing import List, Optional, Protocol
import numpy as np

from config import EMBEDDING_DIMENSION

logger = logging.getLogger(__name__)


class EmbeddingProvider(Protocol):
    """Anything that turns text into a raw vector."""

    def embed(self, text: str) -> List[float]:
        ...


class EmbeddingGenerator:
    """Wraps an embedding provider and rejects vectors of the wrong shape."""

    def __init__(
        self,
        provider: Optional[EmbeddingProvider],
        expected_dimension: int = EMBEDDING_DIMENSION
    ):
        """
        Initialize the generator.

        Args:
            provider: Embedding provider, or None when no embedding backend is configured
            expected_dimension: Required vector length
        """
        if expected_dimension <= 0:
            raise ValueError("expected_dimension must be positive")

        self.provider = provider
        self.expected_dimension = expected_dimension

    @property
    def available(self) -> bool:
        return self.provider is not None

    def generate(self, text: str) -> List[float]:
        """
        Generate an embedding for text.

        Never raises: an empty list means no retrieval is possible for this text.

        Args:
            text: Text to embed

        Returns:
            Vector of exactly expected_dimension floats, or [] on any failure
        """
        if self.provider is None:
            logger.warning("Embedding provider unavailable")
            return []

        if not text or not text.strip():
            logger.warning("Empty text received, skipping embedding")
            return []

        try:
            start_time = time.time()
            raw = self.provider.embed(text)
            elapsed = time.time() - start_time
        except Exception as e:
            logger.error(f"Failed to generate embedding: {str(e)}")
            return []

        try:
            vector = np.asarray(raw, dtype=np.float64)
        except (TypeError, ValueError) as e:
            logger.error(f"Embedding is not numeric: {str(e)}")
            return []

        if vector.ndim != 1 or vector.shape[0] != self.expected_dimension:
            logger.error(
                f"Dimension mismatch. Expected {self.expected_dimension} "
                f"got {vector.shape[0] if vector.ndim else 0}"
            )
            return []

        if not np.all(np.isfinite(vector)):
            logger.error("Embedding contains non-finite values")
            return []

        logger.debug(f"Generated {self.expected_dimension}-d embedding in {elapsed:.2f}s")
        return vector.tolist()

    def warmup(self) -> bool:
        """
        Warm up the provider with a dummy query to avoid cold start delays.

        Returns:
            True if a valid vector came back, False otherwise
        """
        logger.info("Warming up embedding provider...")
        ok = bool(self.generate("warmup query"))
        if ok:
            logger.info("Embedding warmup completed")
        else:
            logger.warning("Embedding warmup failed")
        return ok
