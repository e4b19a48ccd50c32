"""Vector candidate source backed by Supabase pgvector."""
import logging
from typing import Any, Dict, List, Optional, Sequence
from supabase import create_client, Client

from models.chunk import Chunk, RetrievedCandidate
from models.search import SearchFilters, normalize_metric
from services.retrieval_engine import similarity_from_distance

logger = logging.getLogger(__name__)


class SupabaseCandidateSource:
    """Store chunk embeddings and run filtered nearest-neighbour search."""

    def __init__(
        self,
        supabase_url: Optional[str],
        supabase_key: Optional[str],
        table_name: str = "content_embeddings",
        rpc_name: str = "match_content_embeddings",
        model_used: str = "llama.cpp"
    ):
        """
        Initialize the candidate source with a Supabase client.

        Args:
            supabase_url: Supabase project URL
            supabase_key: Supabase API key
            table_name: Table holding one row per indexed chunk
            rpc_name: Postgres function returning rows ordered by distance
            model_used: Embedding model label stored with each row

        Raises:
            ValueError: If Supabase credentials are missing
        """
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY environment variables are required")

        self.table_name = table_name
        self.rpc_name = rpc_name
        self.model_used = model_used

        # Initialize Supabase client
        self.client: Client = create_client(supabase_url, supabase_key)

        logger.info(f"Initialized SupabaseCandidateSource with table: {table_name}")

    def search(
        self,
        query_embedding: List[float],
        top_k: int,
        metric: str,
        filters: SearchFilters
    ) -> List[RetrievedCandidate]:
        """
        Find the chunks nearest to a query vector.

        The RPC returns raw distances for the requested metric (cosine or l2);
        they are converted to [0, 1] similarity here, once, before ranking.

        Args:
            query_embedding: Validated query vector
            top_k: Number of rows to fetch
            metric: "cosine" or "l2"
            filters: Optional scope / grade / subject filters

        Returns:
            Candidates in database order, not deduplicated

        Raises:
            ValueError: If query_embedding is empty or top_k is invalid
            RuntimeError: If database operation fails
        """
        if not query_embedding:
            raise ValueError("Query embedding cannot be empty")

        if top_k <= 0:
            raise ValueError("top_k must be positive")

        metric = normalize_metric(metric)

        try:
            response = self.client.rpc(
                self.rpc_name,
                {
                    "query_embedding": query_embedding,
                    "match_count": top_k,
                    "metric": metric,
                    "agent_scope": filters.scope,
                    "grade_level": filters.grade_level,
                    "subject": filters.subject,
                }
            ).execute()
        except Exception as e:
            error_msg = f"Failed to search vector store: {str(e)}"
            logger.error(error_msg)
            raise RuntimeError(error_msg)

        candidates = []
        for row in response.data or []:
            try:
                candidates.append(self._row_to_candidate(row, metric))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed search row: {str(e)}")

        logger.debug(f"Found {len(candidates)} candidates for query")
        return candidates

    @staticmethod
    def _row_to_candidate(row: Dict[str, Any], metric: str) -> RetrievedCandidate:
        metadata = row.get("chunk_metadata") or {}
        return RetrievedCandidate(
            content_id=int(row["content_id"]),
            chunk_index=int(row.get("chunk_index") or 0),
            text=row.get("text_chunk") or "",
            similarity=similarity_from_distance(float(row["distance"]), metric),
            grade_level=row.get("grade_level") or metadata.get("grade_level"),
            subject=row.get("subject") or metadata.get("subject"),
            scope=row.get("agent_scope") or metadata.get("agent_scope"),
        )

    def add_chunks(
        self,
        content_id: int,
        chunks: Sequence[Chunk],
        embeddings: Sequence[List[float]],
        metadata: Optional[Dict[str, Any]] = None
    ) -> int:
        """
        Upsert one row per chunk for a content item.

        Chunks whose embedding is empty (generation failed) are skipped.

        Args:
            content_id: Source content id
            chunks: Chunks from ChunkingEngine
            embeddings: One vector per chunk, in the same order
            metadata: grade_level / subject / agent_scope stored on every row

        Returns:
            Number of rows written

        Raises:
            ValueError: If chunks is empty or lengths differ
            RuntimeError: If database operation fails
        """
        if not chunks:
            raise ValueError("Chunks list cannot be empty")

        if len(chunks) != len(embeddings):
            raise ValueError("Each chunk needs exactly one embedding")

        records = []
        for chunk, embedding in zip(chunks, embeddings):
            if not embedding:
                logger.warning(f"Skipping chunk {chunk.index} of content {content_id}: no embedding")
                continue
            records.append({
                "content_id": content_id,
                "chunk_index": chunk.index,
                "text_chunk": chunk.text,
                "chunk_metadata": dict(metadata or {}),
                "embedding_vector": embedding,
                "vector_dimension": len(embedding),
                "model_used": self.model_used,
            })

        if not records:
            logger.warning(f"No embeddable chunks for content {content_id}")
            return 0

        try:
            self.client.table(self.table_name).upsert(records, on_conflict="content_id,chunk_index").execute()
        except Exception as e:
            error_msg = f"Failed to add chunks to vector store: {str(e)}"
            logger.error(error_msg)
            raise RuntimeError(error_msg)

        logger.info(f"Stored {len(records)} chunks for content {content_id}")
        return len(records)

    def delete_content(self, content_id: int, keep_indices: Optional[Sequence[int]] = None) -> None:
        """
        Remove the indexed chunks of a content item.

        Args:
            content_id: Source content id
            keep_indices: Chunk indices to leave in place; every row goes when omitted

        Raises:
            RuntimeError: If database operation fails
        """
        try:
            query = self.client.table(self.table_name).delete().eq("content_id", content_id)
            if keep_indices:
                query = query.not_.in_("chunk_index", list(keep_indices))
            query.execute()
            logger.info(f"Deleted stale indexed chunks for content {content_id}")
        except Exception as e:
            error_msg = f"Failed to delete content {content_id}: {str(e)}"
            logger.error(error_msg)
            raise RuntimeError(error_msg)

    def count(self) -> int:
        """
        Get the total number of indexed chunks.

        Raises:
            RuntimeError: If database operation fails
        """
        try:
            response = self.client.table(self.table_name).select("content_id", count="exact").execute()
            return response.count if response.count is not None else 0
        except Exception as e:
            error_msg = f"Failed to count chunks in vector store: {str(e)}"
            logger.error(error_msg)
            raise RuntimeError(error_msg)
