"""
Content ingestion script for the tutoring-agent knowledge base.

This script:
1. Reads every ``<content_id>.txt`` file from a directory
2. Chunks each file into overlapping sentence-aligned segments
3. Generates a validated embedding per chunk via llama-server
4. Upserts the content's rows in Supabase and drops stale chunk indices

Usage:
    python ingest_content.py ./content --grade-level 5 --subject science --agent-scope advisor
"""
import argparse
import sys
import logging
from pathlib import Path
from typing import Dict, List, Optional

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent))

from services.chunking_engine import ChunkingEngine
from services.embedding_model import EmbeddingGenerator
from services.llm_client import LlamaCppClient
from services.vector_store import SupabaseCandidateSource
from config import CHUNK_SIZE, CHUNK_OVERLAP, load_settings

logger = logging.getLogger(__name__)


def load_content_files(directory: Path) -> Dict[int, str]:
    """
    Read ``<content_id>.txt`` files.

    Files whose stem is not an integer are skipped with a warning.
    """
    documents: Dict[int, str] = {}
    for path in sorted(directory.glob("*.txt")):
        try:
            content_id = int(path.stem)
        except ValueError:
            logger.warning(f"Skipping {path.name}: file name must be a numeric content id")
            continue
        documents[content_id] = path.read_text(encoding="utf-8")
    return documents


def build_metadata(args: argparse.Namespace) -> Dict[str, str]:
    metadata = {}
    if args.grade_level:
        metadata["grade_level"] = args.grade_level
    if args.subject:
        metadata["subject"] = args.subject
    if args.agent_scope:
        metadata["agent_scope"] = args.agent_scope
    return metadata


def ingest(
    documents: Dict[int, str],
    chunking_engine: ChunkingEngine,
    embedding_generator: EmbeddingGenerator,
    store: SupabaseCandidateSource,
    metadata: Optional[Dict[str, str]] = None
) -> int:
    """
    Chunk, embed and store every document.

    New rows are upserted first and only then are the content's other rows
    removed, so a failed embedding run leaves the previous index in place.

    Returns:
        Total rows written
    """
    total = 0
    for content_id, chunks in chunking_engine.chunk_documents(documents).items():
        if not chunks:
            logger.warning(f"Content {content_id} has no text, skipping")
            continue

        embeddings: List[List[float]] = [embedding_generator.generate(chunk.text) for chunk in chunks]
        written_indices = [chunk.index for chunk, embedding in zip(chunks, embeddings) if embedding]
        if not written_indices:
            logger.error(f"Content {content_id}: no chunk could be embedded, keeping existing index")
            continue
        failed = len(chunks) - len(written_indices)
        if failed:
            logger.warning(f"Content {content_id}: {failed}/{len(chunks)} chunks failed to embed")

        total += store.add_chunks(content_id, chunks, embeddings, metadata)
        store.delete_content(content_id, keep_indices=written_indices)
        logger.info(f"Content {content_id}: indexed {len(written_indices)} chunk(s)")
    return total


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Index tutoring content for retrieval")
    parser.add_argument("directory", type=Path, help="Directory of <content_id>.txt files")
    parser.add_argument("--chunk-size", type=int, default=CHUNK_SIZE)
    parser.add_argument("--overlap", type=int, default=CHUNK_OVERLAP)
    parser.add_argument("--grade-level")
    parser.add_argument("--subject")
    parser.add_argument("--agent-scope")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    """Main ingestion process."""
    args = parse_args(argv)
    settings = load_settings()

    try:
        documents = load_content_files(args.directory)
        if not documents:
            logger.error(f"No content files found in {args.directory}")
            sys.exit(1)

        embedding_generator = EmbeddingGenerator(
            LlamaCppClient(server_url=settings.embedding_url, model_name="embedding"),
            settings.embedding_dimension
        )
        if not embedding_generator.warmup():
            logger.error("Embedding server is not returning valid vectors")
            sys.exit(1)

        store = SupabaseCandidateSource(settings.supabase_url, settings.supabase_key)
        total = ingest(
            documents,
            ChunkingEngine(args.chunk_size, args.overlap),
            embedding_generator,
            store,
            build_metadata(args)
        )

        logger.info(f"Indexed {total} chunks from {len(documents)} content files")
        logger.info(f"Chunks in database: {store.count()}")

    except KeyboardInterrupt:
        logger.warning("Ingestion interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Ingestion failed: {str(e)}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
