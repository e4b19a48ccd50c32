"""Services for the tutoring-agent RAG core."""
from .chunking_engine import ChunkingEngine
from .embedding_model import EmbeddingGenerator
from .retrieval_engine import RetrievalEngine, RetrievalRanker, RankStats, similarity_from_distance
from .context_assembler import ContextAssembler
from .model_router import ModelRouter, ModelRegistry, ModelNotFoundError, resolve_model
from .llm_client import LlamaCppClient, LLMResponse, LLMError, LLMClientError
from .agent_manager import AgentManager, AgentNotFoundError

__all__ = [
    'ChunkingEngine', 'EmbeddingGenerator', 'RetrievalEngine', 'RetrievalRanker', 'RankStats',
    'similarity_from_distance', 'ContextAssembler', 'ModelRouter', 'ModelRegistry',
    'ModelNotFoundError', 'resolve_model', 'LlamaCppClient', 'LLMResponse', 'LLMError',
    'LLMClientError', 'AgentManager', 'AgentNotFoundError'
]
