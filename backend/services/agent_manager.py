"""Per-agent chat orchestration: retrieval, prompt assembly and model routing."""
import logging
import threading
from typing import Dict, List, Optional, Protocol, Tuple

from models.agent import Agent, ChatResult
from models.chunk import RankedChunk
from models.search import SearchRequest
from services.context_assembler import ContextAssembler
from services.llm_client import LLMClientError
from services.model_router import ModelRouter
from services.retrieval_engine import RetrievalEngine
from config import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, DEFAULT_TOP_K

logger = logging.getLogger(__name__)

APOLOGY_MESSAGE = (
    "I apologize, but I'm having trouble processing your request right now. "
    "Please try again later."
)


class AgentNotFoundError(Exception):
    """Raised when an agent id has no stored configuration."""


class AgentStore(Protocol):
    def get_agent(self, agent_id: int) -> Optional[Agent]:
        ...

    def list_agents(self) -> List[Agent]:
        ...


class MemoryStore(Protocol):
    def store_memory(self, user_id: int, agent_id: int, user_message: str, agent_response: str) -> None:
        ...


def _int_param(agent: Agent, key: str, default: int) -> int:
    raw = agent.param(key)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid {key} value for agent {agent.agent_id}: {raw!r}")
        return default


def _float_param(agent: Agent, key: str, default: float) -> float:
    raw = agent.param(key)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid {key} value for agent {agent.agent_id}: {raw!r}")
        return default


class AgentManager:
    """Answers student messages on behalf of configured tutoring agents."""

    def __init__(
        self,
        agent_store: AgentStore,
        retrieval_engine: RetrievalEngine,
        context_assembler: ContextAssembler,
        model_router: ModelRouter,
        memory_store: Optional[MemoryStore] = None
    ):
        self.agent_store = agent_store
        self.retrieval_engine = retrieval_engine
        self.context_assembler = context_assembler
        self.model_router = model_router
        self.memory_store = memory_store

        self._cache_lock = threading.RLock()
        self._agent_cache: Dict[int, Agent] = {}

    def load_agent(self, agent_id: int) -> Agent:
        """
        Return an agent, loading it from storage on first use.

        Raises:
            AgentNotFoundError: If storage has no such agent
        """
        with self._cache_lock:
            cached = self._agent_cache.get(agent_id)
        if cached is not None:
            return cached

        agent = self.agent_store.get_agent(agent_id)
        if agent is None:
            raise AgentNotFoundError(f"Agent {agent_id} not found")

        with self._cache_lock:
            # another worker may have loaded it meanwhile; keep the first copy
            return self._agent_cache.setdefault(agent_id, agent)

    def invalidate(self, agent_id: Optional[int] = None) -> None:
        """Drop one cached agent, or all of them."""
        with self._cache_lock:
            if agent_id is None:
                self._agent_cache.clear()
            else:
                self._agent_cache.pop(agent_id, None)

    def list_agents(self) -> List[Agent]:
        return self.agent_store.list_agents()

    @staticmethod
    def build_search_request(agent: Agent) -> SearchRequest:
        """Derive retrieval parameters from an agent's stored parameters."""
        return SearchRequest(
            agent_id=agent.agent_id,
            scope=agent.param("rag_scope", "agent_scope") or None,
            grade_level=agent.param("grade_level", "grade") or None,
            subject=agent.param("subject") or None,
            top_k=_int_param(agent, "rag_top_k", DEFAULT_TOP_K),
            similarity_threshold=_float_param(agent, "rag_min_similarity", 0.0),
            metric=agent.param("rag_metric"),
        ).normalized()

    @staticmethod
    def generation_params(agent: Agent) -> Tuple[int, float]:
        """Return ``(max_tokens, temperature)`` for an agent, with defaults 512 and 0.7."""
        return (
            _int_param(agent, "max_tokens", DEFAULT_MAX_TOKENS),
            _float_param(agent, "temperature", DEFAULT_TEMPERATURE),
        )

    def retrieve_context(self, agent: Agent, query: str) -> List[RankedChunk]:
        chunks = self.retrieval_engine.retrieve(self.build_search_request(agent), query)
        if chunks:
            logger.info(f"Retrieved {len(chunks)} filtered RAG chunk(s) for agent {agent.agent_id}")
        else:
            logger.info(f"No RAG context returned for agent {agent.agent_id}")
        return chunks

    def build_prompt(self, agent: Agent, message: str, chunks: List[RankedChunk]) -> str:
        return self.context_assembler.assemble(agent.system_prompt, chunks, message)

    def process_message(
        self,
        user_id: int,
        agent_id: int,
        message: str,
        rag_context: Optional[str] = None
    ) -> ChatResult:
        """
        Answer one student message.

        Retrieval problems never fail the turn: the prompt is built without
        knowledge instead. Inference failures return an apology with ``error``
        set. An empty model registry is reported as NO_MODEL_AVAILABLE.

        Args:
            user_id: Student id (for conversation memory)
            agent_id: Agent to answer as
            message: Student message
            rag_context: Pre-retrieved context that replaces the vector search

        Raises:
            AgentNotFoundError: If the agent does not exist
        """
        logger.info(f"Processing message for user {user_id} with agent {agent_id}")
        agent = self.load_agent(agent_id)

        if rag_context and rag_context.strip():
            chunks = [RankedChunk(content_id=-1, chunk_index=0, text=rag_context, similarity=1.0)]
            logger.info("Caller-supplied RAG context injected into prompt")
        else:
            chunks = self.retrieve_context(agent, message)

        prompt = self.build_prompt(agent, message, chunks)

        client = self.model_router.resolve(agent.model_name)
        if client is None:
            logger.error(f"No LLM client available for model: {agent.model_name}")
            return ChatResult(
                response=APOLOGY_MESSAGE,
                agent_id=agent_id,
                context_chunks=chunks,
                error="NO_MODEL_AVAILABLE"
            )

        max_tokens, temperature = self.generation_params(agent)

        try:
            response = client.generate(prompt, max_tokens=max_tokens, temperature=temperature)
        except LLMClientError as e:
            logger.error(f"Error processing message for agent {agent_id}: {e.error.code} {e}")
            return ChatResult(
                response=APOLOGY_MESSAGE,
                agent_id=agent_id,
                model_used=getattr(client, "model_name", None),
                context_chunks=chunks,
                error=e.error.code
            )

        self._store_memory(user_id, agent_id, message, response.text)
        return ChatResult(
            response=response.text,
            agent_id=agent_id,
            model_used=response.model_used,
            context_chunks=chunks
        )

    def _store_memory(self, user_id: int, agent_id: int, message: str, response: str) -> None:
        if self.memory_store is None:
            return
        try:
            self.memory_store.store_memory(user_id, agent_id, message, response)
        except Exception as e:
            logger.error(f"Failed to store conversation memory: {e}")
