"""Main entry point for the tutoring-agent API."""
import logging
from typing import List

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from config import Settings, load_settings
from logger import setup_logging
from models.api import (
    AgentDetail,
    AgentSummary,
    ChatRequest,
    ChatResponse,
    ContextChunk,
    ContextRequest,
    ContextResponse,
)
from models.chunk import RankedChunk
from services.agent_manager import AgentManager, AgentNotFoundError
from services.agent_store import SupabaseAgentStore
from services.context_assembler import ContextAssembler
from services.embedding_model import EmbeddingGenerator
from services.llm_client import LlamaCppClient
from services.model_router import ModelRegistry, ModelRouter
from services.retrieval_engine import RetrievalEngine
from services.vector_store import SupabaseCandidateSource

logger = logging.getLogger(__name__)

settings = load_settings()

# Initialize FastAPI app
app = FastAPI(
    title="Tutor Agent RAG Service",
    description="Retrieval-grounded tutoring agents backed by llama.cpp",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def build_model_registry(settings: Settings) -> ModelRegistry:
    """Register one llama.cpp client per configured model, or the default one."""
    registry = ModelRegistry()
    for name, url in settings.models.items():
        registry.register(name, LlamaCppClient(
            server_url=url,
            model_name=name,
            context_length=settings.max_context_length,
            temperature=settings.temperature
        ))

    if not len(registry):
        logger.info(f"No models configured, using default: {settings.default_model}")
        registry.ensure_default(settings.default_model, lambda: LlamaCppClient(
            server_url=settings.llama_server_url,
            model_name=settings.default_model,
            context_length=settings.max_context_length,
            temperature=settings.temperature
        ))
    return registry


def build_agent_manager(settings: Settings) -> AgentManager:
    """
    Wire every service from explicit settings.

    Agents and indexed content share one Supabase database, so missing
    credentials fail startup.

    Raises:
        ValueError: If SUPABASE_URL or SUPABASE_KEY is not set
    """
    agent_store = SupabaseAgentStore(settings.supabase_url, settings.supabase_key)
    candidate_source = SupabaseCandidateSource(settings.supabase_url, settings.supabase_key)

    registry = build_model_registry(settings)
    router = ModelRouter(registry, settings.default_model)

    embedding_provider = LlamaCppClient(
        server_url=settings.embedding_url,
        model_name=f"{settings.default_model}-embedding",
        context_length=settings.max_context_length,
        temperature=settings.temperature
    )
    embedding_generator = EmbeddingGenerator(embedding_provider, settings.embedding_dimension)

    return AgentManager(
        agent_store=agent_store,
        retrieval_engine=RetrievalEngine(candidate_source, embedding_generator),
        context_assembler=ContextAssembler(settings.context_budget_chars),
        model_router=router,
        memory_store=agent_store
    )


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    setup_logging(settings.log_level)
    logger.info("Initializing tutor agent services...")

    try:
        app.state.agent_manager = build_agent_manager(settings)
        logger.info("All services initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise


def get_agent_manager(request: Request) -> AgentManager:
    manager = getattr(request.app.state, "agent_manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="Service is not initialized")
    return manager


def _to_context_chunks(chunks: List[RankedChunk]) -> List[ContextChunk]:
    return [
        ContextChunk(
            content_id=chunk.content_id,
            chunk_index=chunk.chunk_index,
            text=chunk.text,
            similarity=chunk.similarity,
            grade_level=chunk.grade_level,
            subject=chunk.subject,
            scope=chunk.scope
        )
        for chunk in chunks
    ]


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "service": "tutor-rag-core",
        "version": "1.0.0"
    }


@app.get("/agents", response_model=List[AgentSummary])
def list_agents(manager: AgentManager = Depends(get_agent_manager)) -> List[AgentSummary]:
    """List active tutoring agents."""
    try:
        agents = manager.list_agents()
    except RuntimeError as e:
        logger.error(f"Error listing agents: {e}")
        raise HTTPException(status_code=503, detail="Agent storage unavailable")

    return [
        AgentSummary(
            id=agent.agent_id,
            name=agent.name,
            description=agent.description,
            avatar_emoji=agent.avatar_emoji,
            model=agent.model_name
        )
        for agent in agents
    ]


@app.get("/agents/{agent_id}", response_model=AgentDetail)
def get_agent(agent_id: int, manager: AgentManager = Depends(get_agent_manager)) -> AgentDetail:
    """Return one agent with its effective generation settings."""
    try:
        agent = manager.load_agent(agent_id)
    except AgentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RuntimeError as e:
        logger.error(f"Agent storage error: {e}")
        raise HTTPException(status_code=503, detail="Agent storage unavailable")

    max_tokens, temperature = manager.generation_params(agent)
    return AgentDetail(
        id=agent.agent_id,
        name=agent.name,
        description=agent.description,
        avatar_emoji=agent.avatar_emoji,
        model=agent.model_name,
        system_prompt=agent.system_prompt,
        temperature=temperature,
        max_tokens=max_tokens
    )


@app.post("/agents/{agent_id}/chat", response_model=ChatResponse)
def chat_endpoint(
    agent_id: int,
    request: ChatRequest,
    manager: AgentManager = Depends(get_agent_manager)
) -> ChatResponse:
    """
    Answer a student message as the given agent.

    Retrieval failures degrade to a prompt without knowledge; only a missing
    agent (404) or an empty model registry (503) fail the request.
    """
    if not request.message or not request.message.strip():
        raise HTTPException(status_code=400, detail="Message field is required and cannot be empty")

    try:
        result = manager.process_message(
            user_id=request.user_id,
            agent_id=agent_id,
            message=request.message,
            rag_context=request.rag_context
        )
    except AgentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RuntimeError as e:
        logger.error(f"Agent storage error: {e}")
        raise HTTPException(status_code=503, detail="Agent storage unavailable")

    if result.error == "NO_MODEL_AVAILABLE":
        raise HTTPException(status_code=503, detail="No language model is configured")

    return ChatResponse(
        response=result.response,
        agent_id=result.agent_id,
        model_used=result.model_used,
        context_chunks=_to_context_chunks(result.context_chunks),
        error=result.error
    )


@app.post("/agents/{agent_id}/context", response_model=ContextResponse)
def context_endpoint(
    agent_id: int,
    request: ContextRequest,
    manager: AgentManager = Depends(get_agent_manager)
) -> ContextResponse:
    """Return the ranked knowledge an agent would inject for a query."""
    try:
        agent = manager.load_agent(agent_id)
    except AgentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RuntimeError as e:
        logger.error(f"Agent storage error: {e}")
        raise HTTPException(status_code=503, detail="Agent storage unavailable")

    chunks = manager.retrieve_context(agent, request.query)
    return ContextResponse(agent_id=agent_id, chunks=_to_context_chunks(chunks))


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting tutor agent API on port {settings.port}")
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
