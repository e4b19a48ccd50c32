"""API request and response schemas."""
from typing import List, Optional
from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """Chat turn sent to an agent."""
    user_id: int = Field(..., description="Student user id")
    message: str = Field(..., description="Student message")
    rag_context: Optional[str] = Field(None, description="Pre-retrieved context to inject instead of searching")


class ContextRequest(BaseModel):
    """Retrieval-only request."""
    query: str = Field(..., description="Query text to retrieve knowledge for")


class ContextChunk(BaseModel):
    """Ranked knowledge snippet."""
    content_id: int
    chunk_index: int
    text: str
    similarity: float
    grade_level: Optional[str] = None
    subject: Optional[str] = None
    scope: Optional[str] = None


class ChatResponse(BaseModel):
    """Agent reply with the knowledge it was grounded on."""
    response: str
    agent_id: int
    model_used: Optional[str] = None
    context_chunks: List[ContextChunk] = Field(default_factory=list)
    error: Optional[str] = None


class ContextResponse(BaseModel):
    """Ranked snippets for a query."""
    agent_id: int
    chunks: List[ContextChunk] = Field(default_factory=list)


class AgentSummary(BaseModel):
    """Public agent listing entry."""
    id: int
    name: str
    description: str = ""
    avatar_emoji: str = ""
    model: str


class AgentDetail(AgentSummary):
    """Single agent with its prompt and generation settings."""
    system_prompt: str = ""
    temperature: float
    max_tokens: int
