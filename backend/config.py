"""Configuration management for the tutoring-agent RAG core."""
import os
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Embedding Configuration
EMBEDDING_DIMENSION = 384

# Chunking Configuration
CHUNK_SIZE = 750  # characters
CHUNK_OVERLAP = 150  # characters

# Retrieval Configuration
DEFAULT_TOP_K = 5
SIMILARITY_THRESHOLD = 0.25  # tuned on cosine similarity
DEFAULT_METRIC = "cosine"

# Prompt Configuration
CONTEXT_BUDGET_CHARS = 1200
ASSISTANT_LABEL = "Advisor"

# Model Configuration
DEFAULT_MODEL = "qwen2.5-1.5b"
DEFAULT_MAX_TOKENS = 512
DEFAULT_TEMPERATURE = 0.7


def parse_model_endpoints(raw: Optional[str]) -> Dict[str, str]:
    """
    Parse a ``name=url,name=url`` string into a model endpoint mapping.

    Entries without ``=`` or with an empty name are skipped.
    """
    endpoints: Dict[str, str] = {}
    if not raw:
        return endpoints

    for entry in raw.split(","):
        name, sep, url = entry.partition("=")
        name = name.strip()
        url = url.strip()
        if not sep or not name or not url:
            continue
        endpoints[name] = url
    return endpoints


@dataclass(frozen=True)
class Settings:
    """Process configuration passed explicitly into service constructors."""
    llama_server_url: str = "http://localhost:8090"
    embedding_server_url: Optional[str] = None
    models: Dict[str, str] = field(default_factory=dict)
    default_model: str = DEFAULT_MODEL
    max_context_length: int = 4096
    temperature: float = DEFAULT_TEMPERATURE
    embedding_dimension: int = EMBEDDING_DIMENSION
    context_budget_chars: int = CONTEXT_BUDGET_CHARS
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    port: int = 8000
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])

    @property
    def embedding_url(self) -> str:
        """Embedding server, falling back to the default llama-server."""
        return self.embedding_server_url or self.llama_server_url


def load_settings() -> Settings:
    """Build Settings from the current environment."""
    return Settings(
        llama_server_url=os.getenv("LLAMA_SERVER_URL", "http://localhost:8090"),
        embedding_server_url=os.getenv("EMBEDDING_SERVER_URL"),
        models=parse_model_endpoints(os.getenv("LLAMA_MODELS")),
        default_model=os.getenv("DEFAULT_MODEL", DEFAULT_MODEL),
        max_context_length=int(os.getenv("MAX_CONTEXT_LENGTH", "4096")),
        temperature=float(os.getenv("TEMPERATURE", str(DEFAULT_TEMPERATURE))),
        embedding_dimension=int(os.getenv("EMBEDDING_DIMENSION", str(EMBEDDING_DIMENSION))),
        context_budget_chars=int(os.getenv("CONTEXT_BUDGET_CHARS", str(CONTEXT_BUDGET_CHARS))),
        supabase_url=os.getenv("SUPABASE_URL"),
        supabase_key=os.getenv("SUPABASE_KEY"),
        port=int(os.getenv("PORT", "8000")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        cors_origins=os.getenv(
            "CORS_ORIGINS",
            "http://localhost:3000"
        ).split(","),
    )


# Logging Configuration
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
