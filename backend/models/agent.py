"""Agent data models."""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from models.chunk import RankedChunk


@dataclass
class Agent:
    """Tutoring agent configuration loaded from storage."""
    agent_id: int
    name: str
    system_prompt: str
    model_name: str
    parameters: Dict[str, str] = field(default_factory=dict)
    description: str = ""
    avatar_emoji: str = ""

    def param(self, *keys: str) -> str:
        """Return the first non-empty parameter among ``keys``, else ``""``."""
        for key in keys:
            value = self.parameters.get(key)
            if value is not None and str(value).strip():
                return str(value).strip()
        return ""


@dataclass
class ChatResult:
    """Outcome of one chat turn; ``error`` is set when the turn degraded."""
    response: str
    agent_id: int
    model_used: Optional[str] = None
    context_chunks: List[RankedChunk] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
