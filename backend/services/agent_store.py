"""Agent configuration and conversation memory storage using Supabase."""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from supabase import create_client, Client

from models.agent import Agent

logger = logging.getLogger(__name__)


class SupabaseAgentStore:
    """Loads agents and records conversation turns in Supabase PostgreSQL."""

    def __init__(
        self,
        supabase_url: Optional[str],
        supabase_key: Optional[str],
        agents_table: str = "agents",
        memories_table: str = "agent_memories"
    ):
        """Initialize the store with a Supabase client."""
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set in environment variables")

        self.agents_table = agents_table
        self.memories_table = memories_table
        self.client: Client = create_client(supabase_url, supabase_key)
        logger.info("SupabaseAgentStore initialized")

    def get_agent(self, agent_id: int) -> Optional[Agent]:
        """
        Fetch one agent.

        Returns:
            The agent, or None if no row exists

        Raises:
            RuntimeError: If the database query fails
        """
        try:
            result = self.client.table(self.agents_table).select("*").eq("agent_id", agent_id).execute()
        except Exception as e:
            logger.error(f"Error loading agent {agent_id}: {e}")
            raise RuntimeError(f"Failed to load agent {agent_id}: {e}")

        if not result.data:
            return None
        try:
            return self._row_to_agent(result.data[0])
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed agent row for agent {agent_id}: {e}")
            raise RuntimeError(f"Failed to load agent {agent_id}: malformed row")

    def list_agents(self) -> List[Agent]:
        """Return all active agents ordered by id."""
        try:
            result = (
                self.client.table(self.agents_table)
                .select("*")
                .eq("is_active", True)
                .order("agent_id", desc=False)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error listing agents: {e}")
            raise RuntimeError(f"Failed to list agents: {e}")

        agents = []
        for row in result.data or []:
            try:
                agents.append(self._row_to_agent(row))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed agent row: {e}")
        return agents

    def store_memory(self, user_id: int, agent_id: int, user_message: str, agent_response: str) -> None:
        """Persist one student/agent exchange."""
        try:
            self.client.table(self.memories_table).insert({
                "user_id": user_id,
                "agent_id": agent_id,
                "user_message": user_message,
                "agent_response": agent_response,
                "created_at": datetime.now(timezone.utc).isoformat()
            }).execute()
            logger.debug(f"Stored memory for user {user_id} with agent {agent_id}")
        except Exception as e:
            logger.error(f"Error storing memory for user {user_id}, agent {agent_id}: {e}")
            raise

    @staticmethod
    def _row_to_agent(row: Dict[str, Any]) -> Agent:
        return Agent(
            agent_id=int(row["agent_id"]),
            name=row.get("agent_name") or row.get("name") or "",
            system_prompt=row.get("system_prompt") or "",
            model_name=row.get("model_name") or "",
            parameters=_parse_parameters(row.get("model_parameters") or row.get("parameters")),
            description=row.get("description") or "",
            avatar_emoji=row.get("avatar_emoji") or "",
        )


def _parse_parameters(raw: Any) -> Dict[str, str]:
    """Agent parameters arrive as a JSON object or a JSON-encoded string."""
    if not raw:
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring agent parameters that are not valid JSON")
            return {}
    if not isinstance(raw, dict):
        return {}
    return {str(key): str(value) for key, value in raw.items() if value is not None}
