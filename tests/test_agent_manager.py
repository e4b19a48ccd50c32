"""Unit tests for AgentManager and SupabaseAgentStore."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import threading
import pytest
from unittest.mock import Mock, MagicMock, patch
from models.agent import Agent
from models.chunk import RankedChunk
from services.agent_manager import APOLOGY_MESSAGE, AgentManager, AgentNotFoundError
from services.agent_store import SupabaseAgentStore
from services.context_assembler import ContextAssembler
from services.llm_client import LLMClientError, LLMError, LLMResponse
from services.model_router import ModelRegistry, ModelRouter


def make_agent(**parameters):
    return Agent(
        agent_id=7,
        name="Professor Hawkeinstein",
        system_prompt="You are a patient science tutor.",
        model_name="qwen2.5",
        parameters=parameters,
    )


class TestAgentManager:
    """Test suite for AgentManager."""

    @pytest.fixture
    def agent_store(self):
        store = Mock()
        store.get_agent.return_value = make_agent(max_tokens="256", temperature="0.3")
        return store

    @pytest.fixture
    def retrieval_engine(self):
        engine = Mock()
        engine.retrieve.return_value = [
            RankedChunk(content_id=1, chunk_index=0, text="Plants use sunlight.", similarity=0.9, subject="science")
        ]
        return engine

    @pytest.fixture
    def llm(self):
        client = Mock()
        client.model_name = "qwen2.5-1.5b"
        client.generate.return_value = LLMResponse(text="Great question!", model_used="qwen2.5-1.5b", latency_ms=10)
        return client

    @pytest.fixture
    def memory_store(self):
        return Mock()

    @pytest.fixture
    def manager(self, agent_store, retrieval_engine, llm, memory_store):
        router = ModelRouter(ModelRegistry({"qwen2.5-1.5b": llm}), "qwen2.5-1.5b")
        return AgentManager(agent_store, retrieval_engine, ContextAssembler(), router, memory_store)

    def test_load_agent_is_cached(self, manager, agent_store):
        first = manager.load_agent(7)
        second = manager.load_agent(7)

        assert first is second
        agent_store.get_agent.assert_called_once_with(7)

    def test_load_agent_missing(self, manager, agent_store):
        agent_store.get_agent.return_value = None

        with pytest.raises(AgentNotFoundError):
            manager.load_agent(99)

    def test_invalidate(self, manager, agent_store):
        manager.load_agent(7)
        manager.invalidate(7)
        manager.load_agent(7)
        manager.invalidate()
        manager.load_agent(7)

        assert agent_store.get_agent.call_count == 3

    def test_concurrent_loads_share_one_agent(self, manager):
        barrier = threading.Barrier(6)
        results = []

        def worker():
            barrier.wait()
            results.append(manager.load_agent(7))

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == 6
        assert all(result is results[0] for result in results)

    def test_build_search_request_from_parameters(self):
        agent = make_agent(
            rag_top_k="8",
            rag_min_similarity="0.4",
            rag_metric="euclidean",
            grade="5",
            subject="science",
            agent_scope="advisor",
        )

        request = AgentManager.build_search_request(agent)

        assert request.agent_id == 7
        assert request.top_k == 8
        assert request.similarity_threshold == 0.4
        assert request.metric == "l2"
        assert request.grade_level == "5"
        assert request.subject == "science"
        assert request.scope == "advisor"

    def test_build_search_request_prefers_primary_keys(self):
        agent = make_agent(grade_level="6", grade="5", rag_scope="lesson", agent_scope="advisor")

        request = AgentManager.build_search_request(agent)

        assert request.grade_level == "6"
        assert request.scope == "lesson"

    def test_build_search_request_ignores_invalid_numbers(self):
        agent = make_agent(rag_top_k="lots", rag_min_similarity="high")

        request = AgentManager.build_search_request(agent)

        assert request.top_k == 5
        assert request.similarity_threshold == 0.25
        assert request.metric == "cosine"
        assert request.grade_level is None

    def test_process_message_success(self, manager, llm, memory_store, retrieval_engine):
        result = manager.process_message(3, 7, "How do plants eat?")

        assert result.ok
        assert result.response == "Great question!"
        assert result.model_used == "qwen2.5-1.5b"
        assert len(result.context_chunks) == 1

        prompt = llm.generate.call_args.args[0]
        assert prompt.startswith("You are a patient science tutor.\n\n")
        assert "Relevant knowledge:\n[grade=any subject=science similarity=0.90]\nPlants use sunlight.\n" in prompt
        assert prompt.endswith("Student: How do plants eat?\nAdvisor: ")
        assert llm.generate.call_args.kwargs == {"max_tokens": 256, "temperature": 0.3}

        retrieval_engine.retrieve.assert_called_once()
        memory_store.store_memory.assert_called_once_with(3, 7, "How do plants eat?", "Great question!")

    def test_process_message_with_supplied_context(self, manager, llm, retrieval_engine):
        result = manager.process_message(3, 7, "Question?", rag_context="Lesson notes.")

        retrieval_engine.retrieve.assert_not_called()
        assert result.context_chunks[0].content_id == -1
        assert "similarity=1.00]\nLesson notes.\n" in llm.generate.call_args.args[0]

    def test_process_message_without_context(self, manager, llm, retrieval_engine):
        retrieval_engine.retrieve.return_value = []

        result = manager.process_message(3, 7, "Hi")

        assert result.ok
        assert "Relevant knowledge:" not in llm.generate.call_args.args[0]

    def test_process_message_inference_failure(self, manager, llm, memory_store):
        llm.generate.side_effect = LLMClientError(LLMError(code="TIMEOUT_ERROR", message="slow", details={}))

        result = manager.process_message(3, 7, "Question?")

        assert result.response == APOLOGY_MESSAGE
        assert result.error == "TIMEOUT_ERROR"
        memory_store.store_memory.assert_not_called()

    def test_process_message_empty_registry(self, agent_store, retrieval_engine):
        manager = AgentManager(
            agent_store, retrieval_engine, ContextAssembler(), ModelRouter(ModelRegistry(), "qwen2.5-1.5b")
        )

        result = manager.process_message(3, 7, "Question?")

        assert result.error == "NO_MODEL_AVAILABLE"
        assert not result.ok

    def test_memory_failure_is_not_fatal(self, manager, memory_store):
        memory_store.store_memory.side_effect = RuntimeError("db down")

        result = manager.process_message(3, 7, "Question?")

        assert result.ok
        assert result.response == "Great question!"


class TestSupabaseAgentStore:
    """Test suite for SupabaseAgentStore."""

    @pytest.fixture
    def supabase_client(self):
        with patch('services.agent_store.create_client') as mock_create_client:
            client = MagicMock()
            mock_create_client.return_value = client
            yield client

    @pytest.fixture
    def store(self, supabase_client):
        return SupabaseAgentStore("https://test.supabase.co", "test_key")

    def test_initialization_without_credentials(self):
        with pytest.raises(ValueError, match="SUPABASE_URL and SUPABASE_KEY"):
            SupabaseAgentStore(None, None)

    def test_get_agent(self, store, supabase_client):
        supabase_client.table.return_value.select.return_value.eq.return_value.execute.return_value = Mock(data=[{
            "agent_id": 7,
            "agent_name": "Professor Hawkeinstein",
            "system_prompt": "You are a tutor.",
            "model_name": "qwen2.5-1.5b",
            "model_parameters": '{"temperature": 0.4, "rag_top_k": 3, "subject": null}',
        }])

        agent = store.get_agent(7)

        assert agent.agent_id == 7
        assert agent.name == "Professor Hawkeinstein"
        assert agent.parameters == {"temperature": "0.4", "rag_top_k": "3"}

    def test_get_agent_missing(self, store, supabase_client):
        supabase_client.table.return_value.select.return_value.eq.return_value.execute.return_value = Mock(data=[])
        assert store.get_agent(7) is None

    def test_get_agent_database_error(self, store, supabase_client):
        supabase_client.table.return_value.select.return_value.eq.return_value.execute.side_effect = Exception("x")

        with pytest.raises(RuntimeError, match="Failed to load agent 7"):
            store.get_agent(7)

    def test_invalid_parameter_json_ignored(self, store, supabase_client):
        supabase_client.table.return_value.select.return_value.eq.return_value.execute.return_value = Mock(data=[{
            "agent_id": 1,
            "model_parameters": "{not json",
        }])

        assert store.get_agent(1).parameters == {}

    def test_list_agents_skips_malformed_rows(self, store, supabase_client):
        query = supabase_client.table.return_value.select.return_value.eq.return_value
        query.order.return_value.execute.return_value = Mock(data=[
            {"agent_name": "No id"},
            {"agent_id": "not-a-number"},
            {"agent_id": 2, "agent_name": "Ms. Frizzle", "model_name": "qwen2.5"},
        ])

        agents = store.list_agents()

        assert [agent.agent_id for agent in agents] == [2]
        assert agents[0].name == "Ms. Frizzle"

    def test_get_agent_malformed_row(self, store, supabase_client):
        supabase_client.table.return_value.select.return_value.eq.return_value.execute.return_value = Mock(data=[
            {"agent_name": "No id"}
        ])

        with pytest.raises(RuntimeError, match="malformed row"):
            store.get_agent(7)

    def test_store_memory(self, store, supabase_client):
        store.store_memory(3, 7, "Hi", "Hello!")

        record = supabase_client.table.return_value.insert.call_args.args[0]
        assert record["user_id"] == 3
        assert record["agent_id"] == 7
        assert record["user_message"] == "Hi"
        assert record["agent_response"] == "Hello!"
