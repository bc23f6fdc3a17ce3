"""Shared fixtures for agent tests."""

import json
from typing import Any, Optional

import pytest

from orchestrator.conversation import ConversationManager
from orchestrator.gateway import AgentGateway
from orchestrator.llm import MockLLMProvider
from orchestrator.reasoning import ReasoningClient
from orchestrator.session import InMemorySessionStore
from orchestrator.streaming import StreamCoordinator, TransportChannel
from search.aggregator import SliceBuilder
from search.hybrid import HybridSearchService
from search.providers import InMemoryKnowledgeBase, KnowledgeChunk, WebSearchProvider
from shared.models import LLMResponse, Notebook, SearchResult, ToolCall
from tools.executor import ToolExecutor
from tools.registry import build_default_registry
from tools.stores import InMemoryNotebookStore, InMemoryProfileStore


class FakeWebSearch(WebSearchProvider):
    """Web search returning canned results."""

    def __init__(
        self,
        results: Optional[list[SearchResult]] = None,
        error: Optional[Exception] = None
    ) -> None:
        self.results = results or []
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def search(self, query, num_results=10, category=None):
        self.calls.append({"query": query, "num_results": num_results, "category": category})
        if self.error:
            raise self.error
        return list(self.results)


class RecordingChannel(TransportChannel):
    """Transport channel that records every event it is sent."""

    def __init__(self, connection_id: str = "conn-1", alive: bool = True, fail: bool = False) -> None:
        self._connection_id = connection_id
        self.alive = alive
        self.fail = fail
        self.events: list[tuple[str, dict[str, Any]]] = []

    @property
    def connection_id(self) -> str:
        return self._connection_id

    async def send(self, event, payload):
        if self.fail:
            raise ConnectionError("socket closed")
        self.events.append((event, payload))

    def is_alive(self) -> bool:
        return self.alive

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def text(self) -> str:
        return "".join(p["chunk"] for name, p in self.events if name == "stream:chunk")


def tool_call(call_id: str, name: str, **arguments: Any) -> ToolCall:
    return ToolCall(id=call_id, name=name, arguments=json.dumps(arguments))


def tool_response(*calls: ToolCall, content: Optional[str] = None) -> LLMResponse:
    return LLMResponse(content=content, tool_calls=list(calls), finish_reason="tool_calls")


@pytest.fixture
def knowledge_base():
    return InMemoryKnowledgeBase([
        KnowledgeChunk(
            chunk_id=1,
            content="Asyncio runs coroutines on an event loop.",
            summary="Event loop basics",
            object_id="obj-python",
            object_title="Python Asyncio Guide",
            object_uri="https://docs.example.com/asyncio",
            propositions=["Coroutines run on an event loop"],
        ),
        KnowledgeChunk(
            chunk_id=5,
            content="Tomatoes need full sun and regular watering.",
            summary="Tomato care",
            object_id="obj-garden",
            object_title="Garden Notes",
            object_uri="https://notes.example.com/garden",
        ),
        KnowledgeChunk(
            chunk_id=9,
            content="Basil grows well next to tomatoes.",
            summary="Companion planting",
            object_id="obj-garden",
            object_title="Garden Notes",
            object_uri="https://notes.example.com/garden",
        ),
    ])


@pytest.fixture
def notebook_store():
    return InMemoryNotebookStore([
        Notebook(id="nb-1", title="Research"),
        Notebook(id="nb-2", title="Recipes"),
    ])


@pytest.fixture
def profile_store():
    return InMemoryProfileStore(about="Software engineer who gardens.")


@pytest.fixture
def session_store():
    return InMemorySessionStore()


@pytest.fixture
def llm():
    return MockLLMProvider()


@pytest.fixture
def make_gateway(llm, session_store, knowledge_base, notebook_store, profile_store):
    """Factory building a fully wired gateway around in-memory stores."""

    def _make(
        web: Optional[WebSearchProvider] = None,
        max_history_length: int = 20,
        flush_ms: int = 10
    ) -> AgentGateway:
        registry = build_default_registry()
        conversations = ConversationManager(session_store, max_history_length=max_history_length)
        reasoning = ReasoningClient(
            llm,
            conversations,
            notebook_store,
            profile_store,
            tools=registry.get_tools_for_llm(),
        )
        return AgentGateway(
            reasoning=reasoning,
            conversations=conversations,
            executor=ToolExecutor(registry),
            session_store=session_store,
            search=HybridSearchService(knowledge_base, web=web),
            slice_builder=SliceBuilder(knowledge_base),
            notebook_store=notebook_store,
            profile_store=profile_store,
            streams=StreamCoordinator(flush_ms=flush_ms),
        )

    return _make
