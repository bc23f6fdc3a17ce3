"""Orchestrator / Agent Gateway.

Manages conversation state, talks to the reasoning service via LlamaIndex,
runs tools and streams replies to connected clients.
"""

from orchestrator.llm import LLMProvider, create_llm_provider
from orchestrator.conversation import ConversationManager
from orchestrator.gateway import AgentGateway
from orchestrator.reasoning import ReasoningClient, ReasoningError
from orchestrator.session import InMemorySessionStore, SessionStore
from orchestrator.streaming import StreamCoordinator, TransportChannel

__all__ = [
    "LLMProvider",
    "create_llm_provider",
    "ConversationManager",
    "AgentGateway",
    "ReasoningClient",
    "ReasoningError",
    "SessionStore",
    "InMemorySessionStore",
    "StreamCoordinator",
    "TransportChannel",
]
