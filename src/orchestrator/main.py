"""Orchestrator - FastAPI Application.

The agent service provides:
- Intent API for the host application
- Streamed replies over a WebSocket
- Conversation maintenance
- Tool catalogue inspection
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, ValidationError

from orchestrator.conversation import ConversationManager
from orchestrator.gateway import AgentGateway
from orchestrator.llm import create_llm_provider
from orchestrator.reasoning import ReasoningClient
from orchestrator.session import InMemorySessionStore
from orchestrator.streaming import StreamCoordinator, TransportChannel, WebSocketChannel
from search.aggregator import SliceBuilder
from search.exa import ExaClient
from search.hybrid import HybridSearchService
from search.providers import InMemoryKnowledgeBase
from shared.config import Settings, get_settings
from shared.logging import get_logger, setup_logging
from shared.models import IntentResult
from tools.executor import ToolExecutor
from tools.registry import build_default_registry
from tools.stores import InMemoryNotebookStore, InMemoryProfileStore

logger = get_logger(__name__)


# Request/Response Models
class IntentRequest(BaseModel):
    """Intent request from the host application."""
    intent: str = Field(..., min_length=1, description="User utterance")
    sender_id: str = Field(..., min_length=1, description="Sender identifier")
    notebook_id: Optional[str] = Field(default=None, description="Notebook the user is in")


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    tool_count: int
    web_search: str
    conversation_count: int


# Global instances
_settings: Optional[Settings] = None
_gateway: Optional[AgentGateway] = None


def build_gateway(settings: Settings) -> tuple[AgentGateway, ExaClient]:
    """
    Wire the gateway from settings.

    Sessions, notebooks, profile and knowledge base are in-memory; a host
    application embedding the gateway supplies its own implementations.

    Returns:
        Tuple of (gateway, web search client to close on shutdown)
    """
    provider = create_llm_provider(settings.llm)
    summary_provider = None
    if settings.llm.summary_model:
        summary_provider = create_llm_provider(
            settings.llm.model_copy(update={"model": settings.llm.summary_model})
        )

    session_store = InMemorySessionStore()
    notebook_store = InMemoryNotebookStore()
    profile_store = InMemoryProfileStore()
    knowledge_base = InMemoryKnowledgeBase()

    exa = ExaClient.from_settings(settings.search)
    search = HybridSearchService(knowledge_base, web=exa, settings=settings.search)

    registry = build_default_registry()
    conversations = ConversationManager(
        session_store, max_history_length=settings.agent.max_history_length
    )
    reasoning = ReasoningClient(
        provider,
        conversations,
        notebook_store,
        profile_store,
        tools=registry.get_tools_for_llm(),
        summary_provider=summary_provider,
        user_id=settings.agent.default_user_id,
    )

    gateway = AgentGateway(
        reasoning=reasoning,
        conversations=conversations,
        executor=ToolExecutor(registry),
        session_store=session_store,
        search=search,
        slice_builder=SliceBuilder(
            knowledge_base,
            max_results=settings.agent.max_slice_results,
            content_chars=settings.agent.slice_content_chars,
        ),
        notebook_store=notebook_store,
        profile_store=profile_store,
        streams=StreamCoordinator(flush_ms=settings.agent.stream_flush_ms),
        user_id=settings.agent.default_user_id,
    )
    return gateway, exa


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    global _settings, _gateway

    # Startup
    logger.info("Starting agent service")

    _settings = get_settings()
    setup_logging(_settings.log_level, json_output=_settings.environment == "production")

    _gateway, exa = build_gateway(_settings)

    logger.info(
        "Agent service started",
        llm_provider=_settings.llm.provider,
        web_search=exa.is_configured
    )

    yield

    # Shutdown
    logger.info("Shutting down agent service")
    await exa.close()


# Create FastAPI app
app = FastAPI(
    title="Knowledge Base Agent",
    description="Intent orchestration and tool execution for a personal knowledge base",
    version="0.1.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().server.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_gateway() -> AgentGateway:
    if _gateway is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Gateway not initialized"
        )
    return _gateway


@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    """Health check endpoint."""
    status_info = await get_gateway().health_check()

    return HealthResponse(
        status=status_info["status"],
        tool_count=status_info["tool_count"],
        web_search=status_info["web_search"],
        conversation_count=status_info["conversations"]["active_conversations"]
    )


@app.post("/intent", response_model=IntentResult, tags=["Intent"])
async def process_intent(request: IntentRequest):
    """
    Process a user intent.

    This is the main endpoint for the host application.
    """
    gateway = get_gateway()

    try:
        return await gateway.process_intent(
            request.intent,
            request.sender_id,
            notebook_id=request.notebook_id
        )
    except Exception as e:
        logger.error("Intent processing failed", error=str(e), exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to process intent: {str(e)}"
        )


class IntentStreamSession:
    """
    Runs the intents received on one streaming connection.

    Each intent runs in its own task so the connection keeps receiving while
    a reply streams. A new intent aborts the reply still streaming on the
    connection; intents of one connection complete in the order received.
    """

    def __init__(self, gateway: AgentGateway, channel: TransportChannel) -> None:
        self.gateway = gateway
        self.channel = channel
        self._last: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()

    def submit(self, request: IntentRequest) -> asyncio.Task:
        """Abort the current stream and schedule the intent after its predecessor."""
        self.gateway.streams.stop_stream(self.channel.connection_id)

        task = asyncio.create_task(self._run(request, self._last))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._last = task
        return task

    async def _run(self, request: IntentRequest, previous: Optional[asyncio.Task]) -> None:
        if previous is not None:
            await asyncio.wait([previous])

        try:
            result = await self.gateway.process_intent_streaming(
                request.intent,
                request.sender_id,
                self.channel,
                notebook_id=request.notebook_id
            )
        except Exception as e:
            logger.error("Streaming intent failed", error=str(e), exc_info=True)
            await self.send("error", {"error": f"Failed to process intent: {str(e)}"})
            return

        await self.send("result", result.model_dump(mode="json"))

    async def send(self, event: str, payload: dict[str, Any]) -> None:
        """Send an event if the client is still there."""
        if not self.channel.is_alive():
            return
        try:
            await self.channel.send(event, payload)
        except Exception as e:
            logger.warning(
                "Event not delivered",
                connection_id=self.channel.connection_id,
                stream_event=event,
                error=str(e)
            )

    async def close(self) -> None:
        """Wait for intents still running; their replies are saved even without a client."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


@app.websocket("/intent/stream")
async def stream_intents(websocket: WebSocket):
    """
    Process intents with streamed replies.

    Each JSON message is an intent request. Replies arrive as stream events;
    every intent ends with a `result` or `error` event. Sending an intent
    while a reply is streaming aborts that reply.
    """
    gateway = get_gateway()
    await websocket.accept()
    session = IntentStreamSession(gateway, WebSocketChannel(websocket))

    try:
        while True:
            data = await websocket.receive_json()
            try:
                request = IntentRequest.model_validate(data)
            except ValidationError as e:
                await session.send("error", {"error": str(e)})
                continue

            session.submit(request)

    except WebSocketDisconnect:
        logger.info("Stream client disconnected", connection_id=session.channel.connection_id)

    finally:
        await session.close()


@app.delete("/conversations/{sender_id}", tags=["Conversations"])
async def delete_conversation(sender_id: str):
    """Forget a sender's conversation."""
    if not get_gateway().clear_conversation(sender_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Conversation not found"
        )

    return {"status": "deleted"}


@app.get("/stats", tags=["System"])
async def get_stats() -> dict[str, Any]:
    """Gateway statistics."""
    return get_gateway().get_stats()


@app.get("/tools", tags=["Tools"])
async def list_tools():
    """List the tool catalogue offered to the reasoning service."""
    tools = get_gateway().reasoning.tools
    return {"tools": tools, "count": len(tools)}


def main():
    """Run the agent server."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "orchestrator.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.environment == "development"
    )


if __name__ == "__main__":
    main()
