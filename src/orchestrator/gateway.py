"""Agent Gateway - Core orchestration logic.

The gateway turns one user utterance into a result:
- Session and history preparation
- One reasoning round trip with the tool catalogue
- Concurrent tool execution and atomic persistence of the turn
- Slice aggregation and a summarizing round trip, blocking or streamed
"""

from contextlib import aclosing
from typing import Any, AsyncIterator, Optional, Union

from orchestrator.conversation import ConversationManager
from orchestrator.reasoning import ReasoningClient, ReasoningError
from orchestrator.session import SessionStore, to_pending
from orchestrator.streaming import CancellationToken, StreamCoordinator, TransportChannel
from search.aggregator import SliceBuilder
from search.collector import SearchResultCollector
from search.hybrid import HybridSearchService
from shared.logging import get_logger, intent_context
from shared.models import (
    ChatReply,
    DisplaySlice,
    ErrorResult,
    IntentResult,
    Message,
    MessageRole,
    ToolCall,
    ToolCallResult,
)
from tools.base import SEARCH_TOOLS, ToolContext
from tools.executor import ToolExecutor
from tools.stores import NotebookStore, ProfileStore

logger = get_logger(__name__)


UNCLEAR_RESPONSE_MESSAGE = "Sorry, I received an unclear response from the AI. Please try again."

# Tool output prefixes that are confirmations and need no summary
TERSE_PREFIXES = ("Opened ", "Created ", "Deleted ")

# Markers of a search tool output without results
SEARCH_FAILURE_PREFIXES = ("Error:", "Search failed:")
NO_RESULTS_MARKER = "No results found"


def search_has_results(call: ToolCall, result: ToolCallResult) -> bool:
    """Whether a call is a search tool that produced results."""
    if call.name not in {t.value for t in SEARCH_TOOLS}:
        return False
    return (
        not result.content.startswith(SEARCH_FAILURE_PREFIXES)
        and NO_RESULTS_MARKER not in result.content
    )


def needs_summary(calls: list[ToolCall], results: list[ToolCallResult]) -> bool:
    """Whether tool results warrant a summarizing round trip."""
    if any(search_has_results(c, r) for c, r in zip(calls, results)):
        return True
    return any(r.content and not r.content.startswith(TERSE_PREFIXES) for r in results)


def fallback_text(calls: list[ToolCall], results: list[ToolCallResult]) -> str:
    """Reply text used when no summary could be produced."""
    search_outputs = [r.content for c, r in zip(calls, results) if search_has_results(c, r)]
    if search_outputs:
        return "\n\n".join(search_outputs)
    return "\n\n".join(r.content for r in results if r.content)


async def _single_chunk(text: str) -> AsyncIterator[str]:
    yield text


class AgentGateway:
    """
    Agent Gateway - Orchestrates reasoning and tool interactions.

    This is the central component that:
    1. Ensures a session per sender
    2. Assembles history and the system prompt
    3. Runs the reasoning round trip
    4. Executes tool calls concurrently
    5. Persists tool-calling turns atomically
    6. Summarizes results, optionally as a live stream
    """

    def __init__(
        self,
        reasoning: ReasoningClient,
        conversations: ConversationManager,
        executor: ToolExecutor,
        session_store: SessionStore,
        search: HybridSearchService,
        slice_builder: SliceBuilder,
        notebook_store: NotebookStore,
        profile_store: ProfileStore,
        streams: Optional[StreamCoordinator] = None,
        user_id: str = "default_user"
    ) -> None:
        """
        Initialize Agent Gateway.

        Args:
            reasoning: Reasoning client
            conversations: Per-sender conversation state
            executor: Tool executor
            session_store: Persistence backend
            search: Hybrid search used by the search tools
            slice_builder: Builds citations from collected search results
            notebook_store: Notebook store used by the notebook tools
            profile_store: Profile store used by the goal tool
            streams: Stream coordinator for the streaming variant
            user_id: Profile owner
        """
        self.reasoning = reasoning
        self.conversations = conversations
        self.executor = executor
        self.session_store = session_store
        self.search = search
        self.slice_builder = slice_builder
        self.notebook_store = notebook_store
        self.profile_store = profile_store
        self.streams = streams or StreamCoordinator()
        self.user_id = user_id

    async def process_intent(
        self,
        intent: str,
        sender_id: str,
        notebook_id: Optional[str] = None
    ) -> IntentResult:
        """
        Process a user intent and return the result.

        This is the main entry point for blocking interactions.

        Args:
            intent: The user's free text
            sender_id: Sender identifier
            notebook_id: Notebook the user is currently in, if any

        Returns:
            A chat reply, an action for the host, or an error result

        Raises:
            Exception: If the session cannot be established or the
                tool-calling turn cannot be persisted
        """
        with intent_context(sender_id, notebook_id=notebook_id):
            logger.info("Processing intent")
            return await self._process_intent(intent, sender_id, notebook_id)

    async def _process_intent(
        self,
        intent: str,
        sender_id: str,
        notebook_id: Optional[str]
    ) -> IntentResult:
        session_id, messages = await self._prepare(intent, sender_id, notebook_id)

        response = await self._first_round_trip(messages)
        if isinstance(response, ErrorResult):
            return response

        if not response.tool_calls:
            return await self._direct_reply(sender_id, session_id, messages, response)

        context = self._new_context(sender_id, notebook_id)
        results = await self._execute_turn(sender_id, session_id, messages, response, context)

        immediate = self._first_immediate_return(results)
        if immediate is not None:
            logger.info("Returning immediate result", result_type=immediate.type)
            return immediate

        calls = response.tool_calls
        slices = await self._build_slices(context)

        if not needs_summary(calls, results):
            return ChatReply(message="\n\n".join(r.content for r in results), slices=slices)

        try:
            summary = await self.reasoning.call_reasoning(messages)
        except ReasoningError as e:
            logger.warning("Summary round trip failed, using tool output", error=str(e))
            summary = None

        if summary is None or not summary.content:
            return ChatReply(message=fallback_text(calls, results), slices=slices)

        summary_message = Message(role=MessageRole.ASSISTANT, content=summary.content)
        await self._save_best_effort(session_id, MessageRole.ASSISTANT, summary.content)
        messages.append(summary_message)
        self.conversations.update_history(sender_id, messages)

        return ChatReply(message=summary.content, slices=slices)

    async def process_intent_streaming(
        self,
        intent: str,
        sender_id: str,
        channel: TransportChannel,
        notebook_id: Optional[str] = None,
        stream_id: Optional[str] = None
    ) -> IntentResult:
        """
        Process a user intent, streaming the reply to a channel.

        Actions and errors are returned, not streamed. Replies are relayed
        through the stream coordinator; summaries are generated live.

        Args:
            intent: The user's free text
            sender_id: Sender identifier
            channel: Destination for stream events
            notebook_id: Notebook the user is currently in, if any
            stream_id: Identifier for the stream; generated when omitted

        Returns:
            The result; for streamed replies, a ChatReply with the full text

        Raises:
            Exception: As for process_intent, or whatever the summary
                stream raised after its error event was sent
        """
        with intent_context(sender_id, notebook_id=notebook_id):
            logger.info("Processing streaming intent")
            return await self._process_intent_streaming(intent, sender_id, channel, notebook_id, stream_id)

    async def _process_intent_streaming(
        self,
        intent: str,
        sender_id: str,
        channel: TransportChannel,
        notebook_id: Optional[str],
        stream_id: Optional[str]
    ) -> IntentResult:
        session_id, messages = await self._prepare(intent, sender_id, notebook_id)

        response = await self._first_round_trip(messages)
        if isinstance(response, ErrorResult):
            return response

        if not response.tool_calls:
            message_id = await self._save_best_effort(session_id, MessageRole.ASSISTANT, response.content)
            messages.append(response)
            self.conversations.update_history(sender_id, messages)
            await self.streams.start_stream(
                channel,
                _single_chunk(response.content or ""),
                end_payload={"message_id": message_id, "slices": []},
                stream_id=stream_id,
            )
            return ChatReply(message=response.content or "")

        context = self._new_context(sender_id, notebook_id)
        results = await self._execute_turn(sender_id, session_id, messages, response, context)

        immediate = self._first_immediate_return(results)
        if immediate is not None:
            logger.info("Returning immediate result", result_type=immediate.type)
            return immediate

        calls = response.tool_calls
        slices = await self._build_slices(context)
        slice_payload = [s.model_dump(mode="json") for s in slices or []]

        if not needs_summary(calls, results):
            text = "\n\n".join(r.content for r in results)
            await self.streams.start_stream(
                channel,
                _single_chunk(text),
                end_payload={"message_id": None, "slices": slice_payload},
                stream_id=stream_id,
            )
            return ChatReply(message=text, slices=slices)

        # Placeholder, filled in once the stream is done
        message_id = await self._save_best_effort(session_id, MessageRole.ASSISTANT, "")
        token = CancellationToken()
        collected: list[str] = []

        async def summary_source() -> AsyncIterator[str]:
            try:
                async with aclosing(self.reasoning.stream_reasoning(messages, token)) as fragments:
                    async for fragment in fragments:
                        collected.append(fragment)
                        yield fragment
            finally:
                await self._finish_streamed_summary(sender_id, message_id, "".join(collected))

        await self.streams.start_stream(
            channel,
            summary_source(),
            end_payload={"message_id": message_id, "slices": slice_payload},
            stream_id=stream_id,
            token=token,
        )

        text = "".join(collected)
        if not text:
            logger.warning("Streamed summary was empty, using tool output")
            text = fallback_text(calls, results)
        return ChatReply(message=text, slices=slices)

    def _new_context(self, sender_id: str, notebook_id: Optional[str]) -> ToolContext:
        """Tool context with a fresh result collector for one intent."""
        return ToolContext(
            sender_id=sender_id,
            collector=SearchResultCollector(),
            notebook_store=self.notebook_store,
            profile_store=self.profile_store,
            search=self.search,
            user_id=self.user_id,
            notebook_id=notebook_id,
        )

    async def _prepare(
        self,
        intent: str,
        sender_id: str,
        notebook_id: Optional[str]
    ) -> tuple[str, list[Message]]:
        session_id = await self.conversations.ensure_session(sender_id)
        messages = await self.reasoning.prepare_messages(sender_id, intent, notebook_id)
        await self._save_best_effort(session_id, MessageRole.USER, intent)
        return session_id, messages

    async def _first_round_trip(self, messages: list[Message]) -> Union[Message, ErrorResult]:
        try:
            response = await self.reasoning.call_reasoning(messages)
        except ReasoningError as e:
            return ErrorResult(message=f"Sorry, I couldn't reach the AI service: {e}")

        if response is None:
            return ErrorResult(message=UNCLEAR_RESPONSE_MESSAGE)
        return response

    async def _direct_reply(
        self,
        sender_id: str,
        session_id: str,
        messages: list[Message],
        response: Message
    ) -> ChatReply:
        await self._save_best_effort(session_id, MessageRole.ASSISTANT, response.content)
        messages.append(response)
        self.conversations.update_history(sender_id, messages)
        return ChatReply(message=response.content or "")

    async def _execute_turn(
        self,
        sender_id: str,
        session_id: str,
        messages: list[Message],
        assistant_message: Message,
        context: ToolContext
    ) -> list[ToolCallResult]:
        """
        Run the tool calls and persist the turn.

        The assistant message and one tool message per call, in call order,
        are saved in a single transaction. History is updated only after the
        save succeeded.

        Raises:
            Exception: If the transaction fails
        """
        calls = assistant_message.tool_calls or []
        results = await self.executor.execute_all(calls, context)

        tool_messages = [
            Message(role=MessageRole.TOOL, content=result.content, tool_call_id=call.id)
            for call, result in zip(calls, results)
        ]
        pending = [to_pending(assistant_message)] + [
            to_pending(message, tool_name=call.name)
            for call, message in zip(calls, tool_messages)
        ]

        try:
            await self.session_store.save_messages_in_transaction(session_id, pending)
        except Exception as e:
            logger.error("Failed to save conversation turn", session_id=session_id, error=str(e))
            raise

        messages.append(assistant_message)
        messages.extend(tool_messages)
        self.conversations.update_history(sender_id, messages)
        return results

    @staticmethod
    def _first_immediate_return(results: list[ToolCallResult]) -> Optional[IntentResult]:
        for result in results:
            if result.immediate_return is not None:
                return result.immediate_return
        return None

    async def _build_slices(self, context: ToolContext) -> Optional[list[DisplaySlice]]:
        if not context.collector:
            return None
        slices = await self.slice_builder.build(context.collector.results)
        return slices or None

    async def _save_best_effort(
        self,
        session_id: str,
        role: MessageRole,
        content: Optional[str]
    ) -> Optional[str]:
        try:
            return await self.session_store.save_message(session_id, role, content or "")
        except Exception as e:
            logger.error("Failed to save message", session_id=session_id, role=role.value, error=str(e))
            return None

    async def _finish_streamed_summary(
        self,
        sender_id: str,
        message_id: Optional[str],
        text: str
    ) -> None:
        if message_id:
            try:
                await self.session_store.update_message(message_id, text)
            except Exception as e:
                logger.error("Failed to save streamed summary", message_id=message_id, error=str(e))
        if text:
            self.conversations.append_to_history(
                sender_id, Message(role=MessageRole.ASSISTANT, content=text)
            )

    def clear_conversation(self, sender_id: str) -> bool:
        """Forget a sender's session and in-memory history."""
        return self.conversations.clear_conversation(sender_id)

    def clear_all_conversations(self) -> None:
        self.conversations.clear_all_conversations()

    def get_active_conversation_count(self) -> int:
        return self.conversations.get_active_conversation_count()

    def get_stats(self) -> dict[str, Any]:
        """Get gateway statistics."""
        return {
            "conversations": self.conversations.get_stats(),
            "active_streams": self.streams.active_stream_count(),
            "web_search_enabled": self.search.web_enabled,
        }

    async def health_check(self) -> dict[str, Any]:
        """Check the health of the gateway and its dependencies."""
        return {
            "status": "healthy",
            "tool_count": len(self.executor.registry.list_tools()),
            "web_search": "configured" if self.search.web_enabled else "disabled",
            "conversations": self.conversations.get_stats(),
        }
