"""Reasoning Client.

Assembles the message list for one intent and performs round trips to the
reasoning service through an LLM provider.
"""

from typing import Any, AsyncIterator, Optional

from orchestrator.conversation import ConversationManager
from orchestrator.llm import LLMProvider
from orchestrator.prompts import generate_system_prompt
from orchestrator.streaming import CancellationToken
from shared.logging import get_logger
from shared.models import Message, MessageRole
from tools.stores import NotebookStore, ProfileStore

logger = get_logger(__name__)


class ReasoningError(Exception):
    """Raised when the reasoning service cannot be reached or fails."""
    pass


class ReasoningClient:
    """
    Client for the reasoning service.

    Holds no conversation state of its own; history lives in the
    ConversationManager and the session store.
    """

    def __init__(
        self,
        provider: LLMProvider,
        conversations: ConversationManager,
        notebook_store: NotebookStore,
        profile_store: ProfileStore,
        tools: Optional[list[dict[str, Any]]] = None,
        summary_provider: Optional[LLMProvider] = None,
        user_id: str = "default_user"
    ) -> None:
        """
        Initialize the reasoning client.

        Args:
            provider: Provider used for tool-capable round trips
            conversations: Per-sender conversation state
            notebook_store: Source of the notebook list for the system prompt
            profile_store: Source of the profile summary for the system prompt
            tools: Tool catalogue in OpenAI function format
            summary_provider: Provider used for streamed summaries; defaults to `provider`
            user_id: Profile owner
        """
        self.provider = provider
        self.summary_provider = summary_provider or provider
        self.conversations = conversations
        self.notebook_store = notebook_store
        self.profile_store = profile_store
        self.tools = tools or []
        self.user_id = user_id

    async def prepare_messages(
        self,
        sender_id: str,
        utterance: str,
        notebook_id: Optional[str] = None
    ) -> list[Message]:
        """
        Build the message list for one intent.

        History comes from memory, falling back to the session store. The
        system prompt is regenerated every time so it reflects the current
        notebooks and profile.

        Args:
            sender_id: Sender identifier
            utterance: The user's free text
            notebook_id: Notebook the user is currently in, if any

        Returns:
            Messages ending with the new user message
        """
        messages = self.conversations.get_history(sender_id) or []

        if not messages:
            messages = await self.conversations.load_history(sender_id)
            if messages:
                self.conversations.update_history(sender_id, messages)
                messages = self.conversations.get_history(sender_id) or []

        notebooks = await self.notebook_store.list_notebooks()
        profile_context = await self.profile_store.get_profile_context(self.user_id)
        system_prompt = generate_system_prompt(notebooks, profile_context, notebook_id)
        logger.debug(
            "System prompt generated",
            sender=sender_id,
            notebooks=len(notebooks),
            profile_length=len(profile_context)
        )

        system_message = Message(role=MessageRole.SYSTEM, content=system_prompt)
        system_index = next(
            (i for i, m in enumerate(messages) if m.role == MessageRole.SYSTEM), None
        )
        if system_index is None:
            if messages:
                logger.warning("History has no system prompt, prepending", sender=sender_id)
            messages.insert(0, system_message)
        else:
            messages[system_index] = system_message

        messages.append(Message(role=MessageRole.USER, content=utterance))
        return messages

    async def call_reasoning(self, messages: list[Message]) -> Optional[Message]:
        """
        Perform one round trip with the tool catalogue attached.

        Args:
            messages: Full message list

        Returns:
            Assistant message, or None when the response carried neither
            content nor tool calls

        Raises:
            ReasoningError: If the provider fails
        """
        logger.debug("Calling reasoning service", messages=len(messages), tools=len(self.tools))

        try:
            response = await self.provider.complete(messages, tools=self.tools or None)
        except Exception as e:
            logger.error("Reasoning call failed", error=str(e))
            raise ReasoningError(str(e)) from e

        if not response.content and not response.tool_calls:
            logger.warning("Reasoning service returned an empty response")
            return None

        return Message(
            role=MessageRole.ASSISTANT,
            content=response.content,
            tool_calls=response.tool_calls or None,
        )

    async def stream_reasoning(
        self,
        messages: list[Message],
        token: Optional[CancellationToken] = None
    ) -> AsyncIterator[str]:
        """
        Stream a tool-free completion.

        Stops as soon as the token is cancelled; the underlying provider
        stream is closed on exit.

        Args:
            messages: Full message list
            token: Cancellation token checked at every fragment

        Yields:
            Text fragments
        """
        source = self.summary_provider.stream(messages)
        try:
            async for fragment in source:
                if token is not None and token.cancelled:
                    logger.debug("Reasoning stream cancelled")
                    break
                yield fragment
        finally:
            await source.aclose()
