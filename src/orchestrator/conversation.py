"""Conversation Manager for the Orchestrator.

Owns the per-sender state: the session id and the in-memory message history
replayed to the reasoning service.
"""

import asyncio
from typing import Any, Optional

from orchestrator.session import SessionStore
from shared.logging import get_logger
from shared.models import Message, MessageRole

logger = get_logger(__name__)


def prune_orphans(messages: list[Message]) -> tuple[list[Message], list[str]]:
    """
    Remove unmatched tool references from a message list.

    A tool call is matched when a tool message answering it appears after it.
    Unmatched calls are dropped from their assistant message; an assistant
    message left without calls keeps its content. Tool messages that do not
    answer a preceding call are removed.

    Args:
        messages: Messages in conversation order

    Returns:
        Tuple of (sanitized messages, list of problems found)
    """
    issued: set[str] = set()
    matched: set[str] = set()
    for msg in messages:
        if msg.role == MessageRole.ASSISTANT and msg.tool_calls:
            issued.update(tc.id for tc in msg.tool_calls)
        elif msg.role == MessageRole.TOOL and msg.tool_call_id in issued:
            matched.add(msg.tool_call_id)

    sanitized: list[Message] = []
    errors: list[str] = []
    answered: set[str] = set()

    for index, msg in enumerate(messages):
        if msg.role == MessageRole.ASSISTANT and msg.tool_calls:
            kept = [tc for tc in msg.tool_calls if tc.id in matched]
            for tc in msg.tool_calls:
                if tc.id not in matched:
                    errors.append(f"Message {index}: tool call {tc.id} has no reply")
            if len(kept) == len(msg.tool_calls):
                sanitized.append(msg)
            else:
                sanitized.append(msg.model_copy(update={"tool_calls": kept or None}))
        elif msg.role == MessageRole.TOOL:
            if msg.tool_call_id in matched and msg.tool_call_id not in answered:
                answered.add(msg.tool_call_id)
                sanitized.append(msg)
            else:
                errors.append(f"Message {index}: tool reply {msg.tool_call_id} has no matching call")
        else:
            sanitized.append(msg)

    return sanitized, errors


class ConversationManager:
    """
    Manages conversation state for the orchestrator.

    Responsibilities:
    - Map each sender to one session, created lazily
    - Keep a bounded, orphan-free history per sender
    - Provide maintenance operations and statistics
    """

    def __init__(
        self,
        session_store: SessionStore,
        max_history_length: int = 20
    ) -> None:
        """
        Initialize conversation manager.

        Args:
            session_store: Persistence backend for sessions and messages
            max_history_length: Maximum messages kept in memory per sender
        """
        self.session_store = session_store
        self.max_length = max_history_length

        self._histories: dict[str, list[Message]] = {}
        self._sessions: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def ensure_session(self, sender_id: str) -> str:
        """
        Return the sender's session id, creating the session on first use.

        Args:
            sender_id: Sender identifier

        Returns:
            Session id
        """
        session_id = self._sessions.get(sender_id)
        if session_id:
            return session_id

        async with self._lock:
            # Another caller may have created it while we waited
            session_id = self._sessions.get(sender_id)
            if session_id:
                return session_id

            session_id = await self.session_store.ensure_session(sender_id)
            self._sessions[sender_id] = session_id

        logger.info("Conversation session ready", sender=sender_id, session_id=session_id)
        return session_id

    def get_session_id(self, sender_id: str) -> Optional[str]:
        """Get the sender's session id if one exists."""
        return self._sessions.get(sender_id)

    def get_history(self, sender_id: str) -> Optional[list[Message]]:
        """
        Get a copy of the sender's in-memory history.

        Returns:
            Message list, or None when nothing is held in memory
        """
        history = self._histories.get(sender_id)
        if history is None:
            return None
        return list(history)

    def update_history(self, sender_id: str, messages: list[Message]) -> list[Message]:
        """
        Replace the sender's history, evicting and pruning as needed.

        The leading system message is never evicted. Beyond the cap the oldest
        other messages go first, then orphaned tool references are pruned.

        Returns:
            The history as stored
        """
        history = list(messages)

        if len(history) > self.max_length:
            if history and history[0].role == MessageRole.SYSTEM:
                history = [history[0]] + history[1:][-(self.max_length - 1):]
            else:
                history = history[-self.max_length:]

        history, errors = prune_orphans(history)
        if errors:
            logger.debug("Pruned orphaned tool references", sender=sender_id, count=len(errors))

        self._histories[sender_id] = history
        return list(history)

    def append_to_history(self, sender_id: str, *messages: Message) -> list[Message]:
        """Append messages to the sender's history."""
        current = self._histories.get(sender_id, [])
        return self.update_history(sender_id, current + list(messages))

    async def load_history(self, sender_id: str) -> list[Message]:
        """
        Load the sender's transcript from the session store.

        Orphaned tool references are removed so the result can be replayed.
        """
        session_id = self._sessions.get(sender_id)
        if not session_id:
            return []

        messages = await self.session_store.load_messages(session_id)
        sanitized, errors = prune_orphans(messages)
        if errors:
            logger.warning(
                "Invalid conversation history loaded",
                sender=sender_id,
                session_id=session_id,
                errors=errors
            )
        return sanitized

    def clear_conversation(self, sender_id: str) -> bool:
        """
        Forget a sender's session and history.

        Returns:
            True if anything was cleared
        """
        had_session = self._sessions.pop(sender_id, None) is not None
        had_history = self._histories.pop(sender_id, None) is not None
        if had_session or had_history:
            logger.info("Conversation cleared", sender=sender_id)
            return True
        return False

    def clear_all_conversations(self) -> None:
        """Forget every sender."""
        count = len(self._sessions)
        self._sessions.clear()
        self._histories.clear()
        logger.info("All conversations cleared", count=count)

    def get_active_conversation_count(self) -> int:
        """Number of senders with a session."""
        return len(self._sessions)

    def get_stats(self) -> dict[str, Any]:
        """Get conversation manager statistics."""
        return {
            "active_conversations": len(self._sessions),
            "histories_in_memory": len(self._histories),
            "total_messages_in_memory": sum(len(h) for h in self._histories.values()),
            "max_length": self.max_length,
        }
