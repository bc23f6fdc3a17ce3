"""Session Store contract.

The host application owns persistence of conversation turns. The agent
consumes it through this interface only. An in-memory implementation is
provided for tests and for running the HTTP surface without a database.
"""

import asyncio
import copy
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from shared.logging import get_logger
from shared.models import Message, MessageRole, StoredMessage, ToolCall

logger = get_logger(__name__)


class PendingMessage(BaseModel):
    """A message queued for persistence."""
    role: MessageRole
    content: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)


class SessionStore(ABC):
    """
    Persistence of conversation sessions and their messages.

    `save_messages_in_transaction` must be atomic: either every message in
    the batch is persisted or none is.
    """

    @abstractmethod
    async def ensure_session(self, sender_id: str) -> str:
        """Return a new session id for the sender."""
        pass

    @abstractmethod
    async def save_message(
        self,
        session_id: str,
        role: MessageRole,
        content: str,
        metadata: Optional[dict[str, Any]] = None
    ) -> str:
        """Persist one message and return its id."""
        pass

    @abstractmethod
    async def save_messages_in_transaction(
        self,
        session_id: str,
        messages: list[PendingMessage]
    ) -> list[str]:
        """Persist all messages atomically and return their ids in order."""
        pass

    @abstractmethod
    async def load_messages(self, session_id: str) -> list[Message]:
        """Load the session transcript in persisted order."""
        pass

    @abstractmethod
    async def update_message(self, message_id: str, content: str) -> None:
        """Replace the content of a persisted message."""
        pass


def to_pending(message: Message, tool_name: Optional[str] = None) -> PendingMessage:
    """Convert a conversation message into its persisted form."""
    metadata: dict[str, Any] = {}
    if message.tool_calls:
        metadata["tool_calls"] = [tc.model_dump() for tc in message.tool_calls]
    if message.tool_call_id:
        metadata["tool_call_id"] = message.tool_call_id
    if tool_name:
        metadata["tool_name"] = tool_name
    return PendingMessage(role=message.role, content=message.content or "", metadata=metadata)


def from_stored(stored: StoredMessage) -> Message:
    """Rebuild a conversation message from its persisted form."""
    tool_calls = None
    raw_calls = stored.metadata.get("tool_calls")
    if raw_calls:
        tool_calls = [ToolCall.model_validate(tc) for tc in raw_calls]
    return Message(
        role=stored.role,
        content=stored.content,
        tool_calls=tool_calls,
        tool_call_id=stored.metadata.get("tool_call_id"),
    )


class InMemorySessionStore(SessionStore):
    """
    Session store kept in process memory.

    Transactions are staged on a copy and committed only when every message
    was written, so a failure mid-batch leaves nothing behind.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, dict[str, Any]] = {}
        self._messages: dict[str, list[StoredMessage]] = {}
        self._lock = asyncio.Lock()
        self._fail_after: Optional[int] = None

    def fail_after(self, writes: Optional[int]) -> None:
        """Make the next write raise after `writes` messages were staged (tests)."""
        self._fail_after = writes

    def _check_failure(self, written: int) -> None:
        if self._fail_after is not None and written >= self._fail_after:
            self._fail_after = None
            raise RuntimeError("Simulated session store failure")

    def _new_message(
        self,
        session_id: str,
        role: MessageRole,
        content: str,
        metadata: Optional[dict[str, Any]]
    ) -> StoredMessage:
        if session_id not in self._sessions:
            raise KeyError(f"Unknown session: {session_id}")
        return StoredMessage(
            message_id=str(uuid.uuid4()),
            session_id=session_id,
            role=role,
            content=content,
            metadata=metadata or {},
        )

    async def ensure_session(self, sender_id: str) -> str:
        session_id = str(uuid.uuid4())
        async with self._lock:
            self._sessions[session_id] = {
                "sender_id": sender_id,
                "title": f"Conversation - {datetime.utcnow().isoformat(timespec='seconds')}",
            }
            self._messages[session_id] = []
        logger.info("Session created", session_id=session_id, sender=sender_id)
        return session_id

    async def save_message(
        self,
        session_id: str,
        role: MessageRole,
        content: str,
        metadata: Optional[dict[str, Any]] = None
    ) -> str:
        async with self._lock:
            self._check_failure(0)
            message = self._new_message(session_id, role, content, metadata)
            self._messages[session_id].append(message)
        return message.message_id

    async def save_messages_in_transaction(
        self,
        session_id: str,
        messages: list[PendingMessage]
    ) -> list[str]:
        async with self._lock:
            staged = list(self._messages.get(session_id, []))
            ids: list[str] = []
            for index, pending in enumerate(messages):
                self._check_failure(index)
                message = self._new_message(
                    session_id, pending.role, pending.content, copy.deepcopy(pending.metadata)
                )
                staged.append(message)
                ids.append(message.message_id)
            self._messages[session_id] = staged
        logger.debug("Messages saved in transaction", session_id=session_id, count=len(ids))
        return ids

    async def load_messages(self, session_id: str) -> list[Message]:
        return [from_stored(m) for m in self._messages.get(session_id, [])]

    async def update_message(self, message_id: str, content: str) -> None:
        async with self._lock:
            for messages in self._messages.values():
                for message in messages:
                    if message.message_id == message_id:
                        message.content = content
                        return
        raise KeyError(f"Unknown message: {message_id}")

    def stored_messages(self, session_id: str) -> list[StoredMessage]:
        """Return the raw persisted messages of a session."""
        return list(self._messages.get(session_id, []))
