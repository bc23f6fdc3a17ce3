"""Core data models for the knowledge-base agent.

This module defines all shared data structures used across the agent,
ensuring type safety and validation throughout the system.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field


class MessageRole(str, Enum):
    """Role of a message in a conversation."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCall(BaseModel):
    """
    A structured request, emitted by the reasoning service, to invoke a tool.

    `arguments` is kept as the raw JSON string the model produced so that
    malformed output can be isolated to the single offending call.
    """
    id: str = Field(..., description="Call identifier referenced by the tool reply")
    name: str = Field(..., description="Registered tool name")
    arguments: str = Field(default="{}", description="Raw JSON arguments")

    def to_openai(self) -> dict[str, Any]:
        """Return the call in OpenAI function-calling format."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_openai(cls, data: dict[str, Any]) -> "ToolCall":
        """Build a call from an OpenAI-style dict."""
        function = data.get("function", {})
        arguments = function.get("arguments", "{}")
        if not isinstance(arguments, str):
            # Some providers hand back already-decoded arguments
            arguments = json.dumps(arguments)
        return cls(id=data.get("id", ""), name=function.get("name", ""), arguments=arguments)


class Message(BaseModel):
    """A single message in a conversation."""
    role: MessageRole
    content: Optional[str] = None
    tool_calls: Optional[list[ToolCall]] = None
    tool_call_id: Optional[str] = None

    def to_openai(self) -> dict[str, Any]:
        """Return the message in OpenAI chat format."""
        data: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [tc.to_openai() for tc in self.tool_calls]
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        return data


class StoredMessage(BaseModel):
    """A message as persisted by the session store."""
    message_id: str
    session_id: str
    role: MessageRole
    content: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class LLMResponse(BaseModel):
    """Response from the LLM layer."""
    content: Optional[str] = None
    tool_calls: Optional[list[ToolCall]] = None
    finish_reason: str = "stop"
    usage: dict[str, int] = Field(default_factory=dict)


# --- Intent results -------------------------------------------------------


class SearchSource(str, Enum):
    """Provenance class of a search result."""
    LOCAL = "local"
    REMOTE = "remote"


class SliceSourceType(str, Enum):
    """Provenance class of a display slice."""
    LOCAL = "local"
    WEB = "web"


class DisplaySlice(BaseModel):
    """
    A deduplicated, display-ready citation.

    Built at aggregation time from one or more search results and never
    persisted.
    """
    id: str
    title: Optional[str] = None
    source_uri: Optional[str] = None
    content: str = ""
    summary: Optional[str] = None
    source_type: SliceSourceType
    score: float = 0.0
    chunk_id: Optional[int] = None
    source_object_id: Optional[str] = None
    published_date: Optional[str] = None
    author: Optional[str] = None


class ChatReply(BaseModel):
    """Natural-language reply, optionally with citations."""
    type: Literal["chat_reply"] = "chat_reply"
    message: str
    slices: Optional[list[DisplaySlice]] = None


class OpenNotebookAction(BaseModel):
    """Instructs the host to open a notebook."""
    type: Literal["open_notebook"] = "open_notebook"
    notebook_id: str
    title: str
    message: Optional[str] = None


class OpenUrlAction(BaseModel):
    """Instructs the host to navigate to a URL."""
    type: Literal["open_url"] = "open_url"
    url: str
    message: Optional[str] = None


class ErrorResult(BaseModel):
    """The intent could not be processed."""
    type: Literal["error"] = "error"
    message: str


IntentResult = Annotated[
    Union[ChatReply, OpenNotebookAction, OpenUrlAction, ErrorResult],
    Field(discriminator="type"),
]


class ToolCallResult(BaseModel):
    """
    Output of one tool execution.

    `content` is shown to the model. `immediate_return` is a fully-formed
    result that bypasses summarization and goes straight to the caller.
    """
    content: str
    immediate_return: Optional[IntentResult] = None


# --- Search ---------------------------------------------------------------


class SearchResult(BaseModel):
    """A retrieved item from the local knowledge base or the web."""
    id: str
    title: Optional[str] = None
    content: str = ""
    score: float = 0.0
    source: SearchSource

    # Local provenance
    chunk_id: Optional[int] = None
    object_id: Optional[str] = None

    # Remote provenance
    url: Optional[str] = None
    published_date: Optional[str] = None
    author: Optional[str] = None

    highlights: list[str] = Field(default_factory=list)
    propositions: list[str] = Field(default_factory=list)


class SliceDetail(BaseModel):
    """Canonical record for a local chunk, joined with its source object."""
    chunk_id: int
    content: str
    summary: Optional[str] = None
    source_object_id: str
    source_object_title: Optional[str] = None
    source_object_uri: Optional[str] = None


# --- Host domain ----------------------------------------------------------


class Notebook(BaseModel):
    """A user notebook."""
    id: str
    title: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class TimeframeType(str, Enum):
    """Time horizon of a user goal."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


class UserGoal(BaseModel):
    """A time-bound goal captured from conversation."""
    id: str
    text: str
    timeframe_type: TimeframeType = TimeframeType.WEEK
    created_at: datetime = Field(default_factory=datetime.utcnow)
