"""Shared utilities and base classes for the knowledge-base agent."""

from shared.models import (
    ChatReply,
    DisplaySlice,
    ErrorResult,
    IntentResult,
    Message,
    MessageRole,
    OpenNotebookAction,
    OpenUrlAction,
    SearchResult,
    ToolCall,
    ToolCallResult,
)
from shared.config import Settings, get_settings
from shared.logging import get_logger, setup_logging

__all__ = [
    "ChatReply",
    "DisplaySlice",
    "ErrorResult",
    "IntentResult",
    "Message",
    "MessageRole",
    "OpenNotebookAction",
    "OpenUrlAction",
    "SearchResult",
    "ToolCall",
    "ToolCallResult",
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
]
