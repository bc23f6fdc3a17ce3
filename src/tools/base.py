"""Base classes for agent tools.

Each tool:
- Declares a name from the closed ToolName set
- Publishes a JSON Schema for its arguments
- Reports failures in its result content rather than raising
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from search.collector import SearchResultCollector
from search.formatter import SearchResultFormatter
from search.hybrid import HybridSearchService
from shared.models import ToolCallResult
from tools.stores import NotebookStore, ProfileStore


class ToolName(str, Enum):
    """Every tool the reasoning service may call."""
    SEARCH_KNOWLEDGE_BASE = "search_knowledge_base"
    SEARCH_WEB = "search_web"
    OPEN_NOTEBOOK = "open_notebook"
    CREATE_NOTEBOOK = "create_notebook"
    DELETE_NOTEBOOK = "delete_notebook"
    OPEN_URL = "open_url"
    UPDATE_USER_GOALS = "update_user_goals"


SEARCH_TOOLS = frozenset({ToolName.SEARCH_KNOWLEDGE_BASE, ToolName.SEARCH_WEB})


@dataclass
class ToolContext:
    """Everything a tool may touch while handling one intent."""
    sender_id: str
    collector: SearchResultCollector
    notebook_store: NotebookStore
    profile_store: ProfileStore
    search: HybridSearchService
    formatter: SearchResultFormatter = field(default_factory=SearchResultFormatter)
    user_id: str = "default_user"
    notebook_id: Optional[str] = None


class BaseTool(ABC):
    """
    Base class for tools.

    Subclasses set `name`, `description` and `parameters` as class
    attributes and implement `handle`.
    """

    name: ToolName
    description: str
    parameters: dict[str, Any]

    @abstractmethod
    async def handle(self, arguments: dict[str, Any], context: ToolContext) -> ToolCallResult:
        """
        Run the tool.

        Args:
            arguments: Decoded, schema-valid arguments
            context: Per-intent tool context

        Returns:
            Tool output, optionally with an immediate result for the caller
        """
        pass

    def to_llm_format(self) -> dict[str, Any]:
        """Tool definition in OpenAI function-calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name.value,
                "description": self.description,
                "parameters": self.parameters,
            },
        }
