"""Tool Registry.

Maps tool names to handlers. The set of tools is closed: every ToolName must
be registered and nothing else may be.
"""

from typing import Any, Optional

from shared.logging import get_logger
from shared.schema import check_tool_schema, validate_schema
from tools.base import BaseTool, ToolName

logger = get_logger(__name__)


class ToolRegistryError(Exception):
    """Raised when the registry is inconsistent."""
    pass


class ToolRegistry:
    """
    Central registry for agent tools.

    Responsibilities:
    - Register tool handlers
    - Lookup tools by name
    - Validate the catalogue at startup
    - Publish the catalogue to the reasoning service
    """

    def __init__(self) -> None:
        self._tools: dict[ToolName, BaseTool] = {}

    def register(self, tool: BaseTool) -> None:
        """
        Register a tool in the registry.

        Args:
            tool: Tool handler to register

        Raises:
            ValueError: If the name is unknown or already registered
        """
        try:
            name = ToolName(tool.name)
        except ValueError:
            raise ValueError(f"Tool '{tool.name}' is not a known tool name")

        if name in self._tools:
            raise ValueError(f"Tool '{name.value}' is already registered")

        self._tools[name] = tool
        logger.info("Tool registered", tool=name.value)

    def register_many(self, tools: list[BaseTool]) -> None:
        """Register multiple tools at once."""
        for tool in tools:
            self.register(tool)

    def get(self, tool_name: str) -> Optional[BaseTool]:
        """
        Get a tool by name.

        Returns:
            The tool, or None for unknown or unregistered names
        """
        try:
            return self._tools.get(ToolName(tool_name))
        except ValueError:
            return None

    def list_tools(self) -> list[BaseTool]:
        """List registered tools in ToolName order."""
        return [self._tools[name] for name in ToolName if name in self._tools]

    def validate(self) -> None:
        """
        Check that the catalogue is complete and every schema is usable.

        Raises:
            ToolRegistryError: On the first set of problems found
        """
        problems: list[str] = []

        missing = [name.value for name in ToolName if name not in self._tools]
        if missing:
            problems.append(f"missing tools: {', '.join(missing)}")

        for name, tool in self._tools.items():
            for problem in check_tool_schema(tool.parameters):
                problems.append(f"{name.value}: {problem}")

        if problems:
            raise ToolRegistryError("Invalid tool registry: " + "; ".join(problems))

        logger.info("Tool registry validated", tool_count=len(self._tools))

    def validate_input(
        self,
        tool_name: str,
        arguments: dict[str, Any]
    ) -> tuple[bool, list[str]]:
        """
        Validate arguments against the tool's parameter schema.

        Returns:
            Tuple of (is_valid, list of error messages)
        """
        tool = self.get(tool_name)
        if not tool:
            return False, [f"Tool '{tool_name}' not found"]

        return validate_schema(arguments, tool.parameters)

    def get_tools_for_llm(self) -> list[dict[str, Any]]:
        """Get tool definitions in OpenAI function-calling format."""
        return [tool.to_llm_format() for tool in self.list_tools()]


def build_default_registry() -> ToolRegistry:
    """Create and validate a registry holding every built-in tool."""
    from tools.goals import UpdateUserGoalsTool
    from tools.navigation import OpenUrlTool
    from tools.notebooks import CreateNotebookTool, DeleteNotebookTool, OpenNotebookTool
    from tools.search import SearchKnowledgeBaseTool, SearchWebTool

    registry = ToolRegistry()
    registry.register_many([
        SearchKnowledgeBaseTool(),
        SearchWebTool(),
        OpenNotebookTool(),
        CreateNotebookTool(),
        DeleteNotebookTool(),
        OpenUrlTool(),
        UpdateUserGoalsTool(),
    ])
    registry.validate()
    return registry
