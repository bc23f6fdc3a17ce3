"""Agent tools: registry, executor and built-in handlers."""

from tools.base import BaseTool, ToolContext, ToolName
from tools.executor import ToolExecutor
from tools.registry import ToolRegistry, ToolRegistryError, build_default_registry

__all__ = [
    "BaseTool",
    "ToolContext",
    "ToolName",
    "ToolExecutor",
    "ToolRegistry",
    "ToolRegistryError",
    "build_default_registry",
]
