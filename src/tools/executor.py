"""Tool Executor.

Runs the tool calls of one reasoning response concurrently. Every failure
mode is reported in the result content so one bad call never aborts the
others.
"""

import asyncio
import json
import time

from shared.logging import get_logger
from shared.models import ToolCall, ToolCallResult
from tools.base import ToolContext
from tools.registry import ToolRegistry

logger = get_logger(__name__)


class ToolExecutor:
    """
    Executes tool calls against a registry.

    Responsibilities:
    - Decode and validate arguments
    - Route calls to their handlers
    - Convert failures to result text
    """

    def __init__(self, registry: ToolRegistry) -> None:
        self.registry = registry

    async def execute_all(
        self,
        calls: list[ToolCall],
        context: ToolContext
    ) -> list[ToolCallResult]:
        """
        Execute all calls concurrently.

        Args:
            calls: Tool calls in the order the reasoning service emitted them
            context: Per-intent tool context

        Returns:
            One result per call, in call order
        """
        if not calls:
            return []

        logger.info(
            "Executing tool calls",
            count=len(calls),
            tools=[c.name for c in calls],
            sender=context.sender_id
        )
        return list(await asyncio.gather(*(self.execute(call, context) for call in calls)))

    async def execute(self, call: ToolCall, context: ToolContext) -> ToolCallResult:
        """
        Execute a single tool call.

        Never raises; unknown tools, bad arguments and handler errors come
        back as result content.
        """
        start_time = time.time()

        tool = self.registry.get(call.name)
        if not tool:
            logger.warning("Unknown tool requested", tool=call.name, call_id=call.id)
            return ToolCallResult(content=f"Unknown tool: {call.name}")

        try:
            arguments = json.loads(call.arguments or "{}")
        except json.JSONDecodeError as e:
            logger.warning("Malformed tool arguments", tool=call.name, call_id=call.id, error=str(e))
            return ToolCallResult(content=f"Error: Invalid arguments for {call.name}: {e}")

        if not isinstance(arguments, dict):
            return ToolCallResult(
                content=f"Error: Invalid arguments for {call.name}: expected a JSON object"
            )

        is_valid, errors = self.registry.validate_input(call.name, arguments)
        if not is_valid:
            logger.warning("Tool arguments failed validation", tool=call.name, errors=errors)
            return ToolCallResult(
                content=f"Error: Invalid arguments for {call.name}: {'; '.join(errors)}"
            )

        try:
            result = await tool.handle(arguments, context)
        except Exception as e:
            logger.error(
                "Tool execution failed",
                tool=call.name,
                call_id=call.id,
                error=str(e),
                exc_info=True
            )
            return ToolCallResult(content=f"Error: {e}")

        logger.debug(
            "Tool executed",
            tool=call.name,
            call_id=call.id,
            immediate=result.immediate_return is not None,
            execution_time_ms=round((time.time() - start_time) * 1000, 2)
        )
        return result
