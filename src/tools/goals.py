"""Goal capture tool."""

import uuid
from typing import Any

from shared.logging import get_logger
from shared.models import TimeframeType, ToolCallResult, UserGoal
from tools.base import BaseTool, ToolContext, ToolName

logger = get_logger(__name__)


class UpdateUserGoalsTool(BaseTool):
    """Adds or removes time-bound goals on the user profile."""

    name = ToolName.UPDATE_USER_GOALS
    description = (
        "Update the user's goals when they mention plans, objectives, or things they want to "
        "accomplish. Capture goals with their timeframes (e.g., 'this week', 'this month')."
    )
    parameters = {
        "type": "object",
        "properties": {
            "action": {
                "type": "string",
                "enum": ["add", "remove"],
                "description": "Whether to add new goals or remove existing ones"
            },
            "goals": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "text": {
                            "type": "string",
                            "description": "The goal text as stated by the user"
                        },
                        "timeframeType": {
                            "type": "string",
                            "enum": [t.value for t in TimeframeType],
                            "description": "The time horizon for this goal"
                        }
                    },
                    "required": ["text"]
                },
                "description": "Goals to add (for 'add')"
            },
            "goalIds": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Goal IDs to remove (for 'remove')"
            }
        },
        "required": ["action"]
    }

    async def handle(self, arguments: dict[str, Any], context: ToolContext) -> ToolCallResult:
        action = arguments.get("action")
        goals = arguments.get("goals") or []
        goal_ids = arguments.get("goalIds") or []

        try:
            if action == "add" and goals:
                new_goals = [
                    UserGoal(
                        id=str(uuid.uuid4()),
                        text=goal["text"],
                        timeframe_type=TimeframeType(goal.get("timeframeType") or "week"),
                    )
                    for goal in goals
                ]
                logger.info("Adding user goals", count=len(new_goals))
                await context.profile_store.add_goals(context.user_id, new_goals)

                goal_texts = ", ".join(f'"{g.text}" ({g.timeframe_type.value})' for g in new_goals)
                return ToolCallResult(content=f"I'll keep this goal in mind: {goal_texts}.")

            if action == "remove" and goal_ids:
                logger.info("Removing user goals", count=len(goal_ids))
                await context.profile_store.remove_goals(context.user_id, goal_ids)
                return ToolCallResult(content="I've removed that from your profile.")

            return ToolCallResult(
                content="Error: Invalid action or missing required parameters for updating goals."
            )
        except Exception as e:
            logger.error("Updating user goals failed", error=str(e))
            return ToolCallResult(content=f"Error updating goals: {e}")
