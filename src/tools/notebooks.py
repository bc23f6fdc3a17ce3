"""Notebook tools: open, create and delete notebooks by title."""

from typing import Any

from shared.logging import get_logger
from shared.models import ChatReply, OpenNotebookAction, ToolCallResult
from tools.base import BaseTool, ToolContext, ToolName

logger = get_logger(__name__)


NOTEBOOK_NAME_SCHEMA = {
    "type": "object",
    "properties": {
        "notebook_name": {
            "type": "string",
            "description": "The exact or close title of the notebook"
        }
    },
    "required": ["notebook_name"]
}


class OpenNotebookTool(BaseTool):
    """Opens an existing notebook by title."""

    name = ToolName.OPEN_NOTEBOOK
    description = "Opens an existing notebook. Use when the user wants to open, find or show a notebook."
    parameters = NOTEBOOK_NAME_SCHEMA

    async def handle(self, arguments: dict[str, Any], context: ToolContext) -> ToolCallResult:
        notebook_name = arguments.get("notebook_name")
        if not notebook_name:
            return ToolCallResult(content="Error: Notebook name was unclear.")

        notebook = await context.notebook_store.find_by_title(notebook_name)
        if notebook is None:
            logger.warning("Notebook not found", notebook_name=notebook_name)
            return ToolCallResult(content=f'Notebook "{notebook_name}" not found.')

        logger.info("Opening notebook", notebook_id=notebook.id, title=notebook.title)
        return ToolCallResult(
            content=f"Opened notebook: {notebook.title}",
            immediate_return=OpenNotebookAction(
                notebook_id=notebook.id,
                title=notebook.title,
                message=f'Right on, I\'ll open "{notebook.title}" for you.',
            ),
        )


class CreateNotebookTool(BaseTool):
    """Creates a notebook and opens it."""

    name = ToolName.CREATE_NOTEBOOK
    description = "Creates a new notebook with the given title and opens it."
    parameters = {
        "type": "object",
        "properties": {
            "title": {
                "type": "string",
                "description": "The title for the new notebook"
            },
            "description": {
                "type": "string",
                "description": "Optional short description of the notebook"
            }
        },
        "required": ["title"]
    }

    async def handle(self, arguments: dict[str, Any], context: ToolContext) -> ToolCallResult:
        title = arguments.get("title")
        if not title:
            return ToolCallResult(content="Error: Notebook title was unclear.")

        try:
            notebook = await context.notebook_store.create_notebook(title, arguments.get("description"))
        except Exception as e:
            logger.error("Notebook creation failed", title=title, error=str(e))
            return ToolCallResult(content=f"Failed to create notebook: {e}")

        return ToolCallResult(
            content=f"Created notebook: {notebook.title}",
            immediate_return=OpenNotebookAction(
                notebook_id=notebook.id,
                title=notebook.title,
                message=f'Right on, I\'ve created "{notebook.title}" and I\'ll open it for you now.',
            ),
        )


class DeleteNotebookTool(BaseTool):
    """Deletes a notebook by title."""

    name = ToolName.DELETE_NOTEBOOK
    description = "Deletes an existing notebook. Confirm the notebook name before calling."
    parameters = NOTEBOOK_NAME_SCHEMA

    async def handle(self, arguments: dict[str, Any], context: ToolContext) -> ToolCallResult:
        notebook_name = arguments.get("notebook_name")
        if not notebook_name:
            return ToolCallResult(content="Error: Notebook name was unclear.")

        notebook = await context.notebook_store.find_by_title(notebook_name)
        if notebook is None:
            logger.warning("Notebook not found", notebook_name=notebook_name)
            return ToolCallResult(content=f'Notebook "{notebook_name}" not found.')

        try:
            deleted = await context.notebook_store.delete_notebook(notebook.id)
        except Exception as e:
            logger.error("Notebook deletion failed", notebook_id=notebook.id, error=str(e))
            return ToolCallResult(content=f"Failed to delete notebook: {e}")

        if not deleted:
            return ToolCallResult(content=f'Notebook "{notebook_name}" not found.')

        return ToolCallResult(
            content=f"Deleted notebook: {notebook.title}",
            immediate_return=ChatReply(message=f'I\'ve deleted "{notebook.title}" for you.'),
        )
