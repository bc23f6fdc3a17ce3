"""URL navigation tool."""

import re
from typing import Any

from shared.logging import get_logger
from shared.models import OpenUrlAction, ToolCallResult
from tools.base import BaseTool, ToolContext, ToolName

logger = get_logger(__name__)

_SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


def normalize_url(url: str) -> str:
    """Prefix https:// when the URL has no scheme."""
    if _SCHEME.match(url):
        return url
    return f"https://{url}"


class OpenUrlTool(BaseTool):
    """Asks the host to navigate to a URL."""

    name = ToolName.OPEN_URL
    description = (
        "Opens a URL in the browser. Use for websites, searches on a specific service, "
        "or whenever the user wants to see something on the web."
    )
    parameters = {
        "type": "object",
        "properties": {
            "url": {
                "type": "string",
                "description": "The URL to open"
            }
        },
        "required": ["url"]
    }

    async def handle(self, arguments: dict[str, Any], context: ToolContext) -> ToolCallResult:
        url = arguments.get("url")
        if not url:
            return ToolCallResult(content="Error: URL was unclear.")

        url = normalize_url(url)
        logger.info("Opening URL", url=url)
        return ToolCallResult(
            content=f"Opened URL: {url}",
            immediate_return=OpenUrlAction(url=url, message="Right on, I'll open that for you."),
        )
