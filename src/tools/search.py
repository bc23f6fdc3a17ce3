"""Search tools: the user's knowledge base and the web."""

from typing import Any

from shared.logging import get_logger
from shared.models import OpenUrlAction, SearchResult, ToolCallResult
from tools.base import BaseTool, ToolContext, ToolName

logger = get_logger(__name__)

HIGH_RELEVANCE_THRESHOLD = 0.7
MEDIUM_RELEVANCE_THRESHOLD = 0.5
MAX_PROPOSITIONS = 10
MAX_SOURCES = 8


def _percent(score: float) -> str:
    return f"{score * 100:.0f}"


def format_knowledge_base_results(results: list[SearchResult], query: str) -> str:
    """
    Render knowledge base results as markdown for the reasoning service.

    Every result is acknowledged, bucketed by relevance, so the model's
    reply matches what the user sees in the UI.
    """
    if not results:
        return f'I searched for "{query}" but found no results in your knowledge base.'

    high = [r for r in results if r.score > HIGH_RELEVANCE_THRESHOLD]
    medium = [r for r in results if MEDIUM_RELEVANCE_THRESHOLD < r.score <= HIGH_RELEVANCE_THRESHOLD]
    low = [r for r in results if r.score <= MEDIUM_RELEVANCE_THRESHOLD]

    lines = [f'## Found {len(results)} results for "{query}" in your knowledge base\n']

    if high:
        lines.append(
            f"*{len(high)} highly relevant (70%+), {len(medium)} moderately relevant (50-70%), "
            f"{len(low)} potentially related (<50%)*\n"
        )
    elif medium:
        lines.append(
            f"*{len(medium)} moderately relevant (50-70%), {len(low)} potentially related (<50%)*\n"
        )
    else:
        lines.append("*All results have lower relevance scores (below 50%), but may still contain useful information*\n")

    lines.append("### Key Ideas:\n")

    by_relevance = sorted(results, key=lambda r: r.score, reverse=True)

    support: dict[str, int] = {}
    for result in results:
        for proposition in result.propositions:
            support[proposition] = support.get(proposition, 0) + 1

    if support:
        propositions = sorted(support, key=lambda p: support[p], reverse=True)
        lines.extend(f"• {p}" for p in propositions[:MAX_PROPOSITIONS])
        if len(propositions) > MAX_PROPOSITIONS:
            lines.append(f"• ... and {len(propositions) - MAX_PROPOSITIONS} more ideas")
    else:
        lines.append(f"*No key ideas extracted. Showing all {len(results)} sources:*")
        lines.extend(
            f"• [{_percent(r.score)}%] {r.title or 'Untitled'} - {r.url or 'No URL'}"
            for r in by_relevance
        )

    lines.append("\n### Sources (by relevance):")
    sources: dict[str, SearchResult] = {}
    for result in by_relevance:
        sources.setdefault(result.url or result.title or "Unknown", result)

    for key, result in list(sources.items())[:MAX_SOURCES]:
        lines.append(f"• [{_percent(result.score)}%] {result.title or 'Untitled'} ({key})")
    if len(sources) > MAX_SOURCES:
        lines.append(f"• ... and {len(sources) - MAX_SOURCES} more sources")

    lines.append(
        f"\n*I'm showing you all {len(results)} results above. "
        f"Please review them to find what you're looking for.*"
    )
    return "\n".join(lines)


class SearchKnowledgeBaseTool(BaseTool):
    """Searches the user's saved content."""

    name = ToolName.SEARCH_KNOWLEDGE_BASE
    description = "Search the user's knowledge base (saved web content, PDFs, bookmarks) for information"
    parameters = {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "The search query to find relevant information"
            },
            "limit": {
                "type": "integer",
                "minimum": 1,
                "description": "Maximum number of results to return",
                "default": 10
            },
            "autoOpen": {
                "type": "boolean",
                "description": "Whether to automatically open the first result",
                "default": False
            }
        },
        "required": ["query"]
    }

    async def handle(self, arguments: dict[str, Any], context: ToolContext) -> ToolCallResult:
        query = arguments.get("query")
        limit = arguments.get("limit", 10)
        auto_open = arguments.get("autoOpen", False)

        if not query:
            return ToolCallResult(content="Error: Search query was unclear.")

        logger.info("Searching knowledge base", query=query, limit=limit, auto_open=auto_open)

        try:
            results = await context.search.search(query, num_results=limit, use_web=False)
        except Exception as e:
            logger.error("Knowledge base search failed", query=query, error=str(e))
            return ToolCallResult(content=f"Search failed: {e}")

        context.collector.add(results)

        if not results:
            return ToolCallResult(
                content=f'No results found in your knowledge base for "{query}". '
                        f'Try saving more content or refining your search.'
            )

        first = results[0]
        if auto_open and first.url:
            logger.info("Auto-opening first result", url=first.url)
            return ToolCallResult(
                content=f'Found "{first.title}" in your knowledge base. Opening it now...',
                immediate_return=OpenUrlAction(
                    url=first.url,
                    message=f'Right on, I found "{first.title}" in your knowledge base and I\'ll open it for you.',
                ),
            )

        return ToolCallResult(content=format_knowledge_base_results(results, query))


class SearchWebTool(BaseTool):
    """Searches the web together with the knowledge base."""

    name = ToolName.SEARCH_WEB
    description = "Search the web for information using neural web search and the user's knowledge base"
    parameters = {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "The search query. For multiple news sources, include all sources in one query."
            },
            "searchType": {
                "type": "string",
                "enum": ["general", "news", "headlines"],
                "description": "'general' for any content, 'news' for news articles, 'headlines' for the latest headlines",
                "default": "general"
            }
        },
        "required": ["query"]
    }

    async def handle(self, arguments: dict[str, Any], context: ToolContext) -> ToolCallResult:
        query = arguments.get("query")
        search_type = arguments.get("searchType", "general")

        if not query:
            return ToolCallResult(content="Error: Search query was unclear.")

        logger.info("Searching web", query=query, search_type=search_type)
        news = search_type in ("news", "headlines")

        try:
            results = await context.search.search(query, num_results=10, news=news)
        except Exception as e:
            logger.error("Web search failed", query=query, error=str(e))
            return ToolCallResult(content=f"Search failed: {e}")

        context.collector.add(results)

        if news:
            return ToolCallResult(content=context.formatter.format_news_results(results))
        return ToolCallResult(content=context.formatter.format_search_results(results))
