"""Tests for the tool registry, executor and built-in tools."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from search.collector import SearchResultCollector
from search.hybrid import HybridSearchService
from shared.models import (
    ChatReply,
    OpenNotebookAction,
    OpenUrlAction,
    SearchResult,
    SearchSource,
    TimeframeType,
    ToolCall,
    UserGoal,
)
from tools.base import ToolContext


@pytest.fixture
def context(knowledge_base, notebook_store, profile_store):
    return ToolContext(
        sender_id="user-1",
        collector=SearchResultCollector(),
        notebook_store=notebook_store,
        profile_store=profile_store,
        search=HybridSearchService(knowledge_base),
    )


class TestToolRegistry:
    """Tests for the ToolRegistry."""

    def test_default_registry_is_complete(self):
        """Test that every tool is registered in a fixed order."""
        from tools.registry import build_default_registry

        registry = build_default_registry()

        assert [t.name.value for t in registry.list_tools()] == [
            "search_knowledge_base",
            "search_web",
            "open_notebook",
            "create_notebook",
            "delete_notebook",
            "open_url",
            "update_user_goals",
        ]

    def test_register_duplicate_tool_raises(self):
        """Test registering the same tool twice."""
        from tools.navigation import OpenUrlTool
        from tools.registry import ToolRegistry

        registry = ToolRegistry()
        registry.register(OpenUrlTool())

        with pytest.raises(ValueError, match="already registered"):
            registry.register(OpenUrlTool())

    def test_register_unknown_name_raises(self):
        """Test that names outside the closed set are rejected."""
        from tools.navigation import OpenUrlTool
        from tools.registry import ToolRegistry

        tool = OpenUrlTool()
        tool.name = "open_everything"

        with pytest.raises(ValueError, match="not a known tool name"):
            ToolRegistry().register(tool)

    def test_validate_reports_missing_tools(self):
        """Test that an incomplete catalogue fails validation."""
        from tools.navigation import OpenUrlTool
        from tools.registry import ToolRegistry, ToolRegistryError

        registry = ToolRegistry()
        registry.register(OpenUrlTool())

        with pytest.raises(ToolRegistryError, match="missing tools"):
            registry.validate()

    def test_validate_reports_bad_schema(self):
        """Test that unusable parameter schemas fail validation."""
        from tools.navigation import OpenUrlTool
        from tools.registry import ToolRegistry, ToolRegistryError, build_default_registry

        broken = OpenUrlTool()
        broken.parameters = {"type": "object", "properties": {}, "required": ["url"]}

        registry = ToolRegistry()
        for tool in build_default_registry().list_tools():
            registry.register(broken if tool.name == broken.name else tool)

        with pytest.raises(ToolRegistryError, match="open_url: required parameter 'url'"):
            registry.validate()

    def test_validate_input(self):
        """Test argument validation against the tool schema."""
        from tools.registry import build_default_registry

        registry = build_default_registry()

        is_valid, errors = registry.validate_input("search_knowledge_base", {"query": "x", "limit": 5})
        assert is_valid
        assert errors == []

        is_valid, errors = registry.validate_input("search_knowledge_base", {"limit": 0})
        assert not is_valid
        assert len(errors) == 2

    def test_get_tools_for_llm(self):
        """Test LLM tool format."""
        from tools.registry import build_default_registry

        tools = build_default_registry().get_tools_for_llm()

        assert len(tools) == 7
        assert tools[0]["type"] == "function"
        assert tools[0]["function"]["name"] == "search_knowledge_base"
        assert "query" in tools[0]["function"]["parameters"]["properties"]


class TestToolExecutor:
    """Tests for the ToolExecutor."""

    @pytest.mark.asyncio
    async def test_results_follow_call_order(self, context):
        """Test that results line up with calls."""
        from tools.executor import ToolExecutor
        from tools.registry import build_default_registry

        executor = ToolExecutor(build_default_registry())
        calls = [
            ToolCall(id="1", name="open_url", arguments=json.dumps({"url": "a.com"})),
            ToolCall(id="2", name="open_url", arguments=json.dumps({"url": "b.com"})),
        ]

        results = await executor.execute_all(calls, context)

        assert [r.content for r in results] == ["Opened URL: https://a.com", "Opened URL: https://b.com"]

    @pytest.mark.asyncio
    async def test_schema_violation(self, context):
        """Test that invalid arguments are reported, not raised."""
        from tools.executor import ToolExecutor
        from tools.registry import build_default_registry

        executor = ToolExecutor(build_default_registry())

        result = await executor.execute(
            ToolCall(id="1", name="open_url", arguments=json.dumps({"link": "a.com"})),
            context,
        )

        assert result.content.startswith("Error: Invalid arguments for open_url:")
        assert "'url' is a required property" in result.content
        assert result.immediate_return is None

    @pytest.mark.asyncio
    async def test_non_object_arguments(self, context):
        """Test that arguments must decode to an object."""
        from tools.executor import ToolExecutor
        from tools.registry import build_default_registry

        executor = ToolExecutor(build_default_registry())

        result = await executor.execute(ToolCall(id="1", name="open_url", arguments="[1, 2]"), context)

        assert result.content == "Error: Invalid arguments for open_url: expected a JSON object"

    @pytest.mark.asyncio
    async def test_handler_exception_is_contained(self, context):
        """Test that a raising handler becomes error content."""
        from tools.executor import ToolExecutor
        from tools.registry import build_default_registry

        context.notebook_store.list_notebooks = AsyncMock(side_effect=RuntimeError("db locked"))
        executor = ToolExecutor(build_default_registry())

        result = await executor.execute(
            ToolCall(id="1", name="open_notebook", arguments=json.dumps({"notebook_name": "Research"})),
            context,
        )

        assert result.content == "Error: db locked"

    @pytest.mark.asyncio
    async def test_empty_call_list(self, context):
        """Test executing nothing."""
        from tools.executor import ToolExecutor
        from tools.registry import build_default_registry

        assert await ToolExecutor(build_default_registry()).execute_all([], context) == []


class TestNotebookTools:
    """Tests for the notebook tools."""

    @pytest.mark.asyncio
    async def test_open_notebook_case_insensitive(self, context):
        """Test opening a notebook by title."""
        from tools.notebooks import OpenNotebookTool

        result = await OpenNotebookTool().handle({"notebook_name": "  RECIPES "}, context)

        assert result.content == "Opened notebook: Recipes"
        assert isinstance(result.immediate_return, OpenNotebookAction)
        assert result.immediate_return.notebook_id == "nb-2"

    @pytest.mark.asyncio
    async def test_open_missing_notebook(self, context):
        """Test opening a notebook that does not exist."""
        from tools.notebooks import OpenNotebookTool

        result = await OpenNotebookTool().handle({"notebook_name": "Travel"}, context)

        assert result.content == 'Notebook "Travel" not found.'
        assert result.immediate_return is None

    @pytest.mark.asyncio
    async def test_create_notebook(self, context):
        """Test creating a notebook."""
        from tools.notebooks import CreateNotebookTool

        result = await CreateNotebookTool().handle({"title": "Travel", "description": "Trips"}, context)

        assert result.content == "Created notebook: Travel"
        created = await context.notebook_store.find_by_title("travel")
        assert created.description == "Trips"
        assert result.immediate_return.notebook_id == created.id

    @pytest.mark.asyncio
    async def test_create_notebook_failure(self, context):
        """Test a store failure during creation."""
        from tools.notebooks import CreateNotebookTool

        context.notebook_store.create_notebook = AsyncMock(side_effect=RuntimeError("disk full"))

        result = await CreateNotebookTool().handle({"title": "Travel"}, context)

        assert result.content == "Failed to create notebook: disk full"
        assert result.immediate_return is None

    @pytest.mark.asyncio
    async def test_delete_notebook(self, context):
        """Test deleting a notebook."""
        from tools.notebooks import DeleteNotebookTool

        result = await DeleteNotebookTool().handle({"notebook_name": "Research"}, context)

        assert result.content == "Deleted notebook: Research"
        assert isinstance(result.immediate_return, ChatReply)
        assert await context.notebook_store.get_notebook("nb-1") is None

    @pytest.mark.asyncio
    async def test_blank_name(self, context):
        """Test an empty notebook name."""
        from tools.notebooks import DeleteNotebookTool

        result = await DeleteNotebookTool().handle({"notebook_name": ""}, context)

        assert result.content == "Error: Notebook name was unclear."


class TestOpenUrlTool:
    """Tests for URL navigation."""

    def test_normalize_url(self):
        """Test scheme handling."""
        from tools.navigation import normalize_url

        assert normalize_url("example.com") == "https://example.com"
        assert normalize_url("http://example.com") == "http://example.com"
        assert normalize_url("ftp://files.example.com") == "ftp://files.example.com"

    @pytest.mark.asyncio
    async def test_open_url(self, context):
        """Test that the action carries the normalized URL."""
        from tools.navigation import OpenUrlTool

        result = await OpenUrlTool().handle({"url": "github.com"}, context)

        assert result.content == "Opened URL: https://github.com"
        assert isinstance(result.immediate_return, OpenUrlAction)
        assert result.immediate_return.url == "https://github.com"


class TestUpdateUserGoalsTool:
    """Tests for goal capture."""

    @pytest.mark.asyncio
    async def test_add_goals(self, context, profile_store):
        """Test adding goals with default timeframe."""
        from tools.goals import UpdateUserGoalsTool

        result = await UpdateUserGoalsTool().handle({
            "action": "add",
            "goals": [{"text": "Finish the report"}, {"text": "Run 10k", "timeframeType": "month"}],
        }, context)

        assert result.content == (
            'I\'ll keep this goal in mind: "Finish the report" (week), "Run 10k" (month).'
        )
        goals = profile_store.get_goals("default_user")
        assert [g.timeframe_type for g in goals] == [TimeframeType.WEEK, TimeframeType.MONTH]
        assert "Run 10k" in await profile_store.get_profile_context("default_user")

    @pytest.mark.asyncio
    async def test_remove_goals(self, context, profile_store):
        """Test removing goals by id."""
        from tools.goals import UpdateUserGoalsTool

        await profile_store.add_goals("default_user", [UserGoal(id="g1", text="Old goal")])

        result = await UpdateUserGoalsTool().handle({"action": "remove", "goalIds": ["g1"]}, context)

        assert result.content == "I've removed that from your profile."
        assert profile_store.get_goals("default_user") == []

    @pytest.mark.asyncio
    async def test_missing_parameters(self, context):
        """Test an action without its data."""
        from tools.goals import UpdateUserGoalsTool

        result = await UpdateUserGoalsTool().handle({"action": "add"}, context)

        assert result.content == "Error: Invalid action or missing required parameters for updating goals."

    @pytest.mark.asyncio
    async def test_store_failure(self, context):
        """Test a profile store failure."""
        from tools.goals import UpdateUserGoalsTool

        context.profile_store.remove_goals = AsyncMock(side_effect=RuntimeError("locked"))

        result = await UpdateUserGoalsTool().handle({"action": "remove", "goalIds": ["g1"]}, context)

        assert result.content == "Error updating goals: locked"


class TestSearchTools:
    """Tests for the search tools."""

    @pytest.mark.asyncio
    async def test_knowledge_base_results_are_collected(self, context):
        """Test that results reach both the model and the collector."""
        from tools.search import SearchKnowledgeBaseTool

        result = await SearchKnowledgeBaseTool().handle({"query": "asyncio event loop"}, context)

        assert result.content.startswith('## Found 1 results for "asyncio event loop"')
        assert "Coroutines run on an event loop" in result.content
        assert [r.chunk_id for r in context.collector] == [1]

    @pytest.mark.asyncio
    async def test_knowledge_base_no_results(self, context):
        """Test an empty search."""
        from tools.search import SearchKnowledgeBaseTool

        result = await SearchKnowledgeBaseTool().handle({"query": "quantum chromodynamics"}, context)

        assert result.content.startswith('No results found in your knowledge base for "quantum chromodynamics"')
        assert len(context.collector) == 0

    @pytest.mark.asyncio
    async def test_knowledge_base_auto_open(self, context):
        """Test opening the best result directly."""
        from tools.search import SearchKnowledgeBaseTool

        result = await SearchKnowledgeBaseTool().handle({"query": "asyncio", "autoOpen": True}, context)

        assert isinstance(result.immediate_return, OpenUrlAction)
        assert result.immediate_return.url == "https://docs.example.com/asyncio"

    @pytest.mark.asyncio
    async def test_knowledge_base_failure(self, context):
        """Test that a failing knowledge base is reported."""
        from tools.search import SearchKnowledgeBaseTool

        context.search = MagicMock()
        context.search.search = AsyncMock(side_effect=RuntimeError("index offline"))

        result = await SearchKnowledgeBaseTool().handle({"query": "anything"}, context)

        assert result.content == "Search failed: index offline"

    @pytest.mark.asyncio
    async def test_web_search_news(self, context):
        """Test news searches use the news formatting."""
        from tools.search import SearchWebTool

        context.search = MagicMock()
        context.search.search = AsyncMock(return_value=[
            SearchResult(
                id="n1",
                title="Markets rally",
                content="Stocks rose sharply today.",
                score=0.8,
                source=SearchSource.REMOTE,
                url="https://news.example.com/markets",
                published_date="2026-10-18T09:00:00Z",
                author="J. Doe",
            )
        ])

        result = await SearchWebTool().handle({"query": "markets", "searchType": "headlines"}, context)

        context.search.search.assert_called_once_with("markets", num_results=10, news=True)
        assert result.content.startswith("# News Search Results")
        assert "Published: 2026-10-18 | By: J. Doe" in result.content
        assert len(context.collector) == 1

    def test_format_knowledge_base_buckets(self):
        """Test relevance buckets and proposition ranking."""
        from tools.search import format_knowledge_base_results

        results = [
            SearchResult(id="1", title="A", score=0.9, source=SearchSource.LOCAL, url="u1",
                         propositions=["shared idea", "only a"]),
            SearchResult(id="2", title="B", score=0.6, source=SearchSource.LOCAL, url="u2",
                         propositions=["shared idea"]),
            SearchResult(id="3", title="C", score=0.2, source=SearchSource.LOCAL, url="u3"),
        ]

        text = format_knowledge_base_results(results, "ideas")

        assert "*1 highly relevant (70%+), 1 moderately relevant (50-70%), 1 potentially related (<50%)*" in text
        assert text.index("• shared idea") < text.index("• only a")
        assert "• [90%] A (u1)" in text
