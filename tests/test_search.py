"""Tests for hybrid search, the Exa client and result formatting."""

import json

import httpx
import pytest

from conftest import FakeWebSearch
from search.collector import SearchResultCollector
from search.exa import ExaClient, SearchConnectionError, SearchProviderError
from search.formatter import FormatOptions, SearchResultFormatter
from search.hybrid import HybridSearchService
from shared.config import SearchSettings
from shared.models import SearchResult, SearchSource


def remote(title: str, url: str, score: float) -> SearchResult:
    return SearchResult(id=url, title=title, content="", score=score, source=SearchSource.REMOTE, url=url)


class TestHybridSearchService:
    """Tests for HybridSearchService."""

    @pytest.mark.asyncio
    async def test_local_only_without_web(self, knowledge_base):
        """Test that only the knowledge base is queried without a web provider."""
        service = HybridSearchService(knowledge_base)

        results = await service.search("tomatoes")

        assert {r.chunk_id for r in results} == {5, 9}
        assert service.web_enabled is False

    @pytest.mark.asyncio
    async def test_use_web_false_skips_web(self, knowledge_base):
        """Test forcing a local-only search."""
        web = FakeWebSearch(results=[remote("Tomatoes", "https://t.com", 0.9)])
        service = HybridSearchService(knowledge_base, web=web)

        results = await service.search("tomatoes", use_web=False)

        assert web.calls == []
        assert all(r.source == SearchSource.LOCAL for r in results)

    @pytest.mark.asyncio
    async def test_weighted_ranking(self, knowledge_base):
        """Test that web results are weighted above local ones by default."""
        web = FakeWebSearch(results=[remote("Growing tomatoes", "https://t.com", 0.9)])
        service = HybridSearchService(knowledge_base, web=web)

        results = await service.search("tomatoes", num_results=2)

        # 0.9 * 0.6 beats 1.0 * 0.4
        assert results[0].source == SearchSource.REMOTE
        assert len(results) == 2
        assert web.calls[0]["num_results"] == 3

    @pytest.mark.asyncio
    async def test_news_uses_news_category_and_weights(self, knowledge_base):
        """Test news searches."""
        web = FakeWebSearch(results=[remote("Tomato prices", "https://news.com/t", 0.5)])
        service = HybridSearchService(knowledge_base, web=web)

        results = await service.search("tomatoes", news=True)

        assert web.calls[0]["category"] == "news"
        # 0.5 * 0.8 beats 1.0 * 0.2
        assert results[0].source == SearchSource.REMOTE

    @pytest.mark.asyncio
    async def test_web_failure_keeps_local_results(self, knowledge_base):
        """Test that a failing web provider does not fail the search."""
        web = FakeWebSearch(error=RuntimeError("exa down"))
        service = HybridSearchService(knowledge_base, web=web)

        results = await service.search("tomatoes")

        assert {r.chunk_id for r in results} == {5, 9}

    @pytest.mark.asyncio
    async def test_near_duplicate_web_results_are_merged(self, knowledge_base):
        """Test fuzzy deduplication on title and URL."""
        web = FakeWebSearch(results=[
            remote("Python Guide", "https://py.com/guide", 0.9),
            remote("Python Guide", "https://py.com/guide/", 0.8),
            remote("Rust Book", "https://rust.com/book", 0.7),
        ])
        service = HybridSearchService(knowledge_base, web=web)

        results = await service.search("nothing local matches this", num_results=10)

        assert [r.title for r in results] == ["Python Guide", "Rust Book"]

    @pytest.mark.asyncio
    async def test_weights_are_normalized(self, knowledge_base):
        """Test weights that do not sum to one."""
        settings = SearchSettings(local_weight=0.8, web_weight=0.8)
        web = FakeWebSearch(results=[remote("Tomato", "https://t.com", 0.9)])
        service = HybridSearchService(knowledge_base, web=web, settings=settings)

        results = await service.search("tomatoes")

        # Equal weights rank on raw score
        assert results[0].source == SearchSource.LOCAL


class TestExaClient:
    """Tests for the Exa client."""

    @pytest.mark.asyncio
    async def test_search_maps_results(self):
        """Test request body and response mapping."""
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["body"] = json.loads(request.content)
            captured["api_key"] = request.headers["x-api-key"]
            return httpx.Response(200, json={"results": [{
                "id": "abc",
                "title": "Exa Result",
                "url": "https://exa.example.com/a",
                "text": "Body text",
                "score": 0.42,
                "publishedDate": "2026-10-01",
                "author": "Ann",
                "highlights": ["key point"],
            }]})

        client = ExaClient(api_key="secret", base_url="https://api.exa.test")
        client._client = httpx.AsyncClient(
            base_url=client.base_url, transport=httpx.MockTransport(handler), headers=client._get_headers()
        )

        async with client:
            results = await client.search("llm agents", num_results=5, category="news")

        assert captured["api_key"] == "secret"
        assert captured["body"]["numResults"] == 5
        assert captured["body"]["category"] == "news"
        assert captured["body"]["contents"] == {"text": True, "summary": True, "highlights": True}

        result = results[0]
        assert result.source == SearchSource.REMOTE
        assert result.title == "Exa Result"
        assert result.content == "Body text"
        assert result.score == 0.42
        assert result.highlights == ["key point"]

    @pytest.mark.asyncio
    async def test_unconfigured_client_raises(self):
        """Test searching without an API key."""
        client = ExaClient(api_key=None)

        assert client.is_configured is False
        with pytest.raises(SearchProviderError, match="not configured"):
            await client.search("anything")

    @pytest.mark.asyncio
    async def test_api_error_is_not_retried(self):
        """Test that HTTP errors surface immediately."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            return httpx.Response(401, json={"error": "bad key"})

        client = ExaClient(api_key="bad")
        client._client = httpx.AsyncClient(base_url=client.base_url, transport=httpx.MockTransport(handler))

        with pytest.raises(SearchProviderError, match="401"):
            await client.search("anything")
        assert len(attempts) == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_connection_error_is_raised_without_retry(self):
        """Test that an unreachable provider fails on the first request."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise httpx.ConnectError("refused", request=request)

        client = ExaClient(api_key="key")
        client._client = httpx.AsyncClient(base_url=client.base_url, transport=httpx.MockTransport(handler))

        with pytest.raises(SearchConnectionError):
            await client.search("anything")
        assert len(attempts) == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_timeout_maps_to_connection_error(self):
        """Test that a timed out request surfaces as a connection error."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise httpx.ReadTimeout("slow", request=request)

        client = ExaClient(api_key="key")
        client._client = httpx.AsyncClient(base_url=client.base_url, transport=httpx.MockTransport(handler))

        with pytest.raises(SearchConnectionError, match="timed out"):
            await client.search("anything")
        assert len(attempts) == 1
        await client.close()

    def test_from_settings(self):
        """Test construction from settings."""
        client = ExaClient.from_settings(SearchSettings(exa_api_key="k", exa_base_url="https://x.test/"))

        assert client.is_configured
        assert client.base_url == "https://x.test"


class TestSearchResultFormatter:
    """Tests for SearchResultFormatter."""

    def test_empty_results(self):
        """Test the no-results message."""
        formatter = SearchResultFormatter()

        assert formatter.format([], FormatOptions(title="Search Results")) == "No results found for Search Results."

    def test_grouped_by_source(self):
        """Test grouping local and web results."""
        formatter = SearchResultFormatter()
        results = [
            SearchResult(id="1", title="Note", score=0.5, source=SearchSource.LOCAL, url="local://1"),
            SearchResult(id="2", title="Page", score=0.9, source=SearchSource.REMOTE, url="https://p.com",
                         published_date="2026-09-30T12:00:00Z"),
        ]

        text = formatter.format_search_results(results)

        assert text.startswith("# Search Results")
        assert text.index("## From Your Notes") < text.index("## From the Web")
        assert "**[1] Page**" in text
        assert "2026-09-30" in text

    def test_snippet_truncation(self):
        """Test that long content is shortened."""
        formatter = SearchResultFormatter()
        result = SearchResult(id="1", title="Long", content="word " * 100, source=SearchSource.REMOTE)

        text = formatter.format([result], FormatOptions(show_content_snippet=True, max_content_length=20))

        assert "> word word word word..." in text
        assert "Link: No URL" in text


class TestSearchResultCollector:
    """Tests for SearchResultCollector."""

    def test_collects_in_order(self):
        """Test that results accumulate in order."""
        collector = SearchResultCollector()
        assert not collector

        collector.add([remote("A", "https://a.com", 0.1)])
        collector.add([remote("B", "https://b.com", 0.2)])

        assert len(collector) == 2
        assert [r.title for r in collector.results] == ["A", "B"]

        # The exposed list is a copy
        collector.results.clear()
        assert len(collector) == 2
