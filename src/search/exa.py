"""Exa web search client.

Thin async client over the Exa search API that maps responses to the
agent's SearchResult model.
"""

from typing import Any, Optional

import httpx

from search.providers import WebSearchProvider
from shared.config import SearchSettings
from shared.logging import get_logger
from shared.models import SearchResult, SearchSource

logger = get_logger(__name__)


class SearchProviderError(Exception):
    """Base exception for search provider errors."""
    pass


class SearchConnectionError(SearchProviderError):
    """Connection to the search provider failed."""
    pass


class ExaClient(WebSearchProvider):
    """
    Client for the Exa neural search API.

    The HTTP client is created lazily and reused. Failures are raised to the
    caller on the first attempt; nothing is retried here.
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.exa.ai",
        timeout: float = 30.0
    ) -> None:
        """
        Initialize the Exa client.

        Args:
            api_key: Exa API key; the client reports itself unconfigured without one
            base_url: API base URL
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, settings: SearchSettings) -> "ExaClient":
        return cls(
            api_key=settings.exa_api_key,
            base_url=settings.exa_base_url,
            timeout=settings.timeout_seconds,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.api_key or "",
        }

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self._get_headers()
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ExaClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def search(
        self,
        query: str,
        num_results: int = 10,
        category: Optional[str] = None
    ) -> list[SearchResult]:
        """
        Search the web.

        Args:
            query: Search query
            num_results: Maximum number of results
            category: Optional Exa category, e.g. "news"

        Returns:
            Results mapped to SearchResult

        Raises:
            SearchProviderError: If the client is unconfigured or the API fails
            SearchConnectionError: If Exa is unreachable
        """
        if not self.is_configured:
            raise SearchProviderError("Exa is not configured. Missing API key.")

        body: dict[str, Any] = {
            "query": query,
            "numResults": num_results,
            "type": "auto",
            "contents": {"text": True, "summary": True, "highlights": True},
        }
        if category:
            body["category"] = category

        logger.debug("Exa search", query=query, num_results=num_results, category=category)

        try:
            client = await self._get_client()
            response = await client.post("/search", json=body)
            response.raise_for_status()
            data = response.json()
        except httpx.ConnectError as e:
            raise SearchConnectionError(f"Cannot connect to Exa: {e}")
        except httpx.TimeoutException as e:
            raise SearchConnectionError(f"Exa request timed out: {e}")
        except httpx.HTTPStatusError as e:
            logger.error("Exa API error", status=e.response.status_code, body=e.response.text)
            raise SearchProviderError(f"Exa API error: {e.response.status_code}")

        results = [self._to_search_result(item) for item in data.get("results", [])]
        logger.info("Exa search completed", query=query, result_count=len(results))
        return results

    @staticmethod
    def _to_search_result(item: dict[str, Any]) -> SearchResult:
        return SearchResult(
            id=item.get("id") or item.get("url", ""),
            title=item.get("title") or "Untitled",
            content=item.get("text") or item.get("summary") or "",
            score=item.get("score") or 0.0,
            source=SearchSource.REMOTE,
            url=item.get("url"),
            published_date=item.get("publishedDate"),
            author=item.get("author"),
            highlights=item.get("highlights") or [],
        )
