"""Hybrid search over the local knowledge base and the web."""

import asyncio
import math
from difflib import SequenceMatcher
from typing import Optional

from search.providers import KnowledgeBase, WebSearchProvider
from shared.config import SearchSettings
from shared.logging import get_logger
from shared.models import SearchResult, SearchSource

logger = get_logger(__name__)


class HybridSearchService:
    """
    Combines local and web results into one ranked list.

    Both backends are queried concurrently. A failing backend is logged and
    contributes nothing; results are deduplicated on title and URL and
    ordered by score weighted per source.
    """

    def __init__(
        self,
        knowledge_base: KnowledgeBase,
        web: Optional[WebSearchProvider] = None,
        settings: Optional[SearchSettings] = None,
        similarity_threshold: float = 0.85
    ) -> None:
        self.knowledge_base = knowledge_base
        self.web = web
        self.settings = settings or SearchSettings()
        self.similarity_threshold = similarity_threshold

    @property
    def web_enabled(self) -> bool:
        return self.web is not None and self.web.is_configured

    async def search(
        self,
        query: str,
        num_results: int = 10,
        use_web: bool = True,
        news: bool = False
    ) -> list[SearchResult]:
        """
        Run a hybrid search.

        Args:
            query: Search query
            num_results: Maximum number of results returned
            use_web: Query the web provider as well as the knowledge base
            news: Restrict web results to news and weight them higher

        Returns:
            Ranked results, at most `num_results`
        """
        logger.info("Hybrid search", query=query, use_web=use_web, news=news)

        if news:
            local_weight, web_weight = self.settings.news_local_weight, self.settings.news_web_weight
        else:
            local_weight, web_weight = self.settings.local_weight, self.settings.web_weight

        total = local_weight + web_weight
        if total and not math.isclose(total, 1.0):
            logger.warning("Search weights do not sum to 1.0, normalizing")
            local_weight, web_weight = local_weight / total, web_weight / total

        if not use_web or not self.web_enabled:
            # Local-only searches surface their own failures
            results = await self.knowledge_base.search(query, num_results)
        else:
            fetch = math.ceil(num_results * 1.5)
            web_results, local_results = await asyncio.gather(
                self.web.search(query, fetch, category="news" if news else None),
                self.knowledge_base.search(query, fetch),
                return_exceptions=True
            )

            results = []
            if isinstance(web_results, Exception):
                logger.error("Web search failed", error=str(web_results))
            else:
                results.extend(web_results)
            if isinstance(local_results, Exception):
                logger.error("Local search failed", error=str(local_results))
            else:
                results.extend(local_results)

        results = self._deduplicate(results)
        results = self._rank(results, local_weight, web_weight)
        final = results[:num_results]

        logger.info(
            "Hybrid search completed",
            query=query,
            web=sum(1 for r in final if r.source == SearchSource.REMOTE),
            local=sum(1 for r in final if r.source == SearchSource.LOCAL)
        )
        return final

    def _deduplicate(self, results: list[SearchResult]) -> list[SearchResult]:
        """
        Drop near-duplicate results.

        Local chunks are only duplicates of the same chunk, so several
        passages of one document survive. Everything else is compared fuzzily
        on title and URL.
        """
        seen: list[str] = []
        seen_chunks: set[tuple[Optional[str], int]] = set()
        unique: list[SearchResult] = []
        for result in results:
            signature = f"{(result.title or '').lower()}|{result.url or ''}"
            if result.source == SearchSource.LOCAL and result.chunk_id is not None:
                key = (result.url or result.object_id, result.chunk_id)
                if key in seen_chunks:
                    continue
                seen_chunks.add(key)
                seen.append(signature)
                unique.append(result)
                continue
            if any(
                SequenceMatcher(None, signature, other).ratio() > self.similarity_threshold
                for other in seen
            ):
                logger.debug("Deduplicating result", title=result.title)
                continue
            seen.append(signature)
            unique.append(result)
        return unique

    @staticmethod
    def _rank(
        results: list[SearchResult],
        local_weight: float,
        web_weight: float
    ) -> list[SearchResult]:
        def weighted(result: SearchResult) -> float:
            weight = web_weight if result.source == SearchSource.REMOTE else local_weight
            return result.score * weight

        return sorted(results, key=weighted, reverse=True)
