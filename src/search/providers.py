"""Search provider contracts.

The local knowledge base and the remote web search engine are owned by the
host application. The agent talks to them through these interfaces.
"""

import re
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, Field

from shared.logging import get_logger
from shared.models import SearchResult, SearchSource, SliceDetail

logger = get_logger(__name__)


class KnowledgeBase(ABC):
    """The user's local knowledge base."""

    @abstractmethod
    async def search(self, query: str, limit: int = 10) -> list[SearchResult]:
        """Return local results ordered by relevance."""
        pass

    @abstractmethod
    async def get_details_for_slices(self, chunk_ids: list[int]) -> list[SliceDetail]:
        """Fetch canonical chunk records in one batch; unknown ids are omitted."""
        pass


class WebSearchProvider(ABC):
    """A remote web search engine."""

    @property
    def is_configured(self) -> bool:
        return True

    @abstractmethod
    async def search(
        self,
        query: str,
        num_results: int = 10,
        category: Optional[str] = None
    ) -> list[SearchResult]:
        """Return remote results ordered by relevance."""
        pass


class KnowledgeChunk(BaseModel):
    """A chunk held by the in-memory knowledge base."""
    chunk_id: int
    content: str
    summary: Optional[str] = None
    object_id: str
    object_title: Optional[str] = None
    object_uri: Optional[str] = None
    propositions: list[str] = Field(default_factory=list)


_TOKEN_PATTERN = re.compile(r"\w+")


def _tokens(text: str) -> set[str]:
    return {t.lower() for t in _TOKEN_PATTERN.findall(text)}


class InMemoryKnowledgeBase(KnowledgeBase):
    """
    Knowledge base kept in process memory.

    Scores are the share of query terms found in a chunk, which is enough
    for tests and local runs without a vector store.
    """

    def __init__(self, chunks: Optional[list[KnowledgeChunk]] = None) -> None:
        self._chunks: dict[int, KnowledgeChunk] = {}
        for chunk in chunks or []:
            self.add_chunk(chunk)

    def add_chunk(self, chunk: KnowledgeChunk) -> None:
        self._chunks[chunk.chunk_id] = chunk

    async def search(self, query: str, limit: int = 10) -> list[SearchResult]:
        terms = _tokens(query)
        if not terms:
            return []

        scored: list[tuple[float, KnowledgeChunk]] = []
        for chunk in self._chunks.values():
            text = f"{chunk.object_title or ''} {chunk.content}"
            overlap = len(terms & _tokens(text))
            if overlap:
                scored.append((overlap / len(terms), chunk))

        scored.sort(key=lambda item: item[0], reverse=True)
        return [
            SearchResult(
                id=f"local-{chunk.chunk_id}",
                title=chunk.object_title or "Untitled Document",
                content=chunk.content,
                score=score,
                source=SearchSource.LOCAL,
                chunk_id=chunk.chunk_id,
                object_id=chunk.object_id,
                url=chunk.object_uri,
                propositions=list(chunk.propositions),
            )
            for score, chunk in scored[:limit]
        ]

    async def get_details_for_slices(self, chunk_ids: list[int]) -> list[SliceDetail]:
        details = []
        for chunk_id in chunk_ids:
            chunk = self._chunks.get(chunk_id)
            if chunk is None:
                continue
            details.append(SliceDetail(
                chunk_id=chunk.chunk_id,
                content=chunk.content,
                summary=chunk.summary,
                source_object_id=chunk.object_id,
                source_object_title=chunk.object_title,
                source_object_uri=chunk.object_uri,
            ))
        return details
