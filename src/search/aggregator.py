"""Result Aggregator.

Turns the search results collected during one intent into deduplicated
display slices for the host UI.
"""

from search.providers import KnowledgeBase
from shared.logging import get_logger
from shared.models import DisplaySlice, SearchResult, SearchSource, SliceDetail, SliceSourceType

logger = get_logger(__name__)


def slice_key(slice_: DisplaySlice) -> str:
    """
    Deduplication key of a slice.

    Local chunks are keyed on source URI and chunk id so that distinct chunks
    of one document survive; anything else is keyed on its URI, then its id.
    """
    if slice_.source_type == SliceSourceType.LOCAL and slice_.chunk_id is not None:
        return f"{slice_.source_uri or 'local'}-chunk-{slice_.chunk_id}"
    if slice_.source_uri:
        return slice_.source_uri
    return slice_.id


def deduplicate_slices(slices: list[DisplaySlice]) -> list[DisplaySlice]:
    """
    Keep one slice per key.

    On collision the higher score wins; ties keep the slice seen first. Order
    follows the first occurrence of each key.
    """
    seen: dict[str, DisplaySlice] = {}
    for slice_ in slices:
        key = slice_key(slice_)
        existing = seen.get(key)
        if existing is None or existing.score < slice_.score:
            seen[key] = slice_
    return list(seen.values())


class SliceBuilder:
    """Builds display slices from collected search results."""

    def __init__(
        self,
        knowledge_base: KnowledgeBase,
        max_results: int = 100,
        content_chars: int = 500
    ) -> None:
        """
        Initialize the builder.

        Args:
            knowledge_base: Source of canonical chunk details
            max_results: Results considered per intent
            content_chars: Content length kept on slices built from raw results
        """
        self.knowledge_base = knowledge_base
        self.max_results = max_results
        self.content_chars = content_chars

    async def build(self, results: list[SearchResult]) -> list[DisplaySlice]:
        """
        Build deduplicated slices.

        Local results are enriched with one batched detail lookup. If the
        lookup fails, or a result has no chunk detail, the slice is built from
        the result itself with truncated content and no summary.

        Args:
            results: Search results in collection order

        Returns:
            Display slices
        """
        limited = results[:self.max_results]
        local = [r for r in limited if r.source == SearchSource.LOCAL]
        remote = [r for r in limited if r.source != SearchSource.LOCAL]

        logger.info("Building slices", local=len(local), remote=len(remote))

        slices: list[DisplaySlice] = []
        if local:
            slices.extend(await self._local_slices(local))
        slices.extend(self._web_slice(r) for r in remote)

        final = deduplicate_slices(slices)
        logger.debug("Slices deduplicated", before=len(slices), after=len(final))
        return final

    async def _local_slices(self, results: list[SearchResult]) -> list[DisplaySlice]:
        chunk_ids: list[int] = []
        for r in results:
            if r.chunk_id is not None and r.chunk_id not in chunk_ids:
                chunk_ids.append(r.chunk_id)

        details: dict[int, SliceDetail] = {}
        if chunk_ids:
            try:
                for detail in await self.knowledge_base.get_details_for_slices(chunk_ids):
                    details[detail.chunk_id] = detail
            except Exception as e:
                logger.error("Slice detail lookup failed, using search results", error=str(e))
                return [self._fallback_slice(r) for r in results]

        # A chunk found by several results is scored by its best match
        best_scores: dict[int, float] = {}
        for r in results:
            if r.chunk_id in details:
                best_scores[r.chunk_id] = max(r.score, best_scores.get(r.chunk_id, r.score))

        slices: list[DisplaySlice] = []
        emitted: set[int] = set()
        for r in results:
            detail = details.get(r.chunk_id) if r.chunk_id is not None else None
            if detail is None:
                slices.append(self._fallback_slice(r))
            elif detail.chunk_id not in emitted:
                emitted.add(detail.chunk_id)
                slices.append(self._detail_slice(detail, best_scores[detail.chunk_id]))
        return slices

    @staticmethod
    def _detail_slice(detail: SliceDetail, score: float) -> DisplaySlice:
        return DisplaySlice(
            id=f"local-{detail.chunk_id}",
            title=detail.source_object_title,
            source_uri=detail.source_object_uri,
            content=detail.content,
            summary=detail.summary,
            source_type=SliceSourceType.LOCAL,
            score=score,
            chunk_id=detail.chunk_id,
            source_object_id=detail.source_object_id,
        )

    def _fallback_slice(self, result: SearchResult) -> DisplaySlice:
        return DisplaySlice(
            id=result.id,
            title=result.title,
            source_uri=result.url,
            content=result.content[:self.content_chars],
            summary=None,
            source_type=SliceSourceType.LOCAL,
            score=result.score,
            chunk_id=result.chunk_id,
            source_object_id=result.object_id,
        )

    def _web_slice(self, result: SearchResult) -> DisplaySlice:
        return DisplaySlice(
            id=result.id,
            title=result.title,
            source_uri=result.url,
            content=result.content[:self.content_chars],
            summary=None,
            source_type=SliceSourceType.WEB,
            score=result.score,
            published_date=result.published_date,
            author=result.author,
        )

