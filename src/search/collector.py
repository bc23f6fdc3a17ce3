"""Per-intent accumulator of search results."""

from typing import Iterator

from shared.models import SearchResult


class SearchResultCollector:
    """
    Ordered, append-only list of search results for one intent.

    Search tools append everything they retrieve; the orchestrator turns the
    collected results into display slices once the tools have run.
    """

    def __init__(self) -> None:
        self._results: list[SearchResult] = []

    def add(self, results: list[SearchResult]) -> None:
        self._results.extend(results)

    @property
    def results(self) -> list[SearchResult]:
        return list(self._results)

    def __len__(self) -> int:
        return len(self._results)

    def __iter__(self) -> Iterator[SearchResult]:
        return iter(list(self._results))

    def __bool__(self) -> bool:
        return bool(self._results)
