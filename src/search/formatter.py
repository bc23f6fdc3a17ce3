"""Markdown rendering of search results for the reasoning service."""

from datetime import datetime
from typing import Callable, Optional

from pydantic import BaseModel

from shared.models import SearchResult, SearchSource


class FormatOptions(BaseModel):
    """Switches for SearchResultFormatter.format."""
    show_index: bool = False
    show_author: bool = False
    show_highlights: bool = False
    show_content_snippet: bool = False
    inline_date: bool = False
    group_by_source: bool = False
    title: Optional[str] = None
    max_content_length: int = 200


def _format_date(value: str) -> str:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return value


class SearchResultFormatter:
    """Formats search results as markdown."""

    def format(self, results: list[SearchResult], options: Optional[FormatOptions] = None) -> str:
        options = options or FormatOptions()

        if not results:
            return f"No results found for {options.title}." if options.title else "No results found."

        formatted = f"# {options.title}\n\n" if options.title else ""

        if options.group_by_source:
            for source, group in self._group(results, lambda r: r.source).items():
                formatted += "## From Your Notes\n\n" if source == SearchSource.LOCAL else "## From the Web\n\n"
                formatted += self._format_list(group, options)
        else:
            formatted += self._format_list(results, options)

        return formatted.strip()

    def _format_list(self, results: list[SearchResult], options: FormatOptions) -> str:
        return "\n\n".join(
            self._format_single(result, index, options) for index, result in enumerate(results)
        ) + "\n\n"

    def _format_single(self, result: SearchResult, index: int, options: FormatOptions) -> str:
        title = result.title or "Untitled"
        parts = [f"**[{index + 1}] {title}**" if options.show_index else f"**{title}**"]
        parts.append(f"Link: {result.url or 'No URL'}")

        metadata = []
        if result.published_date:
            date = _format_date(result.published_date)
            metadata.append(date if options.inline_date else f"Published: {date}")
        if options.show_author and result.author:
            metadata.append(f"By: {result.author}")
        if metadata:
            parts.append(" | ".join(metadata))

        if options.show_content_snippet and result.content:
            parts.append(f"> {self._truncate(result.content, options.max_content_length)}")

        if options.show_highlights and result.highlights:
            parts.append("Key points:")
            parts.extend(f"- {h}" for h in result.highlights[:3])

        return "\n".join(parts)

    @staticmethod
    def _truncate(content: str, max_length: int) -> str:
        if len(content) <= max_length:
            return content
        return content[:max_length].strip() + "..."

    @staticmethod
    def _group(
        results: list[SearchResult],
        key: Callable[[SearchResult], object]
    ) -> dict[object, list[SearchResult]]:
        groups: dict[object, list[SearchResult]] = {}
        for result in results:
            groups.setdefault(key(result), []).append(result)
        return groups

    def format_news_results(self, results: list[SearchResult]) -> str:
        return self.format(results, FormatOptions(
            title="News Search Results",
            show_author=True,
            show_highlights=True,
            show_content_snippet=True,
        ))

    def format_search_results(self, results: list[SearchResult]) -> str:
        return self.format(results, FormatOptions(
            title="Search Results",
            group_by_source=True,
            show_index=True,
            show_highlights=True,
            show_content_snippet=True,
            inline_date=True,
        ))
