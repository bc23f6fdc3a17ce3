"""Search layer: providers, hybrid ranking, formatting and slice aggregation."""

from search.aggregator import SliceBuilder, deduplicate_slices
from search.collector import SearchResultCollector
from search.exa import ExaClient, SearchConnectionError, SearchProviderError
from search.formatter import SearchResultFormatter
from search.hybrid import HybridSearchService
from search.providers import InMemoryKnowledgeBase, KnowledgeBase, WebSearchProvider

__all__ = [
    "SliceBuilder",
    "deduplicate_slices",
    "SearchResultCollector",
    "ExaClient",
    "SearchConnectionError",
    "SearchProviderError",
    "SearchResultFormatter",
    "HybridSearchService",
    "InMemoryKnowledgeBase",
    "KnowledgeBase",
    "WebSearchProvider",
]
