"""Domain layer - pure search concepts with no infrastructure dependencies.

Following Cosmic Python Chapter 2 (Repository Pattern), this layer contains:
- Value Objects: intents, results, responses (immutable)
- Domain rules: category gating, pagination, search-term union
- The error taxonomy shared by adapters and services
"""

from site_search.domain.errors import (
    IndexUnavailableError,
    LanguageModelError,
    SearchLogError,
    SearchPipelineError,
)
from site_search.domain.search import (
    ALL_CATEGORIES_KEY,
    CategoryAggregation,
    IndexHit,
    IndexSearchPage,
    QueryIntent,
    QueryIntentKind,
    SearchResponse,
    SearchResult,
    Suggestion,
)


__all__ = [
    "ALL_CATEGORIES_KEY",
    "CategoryAggregation",
    "IndexHit",
    "IndexSearchPage",
    "IndexUnavailableError",
    "LanguageModelError",
    "QueryIntent",
    "QueryIntentKind",
    "SearchLogError",
    "SearchPipelineError",
    "SearchResponse",
    "SearchResult",
    "Suggestion",
]
