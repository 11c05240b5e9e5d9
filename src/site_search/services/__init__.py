"""Pipeline stages: caches, understanding, query building, ranking, overview, suggestions."""

from .overview_service import OverviewSynthesizer
from .query_understanding import QueryUnderstandingService
from .response_cache import CacheRegistry, CacheSweeper, ExpiringCache
from .result_ranker import ResultRanker
from .suggestion_service import SuggestionService


__all__ = [
    "CacheRegistry",
    "CacheSweeper",
    "ExpiringCache",
    "OverviewSynthesizer",
    "QueryUnderstandingService",
    "ResultRanker",
    "SuggestionService",
]
