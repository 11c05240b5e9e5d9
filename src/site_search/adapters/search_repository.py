"""Search repository abstractions.

Defines the index-engine boundary following the Repository Pattern.
Separates index execution from pipeline logic so the orchestrator only deals
with structured queries in and adapter-neutral hits out.
"""

from abc import ABC, abstractmethod
import logging
from typing import Any

from site_search.domain.search import CategoryAggregation, IndexSearchPage, StructuredQuery


logger = logging.getLogger(__name__)

# Relevance first, most recently modified page as tiebreak
DEFAULT_SORT: list[Any] = ["_score", {"last_modified": {"order": "desc"}}]


class AbstractSearchRepository(ABC):
    """Abstract repository executing structured boolean queries.

    Implementations raise :class:`~site_search.domain.errors.IndexUnavailableError`
    for every failure so callers can apply one degradation rule.
    """

    @abstractmethod
    async def search(
        self,
        query: StructuredQuery,
        *,
        size: int,
        offset: int = 0,
        sort: list[Any] | None = None,
    ) -> IndexSearchPage:
        """Return up to ``size`` hits starting at ``offset`` plus the total match count."""
        raise NotImplementedError

    @abstractmethod
    async def aggregate_categories(
        self,
        query: StructuredQuery,
        *,
        field: str = "category",
        size: int = 20,
    ) -> CategoryAggregation:
        """Return per-category document counts for ``query`` without fetching hits."""
        raise NotImplementedError

    async def ping(self) -> bool:
        """Optional hook reporting whether the engine is reachable."""

        return True

    async def close(self) -> None:
        """Optional hook for releasing network resources."""

        return
