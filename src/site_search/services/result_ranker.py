"""Relevance re-ranking of index candidates by the language model."""

from __future__ import annotations

from collections.abc import Sequence
import logging
from typing import Any

from site_search.adapters.language_model import AbstractLanguageModel
from site_search.domain.errors import LanguageModelError
from site_search.domain.search import QueryIntent, SearchResult
from site_search.observability.metrics import ENRICHMENT_FALLBACKS
from site_search.services.prompts import DEFAULT_DOMAIN_CONTEXT, build_ranking_messages
from site_search.services.response_cache import ExpiringCache, results_cache_key


logger = logging.getLogger(__name__)


def validate_permutation(indices: Any, n: int) -> list[int] | None:
    """Return ``indices`` as a list when it is exactly a permutation of ``0..n-1``.

    Booleans, floats, duplicates, missing or out-of-range positions all make the
    answer invalid; no partial repair is attempted.
    """
    if not isinstance(indices, (list, tuple)) or len(indices) != n:
        return None
    if any(isinstance(index, bool) or not isinstance(index, int) for index in indices):
        return None
    if sorted(indices) != list(range(n)):
        return None
    return list(indices)


class ResultRanker:
    """Reorders a candidate list, never dropping or inventing results.

    The outcome (a permutation, possibly the identity) is cached per query and
    full candidate identity list, so a different candidate set never reuses
    another set's order.
    """

    def __init__(
        self,
        language_model: AbstractLanguageModel,
        cache: ExpiringCache,
        max_candidates: int = 20,
        domain_context: str | None = None,
    ):
        self.language_model = language_model
        self.cache = cache
        self.max_candidates = max_candidates
        self.domain_context = domain_context or DEFAULT_DOMAIN_CONTEXT

    async def rank(self, query: str, results: Sequence[SearchResult], intent: QueryIntent) -> list[SearchResult]:
        if not results:
            return list(results)

        n = len(results)
        key = results_cache_key(query, results)
        cached = self.cache.get(key)
        if cached is not None:
            order = validate_permutation(cached, n)
            if order is not None:
                return [results[index] for index in order]

        order = await self._compute_order(query, results, intent)
        self.cache.put(key, order, tag=query)
        return [results[index] for index in order]

    async def _compute_order(self, query: str, results: Sequence[SearchResult], intent: QueryIntent) -> list[int]:
        identity = list(range(len(results)))
        if len(results) > self.max_candidates:
            return identity

        try:
            payload = await self.language_model.complete_json(
                build_ranking_messages(query, intent.intent.value, results, self.domain_context),
                temperature=0.2,
                operation="ranking",
            )
        except LanguageModelError as exc:
            logger.warning("Ranking unavailable, keeping index order: %s", exc)
            ENRICHMENT_FALLBACKS.labels(stage="ranking", reason="service_error").inc()
            return identity

        order = validate_permutation(payload.get("rankedIndices"), len(results))
        if order is None:
            logger.warning("Ranking returned an invalid permutation for %d results, keeping index order", len(results))
            ENRICHMENT_FALLBACKS.labels(stage="ranking", reason="invalid_permutation").inc()
            return identity
        return order
