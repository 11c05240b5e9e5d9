"""Short natural-language overview shown above the first page of results."""

from __future__ import annotations

from collections.abc import Sequence
import logging

from site_search.adapters.language_model import AbstractLanguageModel
from site_search.domain.errors import LanguageModelError
from site_search.domain.search import QueryIntent, SearchResult
from site_search.observability.metrics import ENRICHMENT_FALLBACKS
from site_search.services.prompts import DEFAULT_DOMAIN_CONTEXT, build_overview_messages
from site_search.services.response_cache import OVERVIEW_IDENTITY_DEPTH, ExpiringCache, results_cache_key


logger = logging.getLogger(__name__)


class OverviewSynthesizer:
    """Summarizes the leading results for a query.

    Overviews are keyed on the query and the first three result identities.
    A failed synthesis is cached as ``None`` too, so a flapping service is not
    asked again for the same result set until the entry expires.
    """

    def __init__(
        self,
        language_model: AbstractLanguageModel,
        cache: ExpiringCache,
        snippet_chars: int = 200,
        max_results: int = 5,
        domain_context: str | None = None,
    ):
        self.language_model = language_model
        self.cache = cache
        self.snippet_chars = snippet_chars
        self.max_results = max_results
        self.domain_context = domain_context or DEFAULT_DOMAIN_CONTEXT

    async def synthesize(self, query: str, results: Sequence[SearchResult], intent: QueryIntent) -> str | None:
        if not query or not query.strip() or not results:
            return None

        key = results_cache_key(query, results, depth=OVERVIEW_IDENTITY_DEPTH)
        entry = self.cache.lookup(key)
        if entry is not None:
            return entry.value

        overview = await self._generate(query, results, intent)
        self.cache.put(key, overview, tag=query)
        return overview

    async def _generate(self, query: str, results: Sequence[SearchResult], intent: QueryIntent) -> str | None:
        messages = build_overview_messages(
            query,
            intent.intent.value,
            results[: self.max_results],
            self.domain_context,
            snippet_chars=self.snippet_chars,
        )
        try:
            text = await self.language_model.complete(
                messages,
                temperature=0.4,
                max_tokens=200,
                operation="overview",
            )
        except LanguageModelError as exc:
            logger.warning("Overview generation failed: %s", exc)
            ENRICHMENT_FALLBACKS.labels(stage="overview", reason="service_error").inc()
            return None
        return text.strip() or None
