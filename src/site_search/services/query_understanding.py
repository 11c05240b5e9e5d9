"""Query understanding stage.

Turns a raw query into a :class:`QueryIntent` by asking the language model
for a structured reading of it. Results are cached per normalized query; a
failed call degrades to a deterministic whitespace-split intent that is never
cached, so the next request gets another chance at the service.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from site_search.adapters.language_model import AbstractLanguageModel
from site_search.domain.errors import LanguageModelError
from site_search.domain.search import QueryIntent, QueryIntentKind, split_query
from site_search.observability.metrics import ENRICHMENT_FALLBACKS
from site_search.services.prompts import DEFAULT_DOMAIN_CONTEXT, build_understanding_messages
from site_search.services.response_cache import ExpiringCache, query_cache_key


logger = logging.getLogger(__name__)


class QueryUnderstandingService:
    """Cache-or-compute wrapper around the understanding prompt."""

    def __init__(
        self,
        language_model: AbstractLanguageModel,
        cache: ExpiringCache,
        domain_context: str | None = None,
    ):
        self.language_model = language_model
        self.cache = cache
        self.domain_context = domain_context or DEFAULT_DOMAIN_CONTEXT

    async def understand(self, query: str) -> QueryIntent:
        """Return the structured intent for ``query``.

        Args:
            query: Raw query text as typed by the caller

        Returns:
            Cached or freshly computed intent, or the local fallback when the
            language model is unavailable or answers with garbage.
        """
        if not query or not query.strip():
            return QueryIntent.empty()

        key = query_cache_key(query)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            payload = await self.language_model.complete_json(
                build_understanding_messages(query.strip(), self.domain_context),
                temperature=0.3,
                operation="understanding",
            )
            intent = QueryIntent.model_validate(payload)
        except LanguageModelError as exc:
            return self._fallback(query, reason="service_error", detail=str(exc))
        except ValidationError as exc:
            return self._fallback(query, reason="invalid_shape", detail=f"{exc.error_count()} validation errors")

        if not intent.keywords and intent.intent is not QueryIntentKind.CATEGORY_ONLY:
            intent = intent.model_copy(update={"keywords": split_query(query)})

        self.cache.put(key, intent, tag=query)
        return intent

    def _fallback(self, query: str, *, reason: str, detail: str) -> QueryIntent:
        logger.warning("Query understanding failed (%s), using local fallback: %s", reason, detail)
        ENRICHMENT_FALLBACKS.labels(stage="understanding", reason=reason).inc()
        return QueryIntent.fallback(query)
