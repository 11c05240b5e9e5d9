"""Autocomplete suggestions combining index title matches with model phrases."""

from __future__ import annotations

import logging

from site_search.adapters.language_model import AbstractLanguageModel
from site_search.adapters.search_repository import AbstractSearchRepository
from site_search.domain.errors import IndexUnavailableError, LanguageModelError
from site_search.domain.search import QueryIntent, SearchResult, Suggestion
from site_search.observability.metrics import ENRICHMENT_FALLBACKS
from site_search.services.prompts import DEFAULT_DOMAIN_CONTEXT, build_suggestion_messages
from site_search.services.query_builder import build_index_query
from site_search.services.response_cache import ExpiringCache, query_cache_key


logger = logging.getLogger(__name__)

INDEX_MATCH_LIMIT = 5
AI_SUGGESTION_PREFIX = "ai-suggestion-"


def _as_suggestion(result: SearchResult) -> Suggestion:
    return Suggestion(
        id=result.identity,
        url=result.url,
        title=result.title,
        description=result.description,
        category=result.category,
    )


def merge_suggestions(phrases: list[str], matches: list[SearchResult], limit: int) -> list[Suggestion]:
    """Map each phrase onto a matching page title, then append the leftover pages.

    A phrase with no page whose title contains it (or is contained in it)
    becomes a free-text entry with a synthetic ``ai-suggestion-{i}`` id.
    """
    merged: list[Suggestion] = []
    seen: set[str] = set()

    def add(suggestion: Suggestion) -> None:
        if suggestion.id not in seen:
            seen.add(suggestion.id)
            merged.append(suggestion)

    for position, phrase in enumerate(phrases):
        needle = phrase.lower()
        match = next(
            (
                result
                for result in matches
                if result.title and (needle in result.title.lower() or result.title.lower() in needle)
            ),
            None,
        )
        if match is not None:
            add(_as_suggestion(match))
        else:
            add(Suggestion(id=f"{AI_SUGGESTION_PREFIX}{position}", title=phrase, description="Suggested search"))

    for result in matches:
        add(_as_suggestion(result))

    return merged[:limit]


class SuggestionService:
    """Suggest completions for a partially typed query."""

    def __init__(
        self,
        language_model: AbstractLanguageModel,
        cache: ExpiringCache,
        repository: AbstractSearchRepository,
        limit: int = 6,
        domain_context: str | None = None,
    ):
        self.language_model = language_model
        self.cache = cache
        self.repository = repository
        self.limit = limit
        self.domain_context = domain_context or DEFAULT_DOMAIN_CONTEXT

    async def suggest(self, query: str) -> list[Suggestion]:
        if not query or not query.strip():
            return []

        matches = await self._index_matches(query.strip())
        phrases = await self._phrases(query.strip(), [match.title for match in matches if match.title])
        return merge_suggestions(phrases, matches, self.limit)

    async def _index_matches(self, query: str) -> list[SearchResult]:
        structured = build_index_query(QueryIntent(keywords=[query]))
        try:
            page = await self.repository.search(structured, size=INDEX_MATCH_LIMIT)
        except IndexUnavailableError as exc:
            logger.warning("Suggestion index lookup failed: %s", exc)
            return []
        return [SearchResult.from_hit(hit) for hit in page.hits]

    async def _phrases(self, query: str, titles: list[str]) -> list[str]:
        key = query_cache_key(query)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            payload = await self.language_model.complete_json(
                build_suggestion_messages(query, titles, self.domain_context),
                temperature=0.5,
                operation="suggestions",
            )
        except LanguageModelError as exc:
            logger.warning("Suggestion generation failed: %s", exc)
            ENRICHMENT_FALLBACKS.labels(stage="suggestions", reason="service_error").inc()
            return []

        raw = payload.get("suggestions")
        if not isinstance(raw, list):
            ENRICHMENT_FALLBACKS.labels(stage="suggestions", reason="invalid_shape").inc()
            return []

        phrases = [item.strip() for item in raw if isinstance(item, str) and item.strip()]
        self.cache.put(key, phrases, tag=query)
        return phrases
