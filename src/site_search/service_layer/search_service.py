"""Search orchestration layer.

Runs one request through the pipeline: understanding, query building, index
search (with the category aggregation alongside), ranking, page slicing,
overview and category counts. Every collaborator failure degrades to a
well-formed :class:`SearchResponse`; nothing propagates to the transport.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
import logging
from typing import Any

from site_search.adapters.search_log import AbstractSearchLog
from site_search.adapters.search_repository import AbstractSearchRepository
from site_search.config import Settings
from site_search.domain.errors import IndexUnavailableError, SearchLogError
from site_search.domain.search import (
    QueryIntent,
    SearchResponse,
    SearchResult,
    StructuredQuery,
    Suggestion,
    total_pages,
)
from site_search.observability.context import bind_caller
from site_search.observability.metrics import SEARCH_LATENCY, SEARCH_REQUESTS, track_latency
from site_search.observability.tracing import create_span
from site_search.services.overview_service import OverviewSynthesizer
from site_search.services.query_builder import build_index_query, resolve_target_category
from site_search.services.query_understanding import QueryUnderstandingService
from site_search.services.response_cache import CacheRegistry
from site_search.services.result_ranker import ResultRanker
from site_search.services.suggestion_service import SuggestionService


logger = logging.getLogger(__name__)

SEARCH_UNAVAILABLE = "search_unavailable"
SEARCH_FAILED = "search_failed"


class SearchService:
    """High-level search orchestration service.

    Collaborators are injected so the same orchestration runs against the real
    index engine and language model or against in-memory fakes.
    """

    def __init__(
        self,
        repository: AbstractSearchRepository,
        understanding: QueryUnderstandingService,
        ranker: ResultRanker,
        overview: OverviewSynthesizer,
        caches: CacheRegistry,
        *,
        suggestions: SuggestionService | None = None,
        search_log: AbstractSearchLog | None = None,
        settings: Settings | None = None,
    ):
        """Initialize search service with dependencies.

        Args:
            repository: Index engine port
            understanding: Query understanding stage
            ranker: Candidate re-ranking stage
            overview: Page-1 overview stage
            caches: Cache registry shared by the stages
            suggestions: Optional autocomplete service
            search_log: Optional sink recording page-1 queries per caller
            settings: Pipeline tuning (page bounds, candidate window, aggregation)
        """
        self.repository = repository
        self.understanding = understanding
        self.ranker = ranker
        self.overview = overview
        self.caches = caches
        self.suggestions = suggestions
        self.search_log = search_log
        self.settings = settings or Settings()

    def _clamp(self, page: int | None, page_size: int | None) -> tuple[int, int]:
        page = max(1, page or 1)
        if page_size is None:
            page_size = self.settings.default_page_size
        page_size = min(max(1, page_size), self.settings.max_page_size)
        return page, page_size

    async def search(
        self,
        query: str,
        category: str | None = None,
        page: int | None = 1,
        page_size: int | None = None,
        caller_id: str | None = None,
    ) -> SearchResponse:
        """Execute a search request.

        Args:
            query: Raw query text, may be empty when a category is given
            category: Optional explicit category filter
            page: 1-based page number (clamped to >= 1)
            page_size: Results per page (clamped to 1..max_page_size)
            caller_id: Optional caller identity for the search log

        Returns:
            SearchResponse; ``error`` carries a diagnostic code when the
            request could not be served.
        """
        query = (query or "").strip()
        category = (category or "").strip() or None
        page, page_size = self._clamp(page, page_size)
        bind_caller(caller_id)

        if not query and not category:
            SEARCH_REQUESTS.labels(status="empty").inc()
            return SearchResponse.empty(page, page_size)

        attributes = {"search.page": page, "search.page_size": page_size, "search.has_category": bool(category)}
        with create_span("search.pipeline", attributes=attributes) as span:
            with track_latency(SEARCH_LATENCY, stage="total"):
                try:
                    response = await self._run(query, category, page, page_size, caller_id)
                except IndexUnavailableError as exc:
                    logger.error("Index engine unavailable for search: %s", exc)
                    response = SearchResponse.empty(page, page_size, error=self._error(SEARCH_UNAVAILABLE, exc))
                except Exception as exc:
                    logger.error("Search pipeline failed", exc_info=True)
                    response = SearchResponse.empty(page, page_size, error=self._error(SEARCH_FAILED, exc))

            span.set_attribute("search.total", response.total)
            span.set_attribute("search.results", len(response.results))
            if response.error:
                span.set_attribute("search.error", response.error)

        SEARCH_REQUESTS.labels(status="error" if response.error else "ok").inc()
        return response

    def _error(self, code: str, exc: Exception) -> str:
        if self.settings.mask_error_details:
            return code
        return f"{code}: {exc}"

    async def _understand(self, query: str) -> QueryIntent:
        if not query:
            return QueryIntent.empty()
        try:
            with track_latency(SEARCH_LATENCY, stage="understanding"):
                return await self.understanding.understand(query)
        except Exception:
            logger.warning("Query understanding raised, using local fallback", exc_info=True)
            return QueryIntent.fallback(query)

    async def _run(
        self,
        query: str,
        category: str | None,
        page: int,
        page_size: int,
        caller_id: str | None,
    ) -> SearchResponse:
        intent = await self._understand(query)
        target_category = resolve_target_category(intent, category)
        structured = build_index_query(intent, target_category, category_field=self.settings.category_field)

        counts_task = asyncio.create_task(self._category_counts(structured))
        try:
            return await self._assemble(query, intent, structured, counts_task, page, page_size, caller_id)
        finally:
            if not counts_task.done():
                counts_task.cancel()
                with suppress(asyncio.CancelledError):
                    await counts_task
            elif not counts_task.cancelled() and counts_task.exception() is not None:
                logger.warning("Category aggregation task failed: %s", counts_task.exception())

    async def _assemble(
        self,
        query: str,
        intent: QueryIntent,
        structured: StructuredQuery,
        counts_task: asyncio.Task,
        page: int,
        page_size: int,
        caller_id: str | None,
    ) -> SearchResponse:
        with track_latency(SEARCH_LATENCY, stage="index"):
            candidates_page = await self.repository.search(
                structured,
                size=min(2 * page_size, self.settings.max_candidate_window),
                offset=(page - 1) * page_size,
            )

        candidates: list[SearchResult] = [SearchResult.from_hit(hit) for hit in candidates_page.hits]
        if candidates and query:
            with track_latency(SEARCH_LATENCY, stage="ranking"):
                candidates = await self.ranker.rank(query, candidates, intent)
        results = candidates[:page_size]

        overview: str | None = None
        did_you_mean: str | None = None
        if page == 1:
            did_you_mean = intent.suggestion
            if results and query:
                with track_latency(SEARCH_LATENCY, stage="overview"):
                    overview = await self.overview.synthesize(query, results, intent)
            if caller_id and query:
                await self._record_query(caller_id, query)

        category_counts = await counts_task
        return SearchResponse(
            results=results,
            total=candidates_page.total,
            category_counts=category_counts,
            page=page,
            page_size=page_size,
            total_pages=total_pages(candidates_page.total, page_size),
            overview=overview,
            did_you_mean=did_you_mean,
            intent=intent.intent,
            understanding=intent if query else None,
        )

    async def _category_counts(self, structured: StructuredQuery) -> dict[str, int]:
        try:
            aggregation = await self.repository.aggregate_categories(
                structured,
                field=self.settings.category_field,
                size=self.settings.category_aggregation_size,
            )
        except IndexUnavailableError as exc:
            logger.warning("Category aggregation failed, returning no counts: %s", exc)
            return {}
        except Exception:
            logger.error("Category aggregation raised unexpectedly, returning no counts", exc_info=True)
            return {}
        return aggregation.as_counts()

    async def _record_query(self, caller_id: str, query: str) -> None:
        if self.search_log is None:
            return
        try:
            await self.search_log.record_query(caller_id, query)
        except SearchLogError as exc:
            logger.warning("Failed to record search query: %s", exc)

    async def suggest(self, query: str) -> list[Suggestion]:
        """Autocomplete suggestions for ``query`` (empty when no suggestion service is wired)."""
        if self.suggestions is None:
            return []
        try:
            return await self.suggestions.suggest(query)
        except Exception:
            logger.error("Suggestion lookup failed", exc_info=True)
            return []

    def clear_caches(self, query_prefix: str | None = None) -> int:
        """Clear every response cache, or only overview/ranking entries for a query prefix."""
        if query_prefix and query_prefix.strip():
            return self.caches.clear_query(query_prefix)
        return self.caches.clear_all()

    def cache_stats(self) -> dict[str, Any]:
        return self.caches.stats()
