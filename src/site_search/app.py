"""Main ASGI application entry point.

Thin HTTP front door over :class:`SearchService`:

    GET  /search        paginated, enriched search
    GET  /suggest       autocomplete suggestions
    GET  /health        index reachability and enrichment setup
    GET  /metrics       Prometheus exposition
    GET  /cache/stats   response cache sizes
    POST /cache/clear   drop cached enrichment results

Usage:
    site-search
    # or
    python -m site_search.app
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
import logging
from typing import TYPE_CHECKING

from starlette.applications import Starlette
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from site_search.adapters.elasticsearch_repository import ElasticsearchRepository
from site_search.adapters.language_model import ChatCompletionsClient
from site_search.adapters.search_log import HttpSearchLog
from site_search.config import Settings
from site_search.observability import (
    configure_log_exporter,
    configure_logging,
    configure_trace_exporter,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
    init_tracing,
)
from site_search.observability.logging import SERVICE_NAME
from site_search.observability.tracing import TraceContextMiddleware, trace_request
from site_search.runtime.health import build_health_endpoint
from site_search.service_layer.search_service import SearchService
from site_search.services.overview_service import OverviewSynthesizer
from site_search.services.query_understanding import QueryUnderstandingService
from site_search.services.response_cache import CacheRegistry, CacheSweeper
from site_search.services.result_ranker import ResultRanker
from site_search.services.suggestion_service import SuggestionService


if TYPE_CHECKING:
    from starlette.requests import Request


logger = logging.getLogger(__name__)

USER_ID_HEADER = "x-user-id"


def build_search_service(settings: Settings) -> SearchService:
    """Wire the production adapters and pipeline stages from ``settings``."""
    caches = CacheRegistry.from_settings(settings)
    repository = ElasticsearchRepository(
        base_url=settings.index_url,
        index_name=settings.index_name,
        timeout_seconds=settings.external_timeout_seconds,
        auth=settings.get_index_auth(),
    )
    language_model = ChatCompletionsClient(
        base_url=settings.llm_base_url,
        api_key=settings.llm_api_key,
        model=settings.llm_model,
        timeout_seconds=settings.external_timeout_seconds,
    )
    if not settings.has_llm_credentials():
        logger.warning("LLM_API_KEY is not set; enrichment stages will use their local fallbacks")

    search_log = None
    if settings.search_log_url and settings.get_search_log_api_key():
        search_log = HttpSearchLog(
            base_url=settings.search_log_url,
            api_key=settings.get_search_log_api_key(),
            timeout_seconds=settings.external_timeout_seconds,
        )

    context = settings.domain_context.strip() or None
    return SearchService(
        repository,
        QueryUnderstandingService(language_model, caches.understanding, domain_context=context),
        ResultRanker(
            language_model,
            caches.ranking,
            max_candidates=settings.ranking_max_candidates,
            domain_context=context,
        ),
        OverviewSynthesizer(
            language_model,
            caches.overview,
            snippet_chars=settings.overview_snippet_chars,
            max_results=settings.overview_max_results,
            domain_context=context,
        ),
        caches,
        suggestions=SuggestionService(
            language_model,
            caches.suggestions,
            repository,
            limit=settings.suggestion_limit,
            domain_context=context,
        ),
        search_log=search_log,
        settings=settings,
    )


def _parse_int(raw: str | None, default: int | None) -> int | None:
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class AppBuilder:
    """Builds the ASGI app around one search service."""

    def __init__(self, settings: Settings | None = None, *, search_service: SearchService | None = None) -> None:
        self.settings = settings or Settings()
        self.search_service = search_service
        self.sweeper: CacheSweeper | None = None

    def build(self) -> Starlette:
        """Build and return the Starlette application."""
        self._init_observability()

        if self.search_service is None:
            self.search_service = build_search_service(self.settings)
        self.sweeper = CacheSweeper(self.search_service.caches, self.settings.cache_sweep_interval_seconds)

        app = Starlette(
            debug=self.settings.log_level.lower() == "debug",
            routes=self._build_routes(),
            lifespan=self._build_lifespan_manager(),
        )
        app.middleware("http")(trace_request)
        app.add_middleware(TraceContextMiddleware)
        app.state.search_service = self.search_service
        return app

    def _init_observability(self) -> None:
        configure_logging(level=self.settings.log_level, json_output=self.settings.log_json)
        collector_config = self.settings.observability
        resource_attributes = dict(collector_config.resource_attributes)
        init_metrics(service_name=SERVICE_NAME, resource_attributes=resource_attributes, config=collector_config)
        if collector_config.enabled:
            init_tracing(service_name=SERVICE_NAME, resource_attributes=resource_attributes)
            configure_trace_exporter(collector_config)
            configure_log_exporter(
                collector_config,
                service_name=SERVICE_NAME,
                resource_attributes=resource_attributes,
            )

    def _build_routes(self) -> list[Route]:
        assert self.search_service is not None
        return [
            Route("/search", endpoint=self._build_search_endpoint(), methods=["GET"]),
            Route("/suggest", endpoint=self._build_suggest_endpoint(), methods=["GET"]),
            Route("/health", endpoint=build_health_endpoint(self.search_service, self.settings), methods=["GET"]),
            Route("/metrics", endpoint=self._build_metrics_endpoint(), methods=["GET"]),
            Route("/cache/stats", endpoint=self._build_cache_stats_endpoint(), methods=["GET"]),
            Route("/cache/clear", endpoint=self._build_cache_clear_endpoint(), methods=["POST"]),
        ]

    def _build_search_endpoint(self):
        service = self.search_service
        assert service is not None

        async def search_endpoint(request: Request) -> JSONResponse:
            params = request.query_params
            caller_id = params.get("user_id") or request.headers.get(USER_ID_HEADER)
            response = await service.search(
                params.get("q", ""),
                category=params.get("category"),
                page=_parse_int(params.get("page"), 1),
                page_size=_parse_int(params.get("pageSize"), None),
                caller_id=caller_id,
            )
            status_code = 500 if response.error else 200
            return JSONResponse(response.to_payload(), status_code=status_code)

        return search_endpoint

    def _build_suggest_endpoint(self):
        service = self.search_service
        assert service is not None

        async def suggest_endpoint(request: Request) -> JSONResponse:
            suggestions = await service.suggest(request.query_params.get("q", ""))
            return JSONResponse(
                {"suggestions": [suggestion.model_dump(mode="json", by_alias=True) for suggestion in suggestions]}
            )

        return suggest_endpoint

    def _build_metrics_endpoint(self):
        async def metrics_endpoint(_: Request) -> Response:
            return Response(content=get_metrics(), media_type=get_metrics_content_type())

        return metrics_endpoint

    def _build_cache_stats_endpoint(self):
        service = self.search_service
        assert service is not None

        async def cache_stats_endpoint(_: Request) -> JSONResponse:
            return JSONResponse(service.cache_stats())

        return cache_stats_endpoint

    def _build_cache_clear_endpoint(self):
        service = self.search_service
        assert service is not None

        async def cache_clear_endpoint(request: Request) -> JSONResponse:
            query_prefix = request.query_params.get("q")
            removed = service.clear_caches(query_prefix)
            return JSONResponse({"success": True, "removed": removed, "query": query_prefix or None})

        return cache_clear_endpoint

    def _build_lifespan_manager(self):
        service = self.search_service
        sweeper = self.sweeper
        assert service is not None and sweeper is not None

        @asynccontextmanager
        async def lifespan(app: Starlette):
            """Run the cache sweeper while serving and release clients afterwards."""
            sweeper.start()
            logger.info(
                "Search service ready (index %s, sweep every %ss)",
                self.settings.index_name,
                self.settings.cache_sweep_interval_seconds,
            )
            try:
                yield
            finally:
                await sweeper.stop()
                closers = [service.repository.close(), service.understanding.language_model.close()]
                if service.search_log is not None:
                    closers.append(service.search_log.close())
                for result in await asyncio.gather(*closers, return_exceptions=True):
                    if isinstance(result, Exception):
                        logger.error("Error during lifespan cleanup: %s", result, exc_info=result)

        return lifespan


def create_app(settings: Settings | None = None, *, search_service: SearchService | None = None) -> Starlette:
    """Create ASGI application.

    Args:
        settings: Configuration (loaded from the environment when omitted)
        search_service: Pre-built service, mainly for tests

    Returns:
        Starlette application serving the search front door
    """
    return AppBuilder(settings, search_service=search_service).build()


def main() -> None:
    """Main entry point for the search server."""
    import uvicorn

    settings = Settings()
    app = create_app(settings)

    logger.info("Starting server on %s:%d", settings.host, settings.port)
    logger.info("Health check: http://%s:%d/health", settings.host, settings.port)

    with suppress(KeyboardInterrupt):
        uvicorn.run(
            app,
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level.lower(),
            log_config=None,  # Don't let uvicorn override our logging config
        )


if __name__ == "__main__":
    main()
