"""Health endpoint factory."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from starlette.responses import JSONResponse


if TYPE_CHECKING:
    from starlette.requests import Request

    from site_search.config import Settings
    from site_search.service_layer.search_service import SearchService


logger = logging.getLogger(__name__)


def build_health_endpoint(search_service: SearchService, settings: Settings):
    """Return a coroutine function reporting index reachability and enrichment setup."""

    async def health_check(_: Request) -> JSONResponse:
        try:
            index_ok = await search_service.repository.ping()
        except Exception as exc:
            logger.error("Index health probe failed: %s", exc, exc_info=True)
            index_ok = False

        return JSONResponse(
            {
                "status": "healthy" if index_ok else "degraded",
                "index": {
                    "reachable": index_ok,
                    "name": settings.index_name,
                },
                "language_model": {
                    "configured": settings.has_llm_credentials(),
                    "model": settings.llm_model,
                },
                "search_log": {"configured": search_service.search_log is not None},
                "cache": {"entries": search_service.cache_stats()["total"]},
            },
            status_code=200,  # Always 200, check "status" field for degraded state
        )

    return health_check
