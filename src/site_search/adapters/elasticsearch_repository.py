"""Elasticsearch-compatible index adapter speaking the ``_search`` REST API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from site_search.adapters.search_repository import DEFAULT_SORT, AbstractSearchRepository, StructuredQuery
from site_search.domain.errors import IndexUnavailableError
from site_search.domain.search import CategoryAggregation, IndexHit, IndexSearchPage
from site_search.observability.metrics import EXTERNAL_CALL_LATENCY, track_latency
from site_search.services.query_builder import CATEGORY_AGGREGATION_NAME, build_category_aggregation


logger = logging.getLogger(__name__)


def _parse_total(hits: dict[str, Any]) -> int:
    """Read ``hits.total`` in either the object (7.x+) or integer (6.x) form."""
    total = hits.get("total")
    if isinstance(total, dict):
        value = total.get("value", 0)
        return int(value) if isinstance(value, (int, float)) else 0
    if isinstance(total, (int, float)):
        return int(total)
    return 0


def _parse_buckets(payload: dict[str, Any]) -> dict[str, int]:
    """Read the category terms buckets, skipping entries that are not objects."""
    aggregations = payload.get("aggregations") or {}
    aggregation = aggregations.get(CATEGORY_AGGREGATION_NAME) or {}
    if not isinstance(aggregation, dict):
        raise ValueError(f"{CATEGORY_AGGREGATION_NAME} aggregation is a {type(aggregation).__name__}")

    buckets: dict[str, int] = {}
    for bucket in aggregation.get("buckets") or []:
        if not isinstance(bucket, dict):
            continue
        key = str(bucket.get("key") or "")
        buckets[key] = int(bucket.get("doc_count") or 0)
    return buckets


class ElasticsearchRepository(AbstractSearchRepository):
    """Index repository backed by an Elasticsearch (or OpenSearch) cluster."""

    def __init__(
        self,
        *,
        base_url: str,
        index_name: str,
        timeout_seconds: float = 8.0,
        auth: tuple[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.index_name = index_name
        self._timeout = httpx.Timeout(timeout_seconds, connect=min(timeout_seconds, 5.0))
        self._auth = auth
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, auth=self._auth)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _post_search(self, body: dict[str, Any], operation: str) -> dict[str, Any]:
        url = f"{self.base_url}/{self.index_name}/_search"
        try:
            with track_latency(EXTERNAL_CALL_LATENCY, service="index", operation=operation):
                response = await self._get_client().post(url, json=body)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as exc:
            detail = exc.response.text[:500] if exc.response is not None else ""
            logger.error("Index %s failed with HTTP %s: %s", operation, exc.response.status_code, detail)
            raise IndexUnavailableError(f"index {operation} failed with HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise IndexUnavailableError(f"index {operation} transport error: {exc.__class__.__name__}") from exc
        except ValueError as exc:
            raise IndexUnavailableError(f"index {operation} returned a non-JSON body") from exc

        if not isinstance(payload, dict):
            raise IndexUnavailableError(f"index {operation} returned an unexpected payload")
        return payload

    async def search(
        self,
        query: StructuredQuery,
        *,
        size: int,
        offset: int = 0,
        sort: list[Any] | None = None,
    ) -> IndexSearchPage:
        body = {
            "query": query,
            "size": size,
            "from": offset,
            "sort": sort if sort is not None else DEFAULT_SORT,
            "track_total_hits": True,
        }
        payload = await self._post_search(body, "search")
        hits = payload.get("hits") or {}

        parsed: list[IndexHit] = []
        for raw_hit in hits.get("hits") or []:
            if not isinstance(raw_hit, dict):
                continue
            parsed.append(
                IndexHit(
                    id=str(raw_hit.get("_id", "")),
                    score=raw_hit.get("_score"),
                    source=raw_hit.get("_source") or {},
                )
            )
        return IndexSearchPage(hits=parsed, total=_parse_total(hits))

    async def aggregate_categories(
        self,
        query: StructuredQuery,
        *,
        field: str = "category",
        size: int = 20,
    ) -> CategoryAggregation:
        body = {
            "query": query,
            "size": 0,
            "track_total_hits": True,
            "aggs": build_category_aggregation(field, size),
        }
        payload = await self._post_search(body, "aggregate")

        try:
            buckets = _parse_buckets(payload)
            total = _parse_total(payload.get("hits") or {})
        except (AttributeError, TypeError, ValueError) as exc:
            logger.error("Index aggregate returned a malformed body: %s", exc)
            raise IndexUnavailableError("index aggregate returned a malformed body") from exc
        return CategoryAggregation(buckets=buckets, total=total)

    async def ping(self) -> bool:
        try:
            response = await self._get_client().get(self.base_url)
        except httpx.HTTPError as exc:
            logger.warning("Index engine unreachable at %s: %s", self.base_url, exc)
            return False
        return response.status_code < 400
