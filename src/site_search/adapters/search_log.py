"""Search-log sink recording which caller ran which query.

Records land in the content store's ``search-logs`` collection, the same
place click history is kept. The pipeline only writes query records; reading
history back belongs to the history subsystem.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
import logging

import httpx

from site_search.domain.errors import SearchLogError
from site_search.observability.metrics import EXTERNAL_CALL_LATENCY, track_latency


logger = logging.getLogger(__name__)

# Marker url for records that capture a query rather than a clicked page
QUERY_ONLY_URL = "search:query-only"


class AbstractSearchLog(ABC):
    @abstractmethod
    async def record_query(self, caller_id: str, query: str) -> None:
        """Persist that ``caller_id`` searched for ``query``.

        Raises:
            SearchLogError: When the record could not be written.
        """
        raise NotImplementedError

    async def close(self) -> None:
        return


class HttpSearchLog(AbstractSearchLog):
    """Writes query records to a REST content store with a bearer token."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        timeout_seconds: float = 8.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = httpx.Timeout(timeout_seconds, connect=min(timeout_seconds, 5.0))
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def record_query(self, caller_id: str, query: str) -> None:
        record = {
            "data": {
                "user_id": caller_id,
                "query": query,
                "url": QUERY_ONLY_URL,
                "clicked": False,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            with track_latency(EXTERNAL_CALL_LATENCY, service="search_log", operation="record_query"):
                response = await self._get_client().post(
                    f"{self.base_url}/api/search-logs",
                    json=record,
                    headers=headers,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SearchLogError(f"search log rejected record with HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise SearchLogError(f"search log transport error: {exc.__class__.__name__}") from exc
