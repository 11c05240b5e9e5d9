"""In-memory fakes for the index engine and the language model."""

from collections.abc import Callable
import json
from typing import Any

from site_search.adapters.language_model import AbstractLanguageModel, Message
from site_search.adapters.search_repository import AbstractSearchRepository
from site_search.domain.errors import IndexUnavailableError, LanguageModelError
from site_search.domain.search import CategoryAggregation, IndexHit, IndexSearchPage, StructuredQuery


def make_doc(
    doc_id: str,
    title: str,
    category: str = "blogs",
    *,
    description: str = "",
    content: str = "",
    url: str | None = None,
) -> dict[str, Any]:
    """Build an index document in the shape stored by the crawler."""
    return {
        "id": doc_id,
        "url": url or f"https://example.com/{doc_id}",
        "title": title,
        "description": description or f"About {title}",
        "content": content or f"{title} body text",
        "page_description": "",
        "category": category,
        "last_modified": "2024-05-01T10:00:00Z",
    }


def _category_filter(query: StructuredQuery, field: str = "category") -> str | None:
    for clause in query.get("bool", {}).get("must", []):
        term = clause.get("term", {})
        if field in term:
            return term[field]
    return None


class FakeSearchRepository(AbstractSearchRepository):
    """In-memory index honouring only the category term clause.

    Documents come back in insertion order; ``total_override`` lets a test
    report more matches than it stores.
    """

    def __init__(self, docs: list[dict[str, Any]] | None = None, *, total_override: int | None = None):
        self.docs = list(docs or [])
        self.total_override = total_override
        self.search_calls: list[dict[str, Any]] = []
        self.aggregate_calls: list[dict[str, Any]] = []
        self.fail_search = False
        self.fail_aggregate = False
        self.healthy = True
        self.closed = False

    def _filtered(self, query: StructuredQuery) -> list[dict[str, Any]]:
        category = _category_filter(query)
        if category is None:
            return self.docs
        return [doc for doc in self.docs if doc["category"] == category]

    async def search(self, query, *, size, offset=0, sort=None) -> IndexSearchPage:
        self.search_calls.append({"query": query, "size": size, "offset": offset, "sort": sort})
        if self.fail_search:
            raise IndexUnavailableError("index search failed with HTTP 503")
        matched = self._filtered(query)
        hits = [
            IndexHit(id=doc["id"], score=1.0, source={k: v for k, v in doc.items() if k != "id"})
            for doc in matched[offset : offset + size]
        ]
        total = self.total_override if self.total_override is not None else len(matched)
        return IndexSearchPage(hits=hits, total=total)

    async def aggregate_categories(self, query, *, field="category", size=20) -> CategoryAggregation:
        self.aggregate_calls.append({"query": query, "field": field, "size": size})
        if self.fail_aggregate:
            raise IndexUnavailableError("index aggregate failed with HTTP 503")
        matched = self._filtered(query)
        buckets: dict[str, int] = {}
        for doc in matched:
            buckets[doc["category"]] = buckets.get(doc["category"], 0) + 1
        return CategoryAggregation(buckets=buckets, total=len(matched))

    async def ping(self) -> bool:
        return self.healthy

    async def close(self) -> None:
        self.closed = True


Reply = str | dict[str, Any] | Exception | Callable[[list[Message]], Any]


class FakeLanguageModel(AbstractLanguageModel):
    """Scripted language model keyed by operation name.

    Each operation maps to a reply: a string (returned verbatim), a dict
    (returned as JSON), an exception (raised) or a callable receiving the
    messages. Unscripted operations raise :class:`LanguageModelError`.
    """

    def __init__(self, replies: dict[str, Reply] | None = None):
        self.replies: dict[str, Reply] = dict(replies or {})
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def calls_for(self, operation: str) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["operation"] == operation]

    async def complete(self, messages, *, temperature=0.4, max_tokens=None, json_mode=False, operation="completion"):
        self.calls.append(
            {
                "operation": operation,
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
                "json_mode": json_mode,
            }
        )
        if operation not in self.replies:
            raise LanguageModelError(f"{operation} not scripted")
        reply = self.replies[operation]
        if callable(reply):
            reply = reply(messages)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, (dict, list)):
            return json.dumps(reply)
        return reply

    async def close(self) -> None:
        self.closed = True


class ManualClock:
    """Deterministic monotonic clock for cache expiry tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


