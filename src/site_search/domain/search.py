"""Domain models for the search pipeline.

Following Cosmic Python principles:
- Value Objects are immutable (frozen=True)
- Domain logic lives in domain layer
- No infrastructure dependencies

Field names are snake_case in Python and camelCase on the wire, so the same
models parse language-model JSON and render responses for the front door.
"""

from datetime import datetime
from enum import Enum
import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# Engine-native query body (bool query, aggregations) passed through the index port
StructuredQuery = dict[str, Any]

# Key of the category-count entry that covers every category
ALL_CATEGORIES_KEY = ""

_WIRE_CONFIG = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class QueryIntentKind(str, Enum):
    """Classification of a query's purpose."""

    SEARCH = "search"
    CATEGORY_KEYWORD = "category-keyword"
    CATEGORY_ONLY = "category-only"
    QUESTION = "question"


# Intents that allow an inferred category to narrow results
CATEGORY_SCOPED_INTENTS = frozenset({QueryIntentKind.CATEGORY_KEYWORD, QueryIntentKind.CATEGORY_ONLY})


def split_query(query: str) -> list[str]:
    """Split a raw query on whitespace, dropping empty pieces."""
    return [word for word in query.split() if word]


def normalize_query(query: str) -> str:
    """Lower-case and trim a query for use as a cache key component."""
    return query.lower().strip()


class QueryIntent(BaseModel):
    """Value object holding the structured understanding of a raw query.

    Produced once per normalized query and never mutated afterwards, so a
    cached instance can be shared between requests.
    """

    model_config = _WIRE_CONFIG

    intent: QueryIntentKind = QueryIntentKind.SEARCH
    category: str | None = None
    keywords: list[str] = Field(default_factory=list)
    corrected_query: str | None = None
    expanded_terms: list[str] = Field(default_factory=list)
    synonyms: list[str] = Field(default_factory=list)
    did_you_mean: str | None = None

    @field_validator("intent", mode="before")
    @classmethod
    def _coerce_intent(cls, value: Any) -> Any:
        if isinstance(value, QueryIntentKind):
            return value
        if isinstance(value, str) and value.strip().lower() in {kind.value for kind in QueryIntentKind}:
            return value.strip().lower()
        return QueryIntentKind.SEARCH

    @field_validator("category", "corrected_query", "did_you_mean", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if not isinstance(value, str):
            return None
        stripped = value.strip()
        if not stripped or stripped.lower() in {"null", "none"}:
            return None
        return stripped

    @field_validator("keywords", "expanded_terms", "synonyms", mode="before")
    @classmethod
    def _coerce_terms(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple)):
            return []
        return [item.strip() for item in value if isinstance(item, str) and item.strip()]

    @classmethod
    def empty(cls) -> "QueryIntent":
        """Intent for an empty query: plain search with no terms."""
        return cls()

    @classmethod
    def fallback(cls, query: str) -> "QueryIntent":
        """Deterministic local intent used when the understanding service fails."""
        return cls(intent=QueryIntentKind.SEARCH, keywords=split_query(query))

    @property
    def authoritative_category(self) -> str | None:
        """Category that may narrow results, honoured only for category-scoped intents."""
        if self.intent in CATEGORY_SCOPED_INTENTS:
            return self.category
        return None

    @property
    def suggestion(self) -> str | None:
        """Spelling suggestion offered to the caller."""
        return self.did_you_mean or self.corrected_query

    def search_terms(self) -> list[str]:
        """Union of keywords, expanded terms and synonyms (keywords alone when empty)."""
        terms = [*self.keywords, *self.expanded_terms, *self.synonyms]
        return terms or list(self.keywords)


class SearchResult(BaseModel):
    """Value object for a single catalogued page returned by a search."""

    model_config = _WIRE_CONFIG

    id: str
    url: str = ""
    title: str = ""
    description: str = ""
    content: str = ""
    page_description: str = ""
    category: str = ""
    last_modified: datetime | None = None
    score: float | None = None

    @field_validator("url", "title", "description", "content", "page_description", "category", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("last_modified", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> datetime | None:
        if isinstance(value, datetime):
            return value
        if not isinstance(value, str) or not value.strip():
            return None
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None

    @property
    def identity(self) -> str:
        """Stable identifier used in cache keys."""
        return self.id or self.url

    @property
    def snippet_source(self) -> str:
        """Short text describing the page, preferring the description."""
        return self.description or self.content

    @classmethod
    def from_hit(cls, hit: "IndexHit") -> "SearchResult":
        source = hit.source
        return cls(
            id=hit.id,
            url=source.get("url"),
            title=source.get("title"),
            description=source.get("description"),
            content=source.get("content") or source.get("page_description"),
            page_description=source.get("page_description"),
            category=source.get("category"),
            last_modified=source.get("last_modified"),
            score=hit.score,
        )


class Suggestion(BaseModel):
    """Autocomplete entry, either an indexed page or a free-text suggestion."""

    model_config = _WIRE_CONFIG

    id: str
    url: str = ""
    title: str
    description: str = ""
    category: str = ""


class IndexHit(BaseModel):
    """A single raw hit from the index engine."""

    model_config = ConfigDict(frozen=True)

    id: str
    score: float | None = None
    source: dict[str, Any] = Field(default_factory=dict)


class IndexSearchPage(BaseModel):
    """Candidate hits plus the engine's total match count."""

    model_config = ConfigDict(frozen=True)

    hits: list[IndexHit] = Field(default_factory=list)
    total: int = 0


class CategoryAggregation(BaseModel):
    """Per-category document counts plus the count across all categories."""

    model_config = ConfigDict(frozen=True)

    buckets: dict[str, int] = Field(default_factory=dict)
    total: int = 0

    def as_counts(self) -> dict[str, int]:
        counts = dict(self.buckets)
        counts[ALL_CATEGORIES_KEY] = self.total
        return counts


def total_pages(total: int, page_size: int) -> int:
    """Number of pages needed to show ``total`` items."""
    if page_size <= 0:
        return 0
    return math.ceil(total / page_size)


class SearchResponse(BaseModel):
    """Value object for a complete, paginated search response."""

    model_config = _WIRE_CONFIG

    results: list[SearchResult] = Field(default_factory=list)
    total: int = 0
    category_counts: dict[str, int] = Field(default_factory=dict)
    page: int = 1
    page_size: int = 10
    total_pages: int = 0
    overview: str | None = None
    did_you_mean: str | None = None
    intent: QueryIntentKind = QueryIntentKind.SEARCH
    understanding: QueryIntent | None = None
    error: str | None = None

    @classmethod
    def empty(cls, page: int = 1, page_size: int = 10, *, error: str | None = None) -> "SearchResponse":
        """Zero-total response used for "nothing to search" and failed requests."""
        return cls(page=page, page_size=page_size, error=error)

    def to_payload(self) -> dict[str, Any]:
        """Serialize with wire (camelCase) names."""
        return self.model_dump(mode="json", by_alias=True)
