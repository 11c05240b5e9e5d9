"""Expiring in-process caches for language-model enrichment results.

Four independent cache classes share one implementation:

- understanding: structured intent per normalized query
- suggestions: autocomplete lists per normalized query
- overview: summaries per (query, first three result identities)
- ranking: permutations per (query, full result identity list)

TTL is the only eviction policy. Stale entries are dropped on the read that
finds them and by a periodic sweep, so memory stays bounded by the number of
distinct keys written within one TTL window.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Sequence
from contextlib import suppress
from dataclasses import dataclass
import hashlib
import logging
import threading
import time
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from site_search.domain.search import normalize_query
from site_search.observability.metrics import CACHE_ENTRIES, CACHE_LOOKUPS


if TYPE_CHECKING:
    from site_search.config import Settings
    from site_search.domain.search import SearchResult


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Number of leading results that identify an overview
OVERVIEW_IDENTITY_DEPTH = 3


def query_cache_key(query: str) -> str:
    """Stable key for caches keyed on query text alone."""
    return hashlib.md5(normalize_query(query).encode("utf-8")).hexdigest()


def results_cache_key(query: str, results: Sequence[SearchResult], depth: int | None = None) -> str:
    """Stable key coupling the query to the identities of the results it produced.

    Args:
        query: Raw query text (normalized before hashing)
        results: Ordered results; ``depth`` leading items contribute to the key
        depth: Number of leading results to include, or None for all of them
    """
    selected = results if depth is None else results[:depth]
    identities = "|".join(result.identity for result in selected)
    combined = f"{normalize_query(query)}|{identities}"
    return hashlib.md5(combined.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A cached value plus the monotonic time it was written."""

    value: T
    stored_at: float
    tag: str = ""


class ExpiringCache(Generic[T]):
    """Thread-safe TTL map for a single cache class."""

    def __init__(self, name: str, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive for cache {name!r}")
        self.name = name
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()

    def _is_fresh(self, entry: CacheEntry[T], now: float) -> bool:
        return now - entry.stored_at < self.ttl_seconds

    def lookup(self, key: str) -> CacheEntry[T] | None:
        """Return the live entry for ``key``, evicting it when stale.

        Unlike :meth:`get`, a cached ``None`` value is reported as a hit.
        """
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and not self._is_fresh(entry, now):
                del self._entries[key]
                entry = None

        CACHE_LOOKUPS.labels(cache=self.name, outcome="hit" if entry is not None else "miss").inc()
        return entry

    def get(self, key: str, default: T | None = None) -> T | None:
        entry = self.lookup(key)
        if entry is None:
            return default
        return entry.value

    def put(self, key: str, value: T, *, tag: str = "") -> None:
        """Store ``value`` under ``key``, replacing any previous entry and its age."""
        entry = CacheEntry(value=value, stored_at=self._clock(), tag=normalize_query(tag))
        with self._lock:
            self._entries[key] = entry

    def clear(self) -> int:
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
        return removed

    def clear_prefix(self, query_prefix: str) -> int:
        """Drop entries whose normalized query starts with ``query_prefix``."""
        prefix = normalize_query(query_prefix)
        with self._lock:
            doomed = [key for key, entry in self._entries.items() if entry.tag.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def sweep(self) -> int:
        """Remove every stale entry and return how many were dropped."""
        now = self._clock()
        with self._lock:
            stale = [key for key, entry in self._entries.items() if not self._is_fresh(entry, now)]
            for key in stale:
                del self._entries[key]
            size = len(self._entries)
        CACHE_ENTRIES.labels(cache=self.name).set(size)
        return len(stale)

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict[str, Any]:
        return {"size": self.size, "ttl_seconds": self.ttl_seconds}

    def __len__(self) -> int:
        return self.size


class CacheRegistry:
    """The four response cache classes used by one process.

    Built once at startup and passed by reference to the pipeline components.
    """

    def __init__(
        self,
        *,
        understanding: ExpiringCache,
        suggestions: ExpiringCache,
        overview: ExpiringCache,
        ranking: ExpiringCache,
    ) -> None:
        self.understanding = understanding
        self.suggestions = suggestions
        self.overview = overview
        self.ranking = ranking

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], float] = time.monotonic) -> CacheRegistry:
        return cls(
            understanding=ExpiringCache("understanding", settings.understanding_cache_ttl_seconds, clock),
            suggestions=ExpiringCache("suggestions", settings.suggestions_cache_ttl_seconds, clock),
            overview=ExpiringCache("overview", settings.overview_cache_ttl_seconds, clock),
            ranking=ExpiringCache("ranking", settings.ranking_cache_ttl_seconds, clock),
        )

    def caches(self) -> Iterable[ExpiringCache]:
        return (self.understanding, self.suggestions, self.overview, self.ranking)

    def clear_all(self) -> int:
        removed = sum(cache.clear() for cache in self.caches())
        logger.info("Cleared all response caches (%d entries)", removed)
        return removed

    def clear_query(self, query_prefix: str) -> int:
        """Drop overview and ranking entries for queries starting with ``query_prefix``."""
        return self.overview.clear_prefix(query_prefix) + self.ranking.clear_prefix(query_prefix)

    def sweep_expired(self) -> int:
        return sum(cache.sweep() for cache in self.caches())

    def stats(self) -> dict[str, Any]:
        per_cache = {cache.name: cache.stats() for cache in self.caches()}
        return {
            **per_cache,
            "total": sum(entry["size"] for entry in per_cache.values()),
        }


class CacheSweeper:
    """Background task that periodically evicts expired entries from a registry."""

    def __init__(self, registry: CacheRegistry, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.registry = registry
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()
        self._sweeps = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def sweeps(self) -> int:
        return self._sweeps

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is not None:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    def sweep_once(self) -> int:
        removed = self.registry.sweep_expired()
        self._sweeps += 1
        if removed:
            logger.debug("Cache sweep removed %d expired entries", removed)
        return removed

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
                break
            except asyncio.TimeoutError:
                pass
            try:
                self.sweep_once()
            except Exception:
                logger.error("Cache sweep failed, retrying next interval", exc_info=True)
