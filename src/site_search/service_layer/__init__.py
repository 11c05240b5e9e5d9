"""Service layer - search use-case orchestration.

Following Cosmic Python Chapter 4:
- Service layer orchestrates use cases
- Works with domain models and abstract ports
- Owns the degradation rules that keep responses well-formed
"""

from .search_service import SEARCH_FAILED, SEARCH_UNAVAILABLE, SearchService


__all__ = [
    "SEARCH_FAILED",
    "SEARCH_UNAVAILABLE",
    "SearchService",
]
