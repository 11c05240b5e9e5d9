"""Adapters layer - index engine, language model and search-log implementations.

Following Cosmic Python Chapter 2: Repository Pattern
Each collaborator is reached through an abstract port so the pipeline can be
exercised with in-memory fakes.
"""

from .elasticsearch_repository import ElasticsearchRepository
from .language_model import AbstractLanguageModel, ChatCompletionsClient
from .search_log import AbstractSearchLog, HttpSearchLog
from .search_repository import AbstractSearchRepository


__all__ = [
    "AbstractLanguageModel",
    "AbstractSearchLog",
    "AbstractSearchRepository",
    "ChatCompletionsClient",
    "ElasticsearchRepository",
    "HttpSearchLog",
]
