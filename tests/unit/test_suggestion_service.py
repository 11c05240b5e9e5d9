"""Unit tests for autocomplete suggestions."""

import pytest

from site_search.domain.errors import LanguageModelError
from site_search.domain.search import SearchResult
from site_search.services.response_cache import ExpiringCache, query_cache_key
from site_search.services.suggestion_service import SuggestionService, merge_suggestions
from tests.fixtures.fakes import FakeLanguageModel, FakeSearchRepository, make_doc


@pytest.fixture
def cache(clock):
    return ExpiringCache("suggestions", ttl_seconds=900, clock=clock)


class TestMergeSuggestions:
    def test_phrase_maps_to_page_whose_title_contains_it(self):
        matches = [SearchResult(id="p1", title="Planisware PPM implementation guide", url="https://e.com/p1")]

        merged = merge_suggestions(["ppm implementation"], matches, limit=6)

        assert [suggestion.id for suggestion in merged] == ["p1"]
        assert merged[0].url == "https://e.com/p1"

    def test_unmatched_phrase_becomes_synthetic_entry(self):
        merged = merge_suggestions(["resource planning", "edc"], [], limit=6)

        assert [suggestion.id for suggestion in merged] == ["ai-suggestion-0", "ai-suggestion-1"]
        assert merged[0].title == "resource planning"

    def test_leftover_matches_follow_and_are_deduplicated(self):
        matches = [
            SearchResult(id="p1", title="PPM guide"),
            SearchResult(id="p2", title="EDC platforms"),
        ]

        merged = merge_suggestions(["ppm guide", "PPM GUIDE"], matches, limit=6)

        assert [suggestion.id for suggestion in merged] == ["p1", "p2"]

    def test_limit_is_applied_last(self):
        merged = merge_suggestions([f"phrase {index}" for index in range(10)], [], limit=6)

        assert len(merged) == 6


@pytest.mark.asyncio
async def test_blank_query_returns_nothing(cache):
    llm = FakeLanguageModel({"suggestions": {"suggestions": ["x"]}})
    service = SuggestionService(llm, cache, FakeSearchRepository())

    assert await service.suggest("  ") == []
    assert llm.calls == []


@pytest.mark.asyncio
async def test_combines_model_phrases_with_index_matches(cache):
    repository = FakeSearchRepository(
        [
            make_doc("ppm-guide", "Planisware PPM implementation guide"),
            make_doc("ppm-case", "PPM case study", "case-studies"),
        ]
    )
    llm = FakeLanguageModel({"suggestions": {"suggestions": ["PPM implementation", "PPM consulting"]}})
    service = SuggestionService(llm, cache, repository, limit=6)

    suggestions = await service.suggest("ppm")

    assert [suggestion.id for suggestion in suggestions] == ["ppm-guide", "ai-suggestion-1", "ppm-case"]
    assert repository.search_calls[0]["size"] == 5
    call = llm.calls_for("suggestions")[0]
    assert call["temperature"] == 0.5
    assert "Planisware PPM implementation guide" in call["messages"][1]["content"]


@pytest.mark.asyncio
async def test_model_phrases_are_cached_per_normalized_query(cache):
    llm = FakeLanguageModel({"suggestions": {"suggestions": ["ppm tools"]}})
    service = SuggestionService(llm, cache, FakeSearchRepository())

    await service.suggest("PPM")
    await service.suggest(" ppm ")

    assert len(llm.calls_for("suggestions")) == 1
    assert cache.get(query_cache_key("ppm")) == ["ppm tools"]


@pytest.mark.asyncio
async def test_model_failure_is_not_cached_and_index_matches_survive(cache):
    repository = FakeSearchRepository([make_doc("edc-blog", "Choosing an EDC platform")])
    llm = FakeLanguageModel({"suggestions": LanguageModelError("suggestions timed out")})
    service = SuggestionService(llm, cache, repository)

    suggestions = await service.suggest("edc")

    assert [suggestion.id for suggestion in suggestions] == ["edc-blog"]
    assert cache.size == 0


@pytest.mark.asyncio
async def test_index_failure_still_returns_model_phrases(cache):
    repository = FakeSearchRepository()
    repository.fail_search = True
    llm = FakeLanguageModel({"suggestions": {"suggestions": ["clinical data"]}})
    service = SuggestionService(llm, cache, repository)

    suggestions = await service.suggest("clin")

    assert [suggestion.title for suggestion in suggestions] == ["clinical data"]
