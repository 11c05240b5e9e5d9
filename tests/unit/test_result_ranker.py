"""Unit tests for the result ranker."""

import pytest

from site_search.domain.errors import LanguageModelError
from site_search.domain.search import QueryIntent, SearchResult
from site_search.services.response_cache import ExpiringCache, results_cache_key
from site_search.services.result_ranker import ResultRanker, validate_permutation
from tests.fixtures.fakes import FakeLanguageModel


def _results(count: int, prefix: str = "doc") -> list[SearchResult]:
    return [
        SearchResult(id=f"{prefix}-{index}", url=f"https://example.com/{prefix}/{index}", title=f"Title {index}")
        for index in range(count)
    ]


@pytest.fixture
def cache(clock):
    return ExpiringCache("ranking", ttl_seconds=1800, clock=clock)


@pytest.fixture
def intent():
    return QueryIntent(keywords=["ppm"])


class TestValidatePermutation:
    def test_accepts_exact_permutation(self):
        assert validate_permutation([2, 0, 1], 3) == [2, 0, 1]

    @pytest.mark.parametrize(
        "indices",
        [
            [0, 1],  # too short
            [0, 1, 2, 3],  # too long
            [0, 0, 1],  # duplicate
            [0, 1, 3],  # out of range
            [0, 1, -1],  # negative
            [0, 1, 2.0],  # float
            [True, 0, 2],  # bool is not an index
            "012",
            None,
            {"0": 1},
        ],
    )
    def test_rejects_everything_else(self, indices):
        assert validate_permutation(indices, 3) is None

    def test_empty_permutation_for_empty_list(self):
        assert validate_permutation([], 0) == []


@pytest.mark.asyncio
async def test_applies_model_order(cache, intent):
    results = _results(3)
    llm = FakeLanguageModel({"ranking": {"rankedIndices": [2, 0, 1]}})
    ranker = ResultRanker(llm, cache)

    ranked = await ranker.rank("ppm", results, intent)

    assert [result.id for result in ranked] == ["doc-2", "doc-0", "doc-1"]
    call = llm.calls_for("ranking")[0]
    assert call["temperature"] == 0.2
    assert call["json_mode"] is True
    assert "https://example.com/doc/1" in call["messages"][1]["content"]


@pytest.mark.asyncio
async def test_empty_list_skips_cache_and_service(cache, intent):
    llm = FakeLanguageModel({"ranking": {"rankedIndices": []}})
    ranker = ResultRanker(llm, cache)

    assert await ranker.rank("ppm", [], intent) == []
    assert llm.calls == []
    assert cache.size == 0


@pytest.mark.asyncio
async def test_cached_permutation_is_reapplied(cache, intent):
    results = _results(3)
    llm = FakeLanguageModel({"ranking": {"rankedIndices": [1, 2, 0]}})
    ranker = ResultRanker(llm, cache)

    first = await ranker.rank("ppm", results, intent)
    second = await ranker.rank("PPM ", results, intent)

    assert first == second
    assert len(llm.calls_for("ranking")) == 1


@pytest.mark.asyncio
async def test_different_candidate_set_misses_cache(cache, intent):
    llm = FakeLanguageModel({"ranking": {"rankedIndices": [1, 0]}})
    ranker = ResultRanker(llm, cache)

    await ranker.rank("ppm", _results(2, "a"), intent)
    await ranker.rank("ppm", _results(2, "b"), intent)

    assert len(llm.calls_for("ranking")) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "reply",
    [
        {"rankedIndices": [0, 0, 1]},
        {"rankedIndices": [0, 1]},
        {"rankedIndices": [0, 1, 5]},
        {"order": [2, 1, 0]},
        LanguageModelError("ranking timed out"),
        "garbage",
    ],
)
async def test_invalid_or_failed_ranking_keeps_index_order_and_is_cached(cache, intent, reply):
    results = _results(3)
    llm = FakeLanguageModel({"ranking": reply})
    ranker = ResultRanker(llm, cache)

    ranked = await ranker.rank("ppm", results, intent)

    assert ranked == results
    assert cache.get(results_cache_key("ppm", results)) == [0, 1, 2]

    await ranker.rank("ppm", results, intent)
    assert len(llm.calls_for("ranking")) == 1


@pytest.mark.asyncio
async def test_oversized_candidate_list_is_not_sent(cache, intent):
    results = _results(21)
    llm = FakeLanguageModel({"ranking": {"rankedIndices": list(reversed(range(21)))}})
    ranker = ResultRanker(llm, cache, max_candidates=20)

    ranked = await ranker.rank("ppm", results, intent)

    assert ranked == results
    assert llm.calls == []
    assert cache.get(results_cache_key("ppm", results)) == list(range(21))


@pytest.mark.asyncio
async def test_output_is_always_a_permutation(cache, intent):
    results = _results(5)
    llm = FakeLanguageModel({"ranking": {"rankedIndices": [4, 3, 2, 1, 0]}})
    ranker = ResultRanker(llm, cache)

    ranked = await ranker.rank("ppm", results, intent)

    assert len(ranked) == len(results)
    assert sorted(result.id for result in ranked) == sorted(result.id for result in results)
