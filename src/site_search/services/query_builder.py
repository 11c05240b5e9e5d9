"""Translate a :class:`QueryIntent` into an index-engine bool query.

Every search term fans out into up to four tiers of clauses across the four
text fields. Tiers go from exact phrase to loose substring match, each weaker
than the one before it, and within a tier the title always outweighs the page
description, which outweighs the body content, which outweighs the short
description.
"""

from __future__ import annotations

import re

from site_search.domain.search import QueryIntent, StructuredQuery


# Name of the terms aggregation in index requests and responses
CATEGORY_AGGREGATION_NAME = "categories"

# Terms shorter than this only get the exact tiers
MIN_FUZZY_TERM_LENGTH = 3

PREFIX_MAX_EXPANSIONS = 50

_WILDCARD_SPECIAL = re.compile(r"([\\*?])")

# field -> boost per tier: phrase, all-words, phrase-prefix, substring
FIELD_BOOSTS: dict[str, tuple[float, float, float, float]] = {
    "title": (10.0, 5.0, 4.0, 1.0),
    "page_description": (8.0, 4.0, 3.0, 0.8),
    "content": (7.0, 3.0, 2.0, 0.6),
    "description": (6.0, 2.0, 1.5, 0.4),
}


def resolve_target_category(intent: QueryIntent, category_filter: str | None = None) -> str | None:
    """Pick the category that must constrain a search.

    An explicit caller filter wins. Otherwise the inferred category is used only
    when the intent says the user asked for a category.
    """
    if category_filter and category_filter.strip():
        return category_filter.strip()
    return intent.authoritative_category


def wildcard_pattern(term: str) -> str:
    """Substring pattern for ``term`` with the user's own ``*``, ``?`` and ``\\`` escaped."""
    escaped = _WILDCARD_SPECIAL.sub(r"\\\1", term.lower())
    return f"*{escaped.replace(' ', '*')}*"


def _term_clauses(term: str) -> list[StructuredQuery]:
    clauses: list[StructuredQuery] = []
    for field, (phrase, all_words, _, _) in FIELD_BOOSTS.items():
        clauses.append({"match_phrase": {field: {"query": term, "boost": phrase}}})
        clauses.append({"match": {field: {"query": term, "operator": "and", "boost": all_words}}})

    if len(term) < MIN_FUZZY_TERM_LENGTH:
        return clauses

    pattern = wildcard_pattern(term)
    for field, (_, _, prefix, substring) in FIELD_BOOSTS.items():
        clauses.append(
            {
                "match_phrase_prefix": {
                    field: {"query": term, "max_expansions": PREFIX_MAX_EXPANSIONS, "boost": prefix}
                }
            }
        )
        clauses.append(
            {"wildcard": {field: {"value": pattern, "case_insensitive": True, "boost": substring}}}
        )
    return clauses


def build_index_query(
    intent: QueryIntent,
    category_filter: str | None = None,
    *,
    category_field: str = "category",
) -> StructuredQuery:
    """Build the bool query for ``intent``.

    Args:
        intent: Structured understanding of the raw query
        category_filter: Caller-supplied category, overriding the inferred one
        category_field: Index field holding the page category

    Returns:
        A ``{"bool": {...}}`` query. Without any usable term it matches all
        documents (still subject to the category constraint).
    """
    must: list[StructuredQuery] = []
    target = resolve_target_category(intent, category_filter)
    if target:
        must.append({"term": {category_field: target}})

    should: list[StructuredQuery] = []
    seen: set[str] = set()
    for raw_term in intent.search_terms():
        term = raw_term.strip()
        if not term or term.lower() in seen:
            continue
        seen.add(term.lower())
        should.extend(_term_clauses(term))

    if not should:
        return {"bool": {"must": must, "should": [{"match_all": {}}], "minimum_should_match": 0}}
    return {"bool": {"must": must, "should": should, "minimum_should_match": 1}}


def build_category_aggregation(field: str = "category", size: int = 20) -> StructuredQuery:
    """Terms aggregation counting matches per category."""
    return {CATEGORY_AGGREGATION_NAME: {"terms": {"field": field, "size": size}}}
