"""Prompt templates for the language-model enrichment stages."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from site_search.adapters.language_model import Message
    from site_search.domain.search import SearchResult


DEFAULT_DOMAIN_CONTEXT = """
The catalogue covers the website of a pharmaceutical consulting company specializing in:
- Strategic Portfolio Management (SPM)
- Clinical Data Management (CDM)
- Clinical Research Organization (CRO) services
- Electronic Data Capture (EDC)
- Clinical Trial Management Systems (CTMS)
- Business Intelligence and Analytics
- Planisware (PPM) implementation
- Resource Management
- Project Management

Common abbreviations:
- SPM: Strategic Portfolio Management
- CDM: Clinical Data Management
- CRO: Clinical Research Organization
- EDC: Electronic Data Capture
- CTMS: Clinical Trial Management System
- PPM: Planisware Portfolio Management
- BI: Business Intelligence
- IT: Information Technology
- AI/ML: Artificial Intelligence/Machine Learning
- R&D: Research and Development
- PMO: Project Management Office
- HR: Human Resources

Common synonyms:
- Services = Offerings, Solutions, What we provide
- Careers = Jobs, Positions, Openings, Hiring
- Technologies = Tech, Tools, Platforms
- Partners = Partnerships, Alliances, Collaborations
- Solutions = Products, Services
- People = Our Experts, Team, Employees
- About Us = About, Company Information
""".strip()

_UNDERSTANDING_INSTRUCTIONS = """
You are the query understanding stage of a website search engine.

{context}

Extract from the user's search query:
1. intent: one of "search", "category-keyword", "question", "category-only"
2. category: ONLY when the user explicitly names a category (e.g. "blogs about PPM",
   "case studies", "services related to SPM"); otherwise null
3. keywords: the main search terms
4. correctedQuery: the query with spelling errors fixed, or null
5. expandedTerms: full forms of any abbreviations
6. synonyms: synonyms of the search terms
7. didYouMean: a suggested correction, or null

Return a JSON object with exactly this structure:
{{
  "intent": "search|category-keyword|question|category-only",
  "category": "category-name or null",
  "keywords": ["keyword1", "keyword2"],
  "correctedQuery": "corrected query or null",
  "expandedTerms": ["full term for abbreviation"],
  "synonyms": ["synonym1", "synonym2"],
  "didYouMean": "suggested correction or null"
}}

Rules:
- Keep category null unless a category word (blogs, case studies, services, technologies, ...) appears.
- A bare keyword such as "PPM" or "SPM" is intent "search" with category null.
- Only set category when intent is "category-keyword" or "category-only".
""".strip()

_RANKING_INSTRUCTIONS = """
You rank website search results by relevance.

{context}

Return a JSON object listing every result index (0-based) exactly once, most relevant first:
{{"rankedIndices": [0, 2, 1, 3]}}

Consider the query intent and keywords, title relevance, content relevance and category match.
""".strip()

_OVERVIEW_INSTRUCTIONS = """
You write the short overview shown above website search results.

{context}

Write 2-3 sentences that address what the user is looking for, summarize what the
results offer on the topic and stay accurate to the results given. Plain text only.
""".strip()

_SUGGESTION_INSTRUCTIONS = """
You generate autocomplete suggestions for a website search box.

{context}

Generate 4-6 suggestions that complete the user's partial query. Each suggestion is
2-5 words, relevant to the catalogue, and may expand common abbreviations.

Return a JSON object: {{"suggestions": ["suggestion1", "suggestion2"]}}
""".strip()


def truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit]


def build_understanding_messages(query: str, context: str) -> list[Message]:
    return [
        {"role": "system", "content": _UNDERSTANDING_INSTRUCTIONS.format(context=context)},
        {"role": "user", "content": f'Analyze this search query: "{query}"'},
    ]


def build_ranking_messages(
    query: str,
    intent: str,
    results: Sequence[SearchResult],
    context: str,
    snippet_chars: int = 150,
) -> list[Message]:
    listing = "\n\n".join(
        f"{index}. Title: {result.title}\n   URL: {result.url}\n"
        f"   Description: {truncate(result.snippet_source, snippet_chars)}"
        for index, result in enumerate(results)
    )
    return [
        {"role": "system", "content": _RANKING_INSTRUCTIONS.format(context=context)},
        {
            "role": "user",
            "content": f'Query: "{query}"\nIntent: {intent}\n\nResults:\n{listing}\n\nRank these results by relevance.',
        },
    ]


def build_overview_messages(
    query: str,
    intent: str,
    results: Sequence[SearchResult],
    context: str,
    snippet_chars: int = 200,
) -> list[Message]:
    listing = "\n\n".join(
        f"{position}. {result.title}\n   {truncate(result.snippet_source, snippet_chars)}"
        for position, result in enumerate(results, start=1)
    )
    return [
        {"role": "system", "content": _OVERVIEW_INSTRUCTIONS.format(context=context)},
        {
            "role": "user",
            "content": (
                f'User query: "{query}"\nIntent: {intent}\n\nTop search results:\n{listing}\n\n'
                "Generate an overview for this search."
            ),
        },
    ]


def build_suggestion_messages(query: str, titles: Sequence[str], context: str) -> list[Message]:
    prompt = f'Generate autocomplete suggestions for: "{query}"'
    if titles:
        listing = "\n".join(f"- {title}" for title in titles)
        prompt = f"{prompt}\n\nExisting results context:\n{listing}"
    return [
        {"role": "system", "content": _SUGGESTION_INSTRUCTIONS.format(context=context)},
        {"role": "user", "content": prompt},
    ]
