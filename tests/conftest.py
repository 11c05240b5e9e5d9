"""Shared test fixtures and configuration."""

import os
from pathlib import Path
import sys

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


# Complete test environment that overrides every config value the pipeline reads
TEST_ENV = {
    # Index engine
    "INDEX_URL": "http://index.test:9200",
    "INDEX_NAME": "search_items",
    "INDEX_USERNAME": "",
    "INDEX_PASSWORD": "",
    # Language model - no key, enrichment falls back unless a fake is injected
    "LLM_BASE_URL": "http://llm.test/openai/v1",
    "LLM_API_KEY": "",
    "LLM_MODEL": "test-model",
    "DOMAIN_CONTEXT": "",
    # Pipeline
    "EXTERNAL_TIMEOUT_SECONDS": "2",
    "DEFAULT_PAGE_SIZE": "10",
    "MAX_PAGE_SIZE": "50",
    "MAX_CANDIDATE_WINDOW": "100",
    "RANKING_MAX_CANDIDATES": "20",
    # Search log disabled
    "SEARCH_LOG_URL": "",
    "SEARCH_LOG_API_KEY": "",
    # Server and logging
    "HOST": "127.0.0.1",
    "PORT": "13001",
    "LOG_LEVEL": "info",
    "LOG_JSON": "false",
    "MASK_ERROR_DETAILS": "true",
    "OBSERVABILITY__ENABLED": "false",
    # Proxy settings - ensure they're cleared for tests
    "http_proxy": "",
    "https_proxy": "",
    "all_proxy": "",
    "no_proxy": "",
}


# Set environment variables immediately when conftest.py is loaded
for key, value in TEST_ENV.items():
    os.environ[key] = value

# Now we can safely import config-dependent modules
from site_search.config import Settings
from tests.fixtures.fakes import FakeLanguageModel, FakeSearchRepository, ManualClock, make_doc


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Reset environment variables to the test defaults before each test."""
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)


@pytest.fixture
def settings():
    """Settings built from the test environment."""
    return Settings()


@pytest.fixture
def fake_llm():
    return FakeLanguageModel()


@pytest.fixture
def fake_repository():
    return FakeSearchRepository(
        [
            make_doc("ppm-guide", "Planisware PPM implementation guide", "blogs"),
            make_doc("spm-case", "Strategic Portfolio Management case study", "case-studies"),
            make_doc("cdm-service", "Clinical Data Management services", "services"),
            make_doc("edc-blog", "Choosing an EDC platform", "blogs"),
        ]
    )


@pytest.fixture
def clock():
    return ManualClock()
