from __future__ import annotations

from pydantic import ValidationError
import pytest

from site_search.config import ObservabilityCollectorConfig, Settings


@pytest.mark.unit
def test_defaults_match_pipeline_budgets(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("EXTERNAL_TIMEOUT_SECONDS")
    settings = Settings()

    assert settings.external_timeout_seconds == 8.0
    assert settings.understanding_cache_ttl_seconds == 1800
    assert settings.suggestions_cache_ttl_seconds == 900
    assert settings.overview_cache_ttl_seconds == 3600
    assert settings.ranking_cache_ttl_seconds == 1800
    assert settings.ranking_max_candidates == 20
    assert settings.default_page_size == 10
    assert settings.max_page_size == 50
    assert settings.mask_error_details is True


@pytest.mark.unit
def test_environment_overrides_and_nested_observability(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("INDEX_NAME", "catalogue")
    monkeypatch.setenv("RANKING_MAX_CANDIDATES", "12")
    monkeypatch.setenv("OBSERVABILITY__ENABLED", "true")
    monkeypatch.setenv("OBSERVABILITY__OTLP_PROTOCOL", "http")

    settings = Settings()

    assert settings.index_name == "catalogue"
    assert settings.ranking_max_candidates == 12
    assert settings.observability.enabled is True
    assert settings.observability.otlp_protocol == "http"


@pytest.mark.unit
def test_default_page_size_must_fit_max() -> None:
    with pytest.raises(ValidationError, match="DEFAULT_PAGE_SIZE"):
        Settings(default_page_size=60, max_page_size=50)


@pytest.mark.unit
def test_max_page_size_must_fit_candidate_window() -> None:
    with pytest.raises(ValidationError, match="MAX_CANDIDATE_WINDOW"):
        Settings(max_page_size=80, max_candidate_window=60)


@pytest.mark.unit
@pytest.mark.parametrize("field", ["external_timeout_seconds", "ranking_max_candidates", "understanding_cache_ttl_seconds"])
def test_non_positive_budgets_are_rejected(field: str) -> None:
    with pytest.raises(ValidationError):
        Settings(**{field: 0})


@pytest.mark.unit
def test_llm_credentials_helper() -> None:
    assert Settings(llm_api_key="").has_llm_credentials() is False
    assert Settings(llm_api_key="   ").has_llm_credentials() is False
    assert Settings(llm_api_key="gsk-123").has_llm_credentials() is True


@pytest.mark.unit
def test_search_log_api_key_is_unquoted() -> None:
    assert Settings(search_log_api_key=' "token-1" ').get_search_log_api_key() == "token-1"
    assert Settings(search_log_api_key="'token-2'").get_search_log_api_key() == "token-2"


@pytest.mark.unit
def test_index_auth_requires_both_parts() -> None:
    assert Settings().get_index_auth() is None
    assert Settings(index_username="elastic").get_index_auth() is None
    assert Settings(index_username="elastic", index_password="pw").get_index_auth() == ("elastic", "pw")


@pytest.mark.unit
def test_observability_config_forbids_unknown_keys() -> None:
    with pytest.raises(ValidationError):
        ObservabilityCollectorConfig(unknown=True)

    with pytest.raises(ValidationError):
        ObservabilityCollectorConfig(otlp_protocol="udp")


@pytest.mark.unit
@pytest.mark.parametrize(
    ("protocol", "endpoint", "signal", "expected"),
    [
        ("http", "http://collector:4318/v1/traces", "logs", "http://collector:4318/v1/logs"),
        ("http", "http://collector:4318/v1/traces", "traces", "http://collector:4318/v1/traces"),
        ("http", "http://collector:4318", "metrics", "http://collector:4318"),
        ("grpc", "http://collector:4317/v1/traces", "metrics", "http://collector:4317/v1/traces"),
    ],
)
def test_signal_endpoint(protocol: str, endpoint: str, signal: str, expected: str) -> None:
    config = ObservabilityCollectorConfig(otlp_protocol=protocol, collector_endpoint=endpoint)

    assert config.signal_endpoint(signal) == expected
