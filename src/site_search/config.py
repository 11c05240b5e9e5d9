"""Centralized configuration for the site search pipeline using Pydantic Settings."""

from typing import Annotated, Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ObservabilityCollectorConfig(BaseModel):
    """Configuration for OTLP trace, metric and log export."""

    model_config = {"extra": "forbid"}

    enabled: Annotated[
        bool,
        Field(
            description="Enable OTLP export to an external collector",
        ),
    ] = False

    otlp_protocol: Annotated[
        Literal["http", "grpc"],
        Field(
            description="OTLP transport protocol",
        ),
    ] = "grpc"

    collector_endpoint: Annotated[
        str,
        Field(
            description="OTLP collector endpoint (HTTP uses /v1/traces)",
            examples=["http://localhost:4317", "http://localhost:4318/v1/traces"],
        ),
    ] = "http://localhost:4317"

    headers: Annotated[
        dict[str, str],
        Field(
            description="Optional headers to include with OTLP requests",
        ),
    ] = Field(default_factory=dict)

    timeout_seconds: Annotated[
        int,
        Field(
            ge=1,
            le=60,
            description="OTLP exporter timeout in seconds",
        ),
    ] = 10

    grpc_insecure: Annotated[
        bool,
        Field(
            description="Allow insecure gRPC (plaintext) connections",
        ),
    ] = True

    resource_attributes: Annotated[
        dict[str, str],
        Field(
            description="Additional OpenTelemetry resource attributes",
        ),
    ] = Field(default_factory=dict)

    def signal_endpoint(self, signal: Literal["traces", "metrics", "logs"]) -> str:
        """Collector endpoint for one OTLP signal.

        gRPC multiplexes every signal on one endpoint. Over HTTP a configured
        ``/v1/traces`` path is swapped for the signal's own path.
        """
        endpoint = self.collector_endpoint
        if self.otlp_protocol == "http" and endpoint.endswith("/v1/traces"):
            return endpoint.removesuffix("/v1/traces") + f"/v1/{signal}"
        return endpoint


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables.

    All environment variables are validated at startup with proper types.
    Nested observability settings use a double underscore, for example
    ``OBSERVABILITY__ENABLED=true``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        env_nested_delimiter="__",
        extra="ignore",  # Ignore extra env vars not defined in model
    )

    # Index engine
    index_url: str = Field(default="http://localhost:9200", description="Base URL of the index engine")
    index_name: str = Field(default="search_items", description="Index holding the catalogued pages")
    index_username: str = Field(default="", description="Optional basic-auth user for the index engine")
    index_password: str = Field(default="", description="Optional basic-auth password for the index engine")
    category_field: str = Field(default="category", description="Keyword field holding the page category")
    category_aggregation_size: int = Field(default=20, ge=1, description="Maximum category buckets returned")

    # Language model (OpenAI-compatible chat completions)
    llm_base_url: str = Field(default="https://api.groq.com/openai/v1", description="Chat completions base URL")
    llm_api_key: str = Field(default="", description="API key for the language model service")
    llm_model: str = Field(default="llama-3.3-70b-versatile", description="Model used for query enrichment")
    domain_context: str = Field(
        default="",
        description="Override for the fixed domain-context block sent with every prompt",
    )

    # External call budget
    external_timeout_seconds: float = Field(
        default=8.0, gt=0, le=60, description="Timeout applied to every external call"
    )

    # Cache classes (seconds)
    understanding_cache_ttl_seconds: int = Field(default=30 * 60, ge=1, description="Query understanding TTL")
    suggestions_cache_ttl_seconds: int = Field(default=15 * 60, ge=1, description="Suggestion list TTL")
    overview_cache_ttl_seconds: int = Field(default=60 * 60, ge=1, description="Overview summary TTL")
    ranking_cache_ttl_seconds: int = Field(default=30 * 60, ge=1, description="Ranking outcome TTL")
    cache_sweep_interval_seconds: float = Field(
        default=10 * 60, gt=0, description="Interval between background sweeps of expired cache entries"
    )

    # Pipeline tuning
    ranking_max_candidates: int = Field(
        default=20, ge=1, description="Largest candidate list sent to the ranking service"
    )
    max_candidate_window: int = Field(default=100, ge=1, description="Upper bound on candidates fetched per page")
    default_page_size: int = Field(default=10, ge=1, description="Page size used when the caller sends none")
    max_page_size: int = Field(default=50, ge=1, description="Largest page size accepted from callers")
    overview_snippet_chars: int = Field(default=200, ge=20, description="Snippet length used in overview prompts")
    overview_max_results: int = Field(default=5, ge=1, description="Results summarized by the overview")
    suggestion_limit: int = Field(default=6, ge=1, description="Maximum autocomplete suggestions returned")

    # Search log sink
    search_log_url: str = Field(default="", description="Content store base URL for search-log records")
    search_log_api_key: str = Field(default="", description="Bearer token for the search-log sink")

    # Server settings
    host: str = Field(default="127.0.0.1", description="HTTP server host")
    port: int = Field(default=3001, ge=1, le=65535, description="HTTP server port")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")

    # Security
    mask_error_details: bool = Field(
        default=True, description="Mask internal error details in responses"
    )

    observability: ObservabilityCollectorConfig = Field(default_factory=ObservabilityCollectorConfig)

    @model_validator(mode="after")
    def _check_page_bounds(self) -> "Settings":
        if self.default_page_size > self.max_page_size:
            raise ValueError(
                f"DEFAULT_PAGE_SIZE ({self.default_page_size}) must not exceed MAX_PAGE_SIZE ({self.max_page_size})"
            )
        if self.max_page_size > self.max_candidate_window:
            raise ValueError("MAX_PAGE_SIZE must not exceed MAX_CANDIDATE_WINDOW")
        return self

    def has_llm_credentials(self) -> bool:
        """Check whether the language model service can be called at all."""
        return bool(self.llm_api_key.strip())

    def get_search_log_api_key(self) -> str:
        """Return the search-log token with surrounding quotes and whitespace removed."""
        return self.search_log_api_key.strip().strip("\"'").strip()

    def get_index_auth(self) -> tuple[str, str] | None:
        """Return basic-auth credentials for the index engine when both parts are set."""
        if self.index_username and self.index_password:
            return self.index_username, self.index_password
        return None
