"""Chat Gateway configuration."""

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Default upstream endpoints
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com"
DEFAULT_ANTHROPIC_BASE_URL = "https://api.anthropic.com"
DEFAULT_BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"

DEFAULT_PORT = 3004


class GatewaySettings(BaseSettings):
    """Chat Gateway settings.

    All settings can be configured via environment variables with CHAT_GATEWAY_ prefix.
    Example: CHAT_GATEWAY_PORT=3004

    Credentials also accept the conventional unprefixed variable names
    (OPENAI_API_KEY, ANTHROPIC_API_KEY, BRAVE_SEARCH_API_KEY).
    """

    model_config = SettingsConfigDict(
        env_prefix="CHAT_GATEWAY_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    # Server binding (standalone mode only)
    host: str = Field(default="127.0.0.1", description="Host to bind the server to")
    port: int = Field(default=DEFAULT_PORT, description="Port to bind the server to")

    # Credentials (never logged)
    openai_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("CHAT_GATEWAY_OPENAI_API_KEY", "OPENAI_API_KEY"),
        description="API key for the completions-style provider",
    )
    anthropic_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("CHAT_GATEWAY_ANTHROPIC_API_KEY", "ANTHROPIC_API_KEY"),
        description="API key for the messages-style provider",
    )
    brave_search_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "CHAT_GATEWAY_BRAVE_SEARCH_API_KEY", "BRAVE_SEARCH_API_KEY"
        ),
        description="API key for the web search tool",
    )

    # Upstream endpoints
    openai_base_url: str = Field(default=DEFAULT_OPENAI_BASE_URL)
    anthropic_base_url: str = Field(default=DEFAULT_ANTHROPIC_BASE_URL)
    anthropic_version: str = Field(default="2023-06-01")
    brave_search_url: str = Field(default=DEFAULT_BRAVE_SEARCH_URL)

    # Timeouts (seconds)
    provider_timeout_seconds: float = Field(
        default=60.0,
        description="Timeout for a single provider HTTP call",
    )
    request_timeout_seconds: float = Field(
        default=120.0,
        description="Overall deadline for one gateway call, tool round-trips included",
    )
    fetch_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for a single web page fetch",
    )

    # Web search tool
    search_max_results: int = Field(default=3, ge=1, le=10)
    fetch_max_chars: int = Field(default=3000, ge=100)
    fetch_concurrency: int = Field(default=3, ge=1, le=10)

    # Tool loop
    max_tool_rounds: int = Field(
        default=1,
        ge=0,
        le=5,
        description="Extra model round-trips allowed for tool calls per request",
    )

    # Generation defaults
    default_temperature: float = Field(default=0.7, ge=0.0, le=2.0)

    # Transport retry policy (idempotent methods only, POST is never retried)
    max_retries: int = Field(default=3, ge=0)
    backoff_factor: float = Field(default=0.5, ge=0.0)

    # Observability
    logfire_enabled: bool = Field(
        default=True,
        description="Enable LogFire instrumentation",
    )

    # Environment
    environment: str = Field(
        default="development",
        description="Environment (development/production)",
    )


@lru_cache
def get_settings() -> GatewaySettings:
    """Get cached settings instance."""
    return GatewaySettings()
