"""Configuration for the remote feed client."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class IngestionConfig(BaseSettings):
    """HTTP and cache settings for feed fetching.

    All settings can be overridden via environment variables with the
    ``INGESTION_`` prefix (e.g. ``INGESTION_REQUEST_TIMEOUT_SECONDS=10``).
    """

    model_config = SettingsConfigDict(
        env_prefix="INGESTION_",
        case_sensitive=False,
        extra="ignore",
    )

    request_timeout_seconds: float = Field(
        default=15.0,
        ge=1.0,
        le=120.0,
        description="Timeout for a single HTTP request",
    )
    cache_ttl_seconds: int = Field(
        default=300,
        ge=0,
        description="TTL for parsed feeds in the client cache (0 = no caching)",
    )
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
        description="User-Agent header sent when fetching feeds",
    )
