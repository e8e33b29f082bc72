"""Auto-analysis configuration.

All settings can be overridden via ``ANALYSIS_*`` environment variables.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnalysisConfig(BaseSettings):
    """Endpoints and batching for sending fetched articles to analysis."""

    model_config = SettingsConfigDict(
        env_prefix="ANALYSIS_",
        case_sensitive=False,
        extra="ignore",
    )

    analyze_url: str | None = Field(
        default=None,
        description="Endpoint that scores one article (auto-analysis is a no-op when unset)",
    )
    notify_url: str | None = Field(
        default=None,
        description="Endpoint that forwards an analyzed item by its news id",
    )
    auth_token: str | None = Field(
        default=None,
        description="Bearer token sent to both endpoints",
    )

    batch_size: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Articles analyzed concurrently per batch",
    )
    score_threshold: float = Field(
        default=5.0,
        ge=0.0,
        description="Minimum relevance score for an article to be forwarded",
    )
    batch_delay_seconds: float = Field(
        default=0.3,
        ge=0.0,
        description="Pause between analysis batches",
    )
    notify_delay_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Pause between forwarded items",
    )
    request_timeout_seconds: float = Field(
        default=60.0,
        ge=1.0,
        description="Timeout for one analysis or notify request",
    )

    max_remembered_urls: int = Field(
        default=500,
        ge=1,
        description="Analyzed URLs kept to avoid re-analysis",
    )
    memory_path: Path = Field(
        default=Path(".news_monitor/analyzed_urls.json"),
        description="File the analyzed URL memory is persisted to",
    )
