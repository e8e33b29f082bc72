"""Configuration for fetching, validation and viewer defaults."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MonitorConfig(BaseSettings):
    """Settings for the fetch orchestrator, validator and viewer defaults.

    All settings can be overridden via environment variables with the
    ``MONITOR_`` prefix (e.g. ``MONITOR_FETCH_TIMEOUT_SECONDS=15``).
    """

    model_config = SettingsConfigDict(
        env_prefix="MONITOR_",
        case_sensitive=False,
        extra="ignore",
    )

    fetch_timeout_seconds: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="Upper bound on a whole fetch of one source, retries included",
    )
    preview_limit: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Articles returned by the source validator preview",
    )

    # ── Viewer defaults ─────────────────────────────────────
    default_refresh_interval: int = Field(
        default=300,
        ge=10,
        description="Refresh interval used before settings are persisted",
    )
    default_articles_per_source: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Articles per source used before settings are persisted",
    )
    default_auto_refresh: bool = Field(
        default=True,
        description="Auto-refresh flag used before settings are persisted",
    )
