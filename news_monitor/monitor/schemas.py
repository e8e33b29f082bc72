"""Schemas for per-source fetch state and viewer settings."""

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime

from news_monitor.errors import ValidationError
from news_monitor.ingestion.schemas import Article


@dataclass
class FetchState:
    """Outcome of the most recent fetch attempt for one source.

    Attributes:
        loading: A fetch is in flight.
        error: Message from the last failed fetch, None after a success.
        articles: Articles from the last successful fetch.
        last_fetched: When the last successful fetch completed.
    """

    loading: bool = False
    error: str | None = None
    articles: list[Article] = field(default_factory=list)
    last_fetched: datetime | None = None

    @property
    def status(self) -> str:
        """Lifecycle label: idle, loading, ready or failed."""
        if self.loading:
            return "loading"
        if self.error is not None:
            return "failed"
        if self.last_fetched is not None:
            return "ready"
        return "idle"


# Patchable ViewerSettings fields
SETTINGS_FIELDS: frozenset[str] = frozenset({
    "refresh_interval",
    "articles_per_source",
    "auto_refresh",
    "auto_analyze",
    "expanded_sources",
})

MIN_REFRESH_INTERVAL = 10
MAX_ARTICLES_PER_SOURCE = 50


@dataclass
class ViewerSettings:
    """Per-owner monitor preferences, mirrored to the settings table.

    Attributes:
        owner_id: Key of the settings row.
        refresh_interval: Seconds between auto-refresh ticks.
        articles_per_source: Cap on articles kept per source.
        auto_refresh: Whether the scheduler runs.
        auto_analyze: Whether new articles are sent for analysis.
        expanded_sources: Source ids expanded in the UI.
    """

    owner_id: str = "default"
    refresh_interval: int = 300
    articles_per_source: int = 5
    auto_refresh: bool = True
    auto_analyze: bool = False
    expanded_sources: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.refresh_interval < MIN_REFRESH_INTERVAL:
            raise ValidationError(
                f"refresh_interval must be at least {MIN_REFRESH_INTERVAL} seconds",
                field="refresh_interval",
            )
        if not (1 <= self.articles_per_source <= MAX_ARTICLES_PER_SOURCE):
            raise ValidationError(
                f"articles_per_source must be between 1 and {MAX_ARTICLES_PER_SOURCE}",
                field="articles_per_source",
            )

    def with_updates(self, **patch) -> "ViewerSettings":
        """Return a copy with the given fields replaced.

        Raises:
            ValidationError: On unknown fields or out-of-range values.
        """
        unknown = set(patch) - SETTINGS_FIELDS
        if unknown:
            raise ValidationError(f"Unknown settings fields: {sorted(unknown)}")
        if "expanded_sources" in patch:
            patch["expanded_sources"] = list(patch["expanded_sources"])
        return dataclasses.replace(self, **patch)
