"""Data models for monitored sources.

Maps 1:1 to the ``news_monitor_sources`` table. Only the relative order
of ``sort_order`` values within a tier is meaningful.
"""

from dataclasses import dataclass
from datetime import datetime
from urllib.parse import urlparse

from news_monitor.config.tiers import Tier, parse_tier
from news_monitor.errors import ValidationError

# Fields a caller may change through SourceRegistry.update()
PATCHABLE_FIELDS: frozenset[str] = frozenset({
    "name",
    "url",
    "rss_url",
    "tier",
    "is_active",
    "sort_order",
})


def is_http_url(value: str) -> bool:
    """Check that a string is an absolute http(s) URL with a host."""
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def coerce_tier(value: Tier | int | str) -> Tier:
    """parse_tier for user input: unknown tiers are a ValidationError."""
    try:
        return parse_tier(value)
    except ValueError as e:
        raise ValidationError(str(e), field="tier") from e


@dataclass
class Source:
    """A configured external content source.

    Attributes:
        id: Opaque identifier assigned at creation.
        name: Display name.
        rss_url: Feed location used for fetching.
        tier: Priority tier.
        url: Optional human-facing website.
        is_active: Whether scheduled and bulk fetches include this source.
        is_default: Seed source, protected from deletion.
        sort_order: Position within the tier.
        created_at: Row creation time.
        updated_at: Last modification time.
    """

    id: str
    name: str
    rss_url: str
    tier: Tier
    url: str | None = None
    is_active: bool = True
    is_default: bool = False
    sort_order: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class SourceDraft:
    """A user-submitted source awaiting creation."""

    name: str
    rss_url: str
    tier: Tier | int = Tier.GLOBAL_TECH
    url: str | None = None
    is_active: bool = True

    def validate(self) -> None:
        """Check the draft is complete and well-formed.

        Raises:
            ValidationError: On a missing name or feed URL, a malformed URL,
                or an unknown tier.
        """
        if not self.name or not self.name.strip():
            raise ValidationError("Source name is required", field="name")
        if not self.rss_url or not self.rss_url.strip():
            raise ValidationError("Feed URL is required", field="rss_url")
        if not is_http_url(self.rss_url.strip()):
            raise ValidationError(
                f"Feed URL must be an http(s) URL: {self.rss_url!r}", field="rss_url"
            )
        if self.url and not is_http_url(self.url.strip()):
            raise ValidationError(
                f"Website URL must be an http(s) URL: {self.url!r}", field="url"
            )
        self.tier = coerce_tier(self.tier)
