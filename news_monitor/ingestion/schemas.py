"""
Article schema produced by the remote feed fetch operation.

Articles are ephemeral: they live in the fetch state of their source
and are replaced wholesale on every successful fetch.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class Article(BaseModel):
    """A normalized feed item."""

    id: str = Field(..., description="Stable identifier derived from the item guid or link")
    title: str
    description: str = ""
    url: str
    published_at: datetime = Field(default_factory=_utc_now)
    image_url: str | None = Field(default=None, description="First image found on the item")
    images: list[str] = Field(default_factory=list, description="Every image URL found on the item")
    source_name: str | None = Field(default=None, description="Display name of the originating source")
