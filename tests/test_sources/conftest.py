"""Shared fixtures for sources tests."""

from datetime import datetime, timezone

import pytest

from news_monitor.config.tiers import Tier
from news_monitor.sources.schemas import SourceDraft


@pytest.fixture
def sample_draft() -> SourceDraft:
    """A valid user-submitted source."""
    return SourceDraft(
        name="Stripe Blog",
        rss_url="https://stripe.com/blog/feed.rss",
        tier=Tier.GLOBAL_TECH,
        url="https://stripe.com/blog",
    )


@pytest.fixture
def sample_db_row() -> dict:
    """A dict mimicking an asyncpg Record for a source."""
    return {
        "id": "9f0c2a3e-1111-4e8e-9a51-3c1d2b7f0a11",
        "name": "Stripe Blog",
        "url": "https://stripe.com/blog",
        "rss_url": "https://stripe.com/blog/feed.rss",
        "tier": 3,
        "is_active": True,
        "is_default": False,
        "sort_order": 4,
        "created_at": datetime(2025, 1, 1, tzinfo=timezone.utc),
        "updated_at": datetime(2025, 1, 2, tzinfo=timezone.utc),
    }
