"""Tests for hostname-based history attribution."""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from news_monitor.analytics.reconciler import (
    compute_stats,
    extract_hostname,
    shared_hostnames,
    source_hostnames,
)
from news_monitor.analytics.schemas import HistoryRecord


def _record(n: int, url: str, published: bool = False, hours_ago: int = 0) -> HistoryRecord:
    return HistoryRecord(
        record_id=str(n),
        origin_url=url,
        is_published=published,
        created_at=datetime(2025, 3, 1, 12, tzinfo=timezone.utc) - timedelta(hours=hours_ago),
    )


class TestExtractHostname:
    @pytest.mark.parametrize("url,expected", [
        ("https://www.Digi.no/rss", "digi.no"),
        ("https://e24.no/rss", "e24.no"),
        ("http://hnrss.org/frontpage?points=50", "hnrss.org"),
        ("not a url", None),
        ("", None),
        (None, None),
    ])
    def test_hostnames(self, url, expected):
        assert extract_hostname(url) == expected

    def test_source_hostnames_feed_first(self, make_source):
        source = make_source(
            "s", rss_url="https://rss.kode24.no/", url="https://kode24.no",
        )
        assert source_hostnames(source) == ["rss.kode24.no", "kode24.no"]

    def test_source_hostnames_deduplicated(self, make_source):
        source = make_source("s", rss_url="https://e24.no/rss", url="https://www.e24.no")
        assert source_hostnames(source) == ["e24.no"]


class TestComputeStats:
    def test_matches_only_same_host(self, make_source):
        source = make_source("ex", rss_url="https://example.com/feed")
        records = [_record(1, "https://example.com/a"), _record(2, "https://other.com/b")]

        stats = compute_stats([source], records)

        assert stats["ex"].total == 1
        assert stats["ex"].last_item_at == records[0].created_at

    def test_every_source_reported(self, make_source):
        sources = [
            make_source("a", rss_url="https://a.example/feed", sort_order=0),
            make_source("b", rss_url="https://b.example/feed", sort_order=1),
        ]

        stats = compute_stats(sources, [])

        assert set(stats) == {"a", "b"}
        assert stats["b"].total == 0
        assert stats["b"].last_item_at is None
        assert stats["b"].age() is None

    def test_counts_published_and_newest(self, make_source):
        source = make_source("e24", rss_url="https://e24.no/rss")
        records = [
            _record(1, "https://e24.no/a", published=True, hours_ago=5),
            _record(2, "https://e24.no/b", published=False, hours_ago=1),
            _record(3, "https://www.e24.no/c", published=True, hours_ago=3),
        ]

        stats = compute_stats([source], records)["e24"]

        assert stats.total == 3
        assert stats.published == 2
        assert stats.last_item_at == records[1].created_at
        now = records[1].created_at + timedelta(minutes=30)
        assert stats.age(now) == timedelta(minutes=30)

    def test_website_hostname_also_matches(self, make_source):
        source = make_source("k", rss_url="https://rss.kode24.no/", url="https://kode24.no")

        stats = compute_stats([source], [_record(1, "https://www.kode24.no/artikkel/1")])

        assert stats["k"].total == 1

    def test_first_source_wins_shared_hostname(self, make_source, caplog):
        first = make_source("tc", rss_url="https://www.techcrunch.com/feed/", sort_order=0)
        second = make_source(
            "tc-startups", rss_url="https://www.techcrunch.com/category/startups/feed/", sort_order=1,
        )

        with caplog.at_level(logging.WARNING, logger="news_monitor.analytics.reconciler"):
            stats = compute_stats(
                [first, second], [_record(1, "https://techcrunch.com/2025/03/01/story")],
            )

        assert stats["tc"].total == 1
        assert stats["tc-startups"].total == 0
        assert "share hostnames" in caplog.text

    def test_unparseable_origin_falls_back_to_raw_url(self, make_source):
        source = make_source("ex", rss_url="https://example.com/feed")

        stats = compute_stats([source], [_record(1, "example.com/no-scheme")])

        assert stats["ex"].total == 1

    def test_shared_hostnames(self, make_source):
        sources = [
            make_source("a", rss_url="https://x.example/feed"),
            make_source("b", rss_url="https://x.example/other"),
            make_source("c", rss_url="https://y.example/feed"),
        ]

        assert shared_hostnames(sources) == {"x.example": ["a", "b"]}
