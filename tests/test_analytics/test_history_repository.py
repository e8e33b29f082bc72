"""Tests for HistoryRepository."""

from datetime import datetime, timezone

import pytest

from news_monitor.analytics.repository import HistoryRepository
from news_monitor.errors import PersistenceError


class TestListHistoryRecords:
    @pytest.mark.asyncio
    async def test_filters_and_maps_rows(self, mock_database):
        created = datetime(2025, 3, 1, tzinfo=timezone.utc)
        since = datetime(2025, 2, 1, tzinfo=timezone.utc)
        mock_database.fetch.return_value = [
            {"id": 17, "origin_url": "https://e24.no/a", "is_published": 1, "created_at": created},
            {"id": 18, "origin_url": None, "is_published": 0, "created_at": created},
        ]

        records = await HistoryRepository(mock_database).list_history_records(since=since)

        sql, source_type, since_arg = mock_database.fetch.call_args[0]
        assert "COALESCE(rss_source_url, original_url)" in sql
        assert source_type == "rss"
        assert since_arg == since
        assert len(records) == 1
        assert records[0].record_id == "17"
        assert records[0].is_published is True

    @pytest.mark.asyncio
    async def test_store_failure(self, mock_database):
        mock_database.fetch.side_effect = OSError("no route to host")

        with pytest.raises(PersistenceError):
            await HistoryRepository(mock_database).list_history_records()


class TestArticleExists:
    @pytest.mark.asyncio
    async def test_exists(self, mock_database):
        mock_database.fetchval.return_value = True

        assert await HistoryRepository(mock_database).article_exists("https://e24.no/a") is True
        assert mock_database.fetchval.call_args[0][1] == "https://e24.no/a"

    @pytest.mark.asyncio
    async def test_missing(self, mock_database):
        mock_database.fetchval.return_value = False

        assert await HistoryRepository(mock_database).article_exists("https://e24.no/b") is False
