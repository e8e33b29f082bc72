"""Read-only access to the ``news`` history table."""

import logging
from datetime import datetime

from news_monitor.analytics.schemas import HistoryRecord
from news_monitor.sources.repository import storage_errors
from news_monitor.storage.database import Database

logger = logging.getLogger(__name__)

_HISTORY_SQL = """
SELECT id, COALESCE(rss_source_url, original_url) AS origin_url, is_published, created_at
FROM news
WHERE ($1::text IS NULL OR source_type = $1)
  AND ($2::timestamptz IS NULL OR created_at >= $2)
ORDER BY created_at DESC
"""

_EXISTS_SQL = """
SELECT EXISTS (
    SELECT 1 FROM news WHERE rss_source_url = $1 OR original_url = $1
)
"""


def _record_to_history(record) -> HistoryRecord | None:
    """Convert an asyncpg Record, skipping rows without an origin URL."""
    origin_url = record["origin_url"]
    if not origin_url:
        return None
    return HistoryRecord(
        record_id=str(record["id"]),
        origin_url=origin_url,
        is_published=bool(record["is_published"]),
        created_at=record["created_at"],
    )


class HistoryRepository:
    """Queries against stored news items."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def list_history_records(
        self,
        since: datetime | None = None,
        source_type: str | None = "rss",
    ) -> list[HistoryRecord]:
        """Stored items, newest first.

        Args:
            since: Only items created at or after this time.
            source_type: Only items of this type; None for all.
        """
        with storage_errors("list_history_records"):
            rows = await self._db.fetch(_HISTORY_SQL, source_type, since)

        records = [r for r in (_record_to_history(row) for row in rows) if r is not None]
        logger.debug("Loaded %d history records", len(records))
        return records

    async def article_exists(self, url: str) -> bool:
        """Whether an item with this URL has already been stored."""
        with storage_errors("article_exists"):
            exists = await self._db.fetchval(_EXISTS_SQL, url)
        return bool(exists)
