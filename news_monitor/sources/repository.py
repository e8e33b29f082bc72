"""Database repository for the news_monitor_sources table."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import asyncpg

from news_monitor.config.tiers import Tier
from news_monitor.errors import PersistenceError
from news_monitor.sources.schemas import PATCHABLE_FIELDS, Source, SourceDraft
from news_monitor.storage.database import Database

logger = logging.getLogger(__name__)

# Storage failures that surface as PersistenceError
STORE_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS news_monitor_sources (
    id          TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
    name        TEXT NOT NULL,
    url         TEXT,
    rss_url     TEXT NOT NULL,
    tier        SMALLINT NOT NULL CHECK (tier BETWEEN 1 AND 4),
    is_active   BOOLEAN NOT NULL DEFAULT TRUE,
    is_default  BOOLEAN NOT NULL DEFAULT FALSE,
    sort_order  INTEGER NOT NULL DEFAULT 0,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_news_monitor_sources_tier_order
    ON news_monitor_sources(tier, sort_order);
"""

_LIST_SQL = """
SELECT * FROM news_monitor_sources
ORDER BY tier, sort_order, created_at
"""

_INSERT_SQL = """
INSERT INTO news_monitor_sources (name, url, rss_url, tier, is_active, is_default, sort_order)
VALUES ($1, $2, $3, $4, $5, $6, $7)
RETURNING *
"""

_BULK_INSERT_SQL = """
INSERT INTO news_monitor_sources (name, url, rss_url, tier, is_active, is_default, sort_order)
SELECT * FROM unnest(
    $1::text[], $2::text[], $3::text[], $4::smallint[], $5::boolean[], $6::boolean[], $7::integer[]
)
"""

_PERSIST_ORDER_SQL = """
WITH wanted AS (
    SELECT * FROM unnest($1::text[], $2::integer[]) AS w(id, position)
), matched AS (
    SELECT COUNT(*) AS n
    FROM news_monitor_sources s JOIN wanted w ON s.id = w.id
    WHERE s.tier = $3
)
UPDATE news_monitor_sources s
SET sort_order = w.position, updated_at = NOW()
FROM wanted w, matched m
WHERE s.id = w.id AND s.tier = $3 AND m.n = cardinality($1::text[])
RETURNING s.id
"""


def _record_to_source(record) -> Source:
    """Convert an asyncpg Record to a Source dataclass."""
    return Source(
        id=str(record["id"]),
        name=record["name"],
        url=record["url"],
        rss_url=record["rss_url"],
        tier=Tier(record["tier"]),
        is_active=record["is_active"],
        is_default=record["is_default"],
        sort_order=record["sort_order"],
        created_at=record["created_at"],
        updated_at=record["updated_at"],
    )


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Re-raise driver and connection failures as PersistenceError."""
    try:
        yield
    except STORE_ERRORS as e:
        logger.warning("Storage operation %s failed: %s", operation, e)
        raise PersistenceError(operation, str(e) or type(e).__name__) from e


class SourcesRepository:
    """CRUD operations for the news_monitor_sources table.

    Every method raises PersistenceError when the store is unreachable
    or rejects the statement.
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the sources table and indexes (idempotent)."""
        with storage_errors("create_table"):
            await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Sources table ensured")

    async def list_sources(self) -> list[Source]:
        """All sources ordered by tier, then position within the tier."""
        with storage_errors("list_sources"):
            rows = await self._db.fetch(_LIST_SQL)
        return [_record_to_source(r) for r in rows]

    async def get(self, source_id: str) -> Source | None:
        """Fetch a single source by id."""
        with storage_errors("get_source"):
            row = await self._db.fetchrow(
                "SELECT * FROM news_monitor_sources WHERE id = $1", source_id,
            )
        return _record_to_source(row) if row else None

    async def create(
        self,
        draft: SourceDraft,
        sort_order: int,
        is_default: bool = False,
    ) -> Source:
        """Insert a validated draft and return the stored row."""
        with storage_errors("create_source"):
            row = await self._db.fetchrow(
                _INSERT_SQL,
                draft.name.strip(),
                draft.url.strip() if draft.url else None,
                draft.rss_url.strip(),
                int(draft.tier),
                draft.is_active,
                is_default,
                sort_order,
            )
        if row is None:
            raise PersistenceError("create_source", "insert returned no row")
        return _record_to_source(row)

    async def update(self, source_id: str, patch: dict[str, Any]) -> Source | None:
        """Apply a field patch. Returns None if no row has that id."""
        columns = sorted(k for k in patch if k in PATCHABLE_FIELDS)
        if not columns:
            return await self.get(source_id)

        assignments = [f"{col} = ${i}" for i, col in enumerate(columns, start=2)]
        params = [
            int(patch[col]) if col == "tier" else patch[col]
            for col in columns
        ]
        sql = (
            f"UPDATE news_monitor_sources SET {', '.join(assignments)}, updated_at = NOW() "
            "WHERE id = $1 RETURNING *"
        )
        with storage_errors("update_source"):
            row = await self._db.fetchrow(sql, source_id, *params)
        return _record_to_source(row) if row else None

    async def delete(self, source_id: str) -> bool:
        """Delete a source. Returns True if a row was removed."""
        with storage_errors("delete_source"):
            result = await self._db.execute(
                "DELETE FROM news_monitor_sources WHERE id = $1", source_id,
            )
        return result.endswith(" 1")

    async def persist_order(self, tier: Tier, ordered_ids: list[str]) -> None:
        """Write the positions of one tier's sources in a single statement.

        Nothing is written unless every id is a stored source of that tier.

        Raises:
            PersistenceError: If the store fails or some ids have no row.
        """
        positions = list(range(len(ordered_ids)))
        with storage_errors("persist_order"):
            rows = await self._db.fetch(
                _PERSIST_ORDER_SQL, list(ordered_ids), positions, int(tier),
            )
        if len(rows) != len(ordered_ids):
            raise PersistenceError(
                "persist_order",
                f"{len(ordered_ids) - len(rows)} of {len(ordered_ids)} sources "
                f"have no stored row in tier {int(tier)}",
            )
        logger.debug("Persisted order for tier %d: %s", int(tier), ordered_ids)

    async def bulk_insert(self, sources: list[Source]) -> int:
        """Insert multiple sources in one statement.

        Returns the number of sources written.
        """
        if not sources:
            return 0

        names = [s.name for s in sources]
        urls = [s.url for s in sources]
        rss_urls = [s.rss_url for s in sources]
        tiers = [int(s.tier) for s in sources]
        actives = [s.is_active for s in sources]
        defaults = [s.is_default for s in sources]
        orders = [s.sort_order for s in sources]

        with storage_errors("bulk_insert"):
            await self._db.execute(
                _BULK_INSERT_SQL,
                names, urls, rss_urls, tiers, actives, defaults, orders,
            )
        logger.info("Bulk inserted %d sources", len(sources))
        return len(sources)

    async def count(self) -> int:
        """Count total sources in the table."""
        with storage_errors("count_sources"):
            total = await self._db.fetchval("SELECT COUNT(*) FROM news_monitor_sources")
        return total or 0
