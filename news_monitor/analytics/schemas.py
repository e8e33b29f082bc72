"""History records and the per-source statistics derived from them."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone


@dataclass(frozen=True)
class HistoryRecord:
    """A previously stored content item.

    Records carry no durable source id, only the URL they came from.
    """

    record_id: str
    origin_url: str
    is_published: bool
    created_at: datetime


@dataclass
class SourceStats:
    """Counters for the history records attributed to one source.

    Attributes:
        source_id: Registry id of the source.
        total: Matched records.
        published: Matched records flagged as published.
        last_item_at: Newest matched record time, None without matches.
    """

    source_id: str
    total: int = 0
    published: int = 0
    last_item_at: datetime | None = None

    def add(self, record: HistoryRecord) -> None:
        self.total += 1
        if record.is_published:
            self.published += 1
        if self.last_item_at is None or record.created_at > self.last_item_at:
            self.last_item_at = record.created_at

    def age(self, now: datetime | None = None) -> timedelta | None:
        """Time since the newest matched record."""
        if self.last_item_at is None:
            return None
        now = now or datetime.now(timezone.utc)
        return now - self.last_item_at
