"""In-memory source registry backed by SourcesRepository.

The registry is the read model the rest of the monitor works from: the
orchestrator takes its active sources from here, the reorder coordinator
mutates tier order through it and the reconciler iterates it in display
order. Single-entity mutations are applied in memory only after the
store accepts them. Tier reordering is applied first and rolled back if
the store rejects it.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog

from news_monitor.config.tiers import Tier, parse_tier
from news_monitor.errors import (
    PersistenceError,
    ProtectedEntityError,
    SourceNotFoundError,
    ValidationError,
)
from news_monitor.monitor.events import SOURCES_CHANGED, EventBus
from news_monitor.observability.metrics import MetricsCollector, get_metrics
from news_monitor.sources.config import SourcesConfig
from news_monitor.sources.repository import SourcesRepository
from news_monitor.sources.schemas import (
    PATCHABLE_FIELDS,
    Source,
    SourceDraft,
    coerce_tier,
    is_http_url,
)

logger = structlog.get_logger(__name__)

_SEED_FILE = Path(__file__).parent / "data" / "seed_sources.json"


def load_seed_sources(path: Path | None = None) -> list[Source]:
    """Read the bundled default sources.

    Ids are ``default-<n>`` in file order; positions restart at zero in
    each tier.
    """
    seed_path = path or _SEED_FILE
    with open(seed_path) as f:
        entries = json.load(f)

    positions: dict[Tier, int] = {}
    sources: list[Source] = []
    for n, entry in enumerate(entries, start=1):
        tier = parse_tier(entry["tier"])
        position = positions.get(tier, 0)
        positions[tier] = position + 1
        sources.append(
            Source(
                id=f"default-{n}",
                name=entry["name"],
                url=entry.get("url"),
                rss_url=entry["rss_url"],
                tier=tier,
                is_active=entry.get("is_active", True),
                is_default=True,
                sort_order=position,
            )
        )
    return sources


def _sort_key(source: Source) -> tuple[int, int]:
    return (int(source.tier), source.sort_order)


class SourceRegistry:
    """Ordered, observable collection of sources.

    Usage:
        registry = SourceRegistry(SourcesRepository(db), events)
        await registry.load()
        source = await registry.create(SourceDraft(name="Blog", rss_url="https://x.io/feed"))
        await registry.reorder(Tier.GLOBAL_TECH, [source.id, ...])

    While built-in defaults are shown after a failed load, every mutation
    raises PersistenceError without touching the store.
    """

    def __init__(
        self,
        repository: SourcesRepository,
        events: EventBus | None = None,
        config: SourcesConfig | None = None,
        metrics: MetricsCollector | None = None,
        seed_path: Path | None = None,
    ) -> None:
        self._repo = repository
        self._events = events or EventBus()
        self._config = config or SourcesConfig()
        self._metrics = metrics or get_metrics()
        self._seed_path = seed_path
        self._sources: list[Source] = []
        self._using_defaults = False

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def using_defaults(self) -> bool:
        """True when the store could not be read and built-in sources are shown."""
        return self._using_defaults

    # ── Loading ─────────────────────────────────────────────────

    async def seed(self, path: Path | None = None) -> int:
        """Write the default sources to the store. Returns the number written."""
        sources = load_seed_sources(path or self._seed_path)
        count = await self._repo.bulk_insert(sources)
        logger.info("Seeded default sources", count=count)
        return count

    async def load(self) -> list[Source]:
        """Populate the registry from the store.

        Seeds an empty store when ``seed_on_init`` is set. If the store
        cannot be read and ``fallback_to_defaults`` is set, the built-in
        sources are kept in memory instead.

        Raises:
            PersistenceError: If the store fails and fallback is disabled.
        """
        try:
            if self._config.seed_on_init and await self._repo.count() == 0:
                await self.seed()
            sources = await self._repo.list_sources()
            self._using_defaults = False
        except PersistenceError as e:
            if not self._config.fallback_to_defaults:
                raise
            logger.error("Failed to load sources, using built-in defaults", error=str(e))
            sources = load_seed_sources(self._seed_path)
            self._using_defaults = True

        self._sources = sorted(sources, key=_sort_key)
        self._publish("loaded", count=len(self._sources))
        return self.list()

    # ── Read model ──────────────────────────────────────────────

    def list(self) -> list[Source]:
        """All sources in display order (tier, then position)."""
        return list(self._sources)

    def find(self, source_id: str) -> Source | None:
        for source in self._sources:
            if source.id == source_id:
                return source
        return None

    def get(self, source_id: str) -> Source:
        """Look up a source by id.

        Raises:
            SourceNotFoundError: If no source has that id.
        """
        source = self.find(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)
        return source

    def tier_sources(self, tier: Tier | int) -> list[Source]:
        """Sources of one tier in position order."""
        tier = coerce_tier(tier)
        return sorted(
            (s for s in self._sources if s.tier == tier),
            key=lambda s: s.sort_order,
        )

    def tier_ids(self, tier: Tier | int) -> list[str]:
        return [s.id for s in self.tier_sources(tier)]

    def active_sources(self) -> list[Source]:
        return [s for s in self._sources if s.is_active]

    def __len__(self) -> int:
        return len(self._sources)

    # ── Mutations ───────────────────────────────────────────────

    async def create(self, draft: SourceDraft) -> Source:
        """Validate and store a new source at the end of its tier.

        Raises:
            ValidationError: If the draft is incomplete or malformed.
            PersistenceError: If the store rejects the insert.
        """
        draft.validate()
        self._require_store("create_source")
        tier_orders = [s.sort_order for s in self.tier_sources(draft.tier)]
        next_order = max(tier_orders, default=-1) + 1

        source = await self._repo.create(draft, sort_order=next_order)
        self._sources.append(source)
        self._sources.sort(key=_sort_key)

        logger.info("Source created", source_id=source.id, name=source.name, tier=int(source.tier))
        self._publish("created", source_id=source.id)
        return source

    async def update(self, source_id: str, **patch: Any) -> Source:
        """Change fields of an existing source.

        Raises:
            SourceNotFoundError: If the id is unknown.
            ValidationError: On unknown fields or invalid values.
            PersistenceError: If the store rejects the update.
        """
        self.get(source_id)
        patch = self._validate_patch(patch)
        self._require_store("update_source")

        updated = await self._repo.update(source_id, patch)
        if updated is None:
            self._remove(source_id)
            self._publish("deleted", source_id=source_id)
            raise SourceNotFoundError(source_id)

        self._replace(updated)
        logger.info("Source updated", source_id=source_id, fields=sorted(patch))
        self._publish("updated", source_id=source_id, fields=sorted(patch))
        return updated

    async def delete(self, source_id: str) -> bool:
        """Delete a user-added source.

        Returns:
            True if the store removed a row, False if it was already gone.

        Raises:
            SourceNotFoundError: If the id is unknown.
            ProtectedEntityError: If the source is a default source.
            PersistenceError: If the store rejects the delete.
        """
        source = self.get(source_id)
        if source.is_default:
            raise ProtectedEntityError(source_id)
        self._require_store("delete_source")

        removed = await self._repo.delete(source_id)
        self._remove(source_id)

        logger.info("Source deleted", source_id=source_id, removed=removed)
        self._publish("deleted", source_id=source_id)
        return removed

    async def set_active(self, source_id: str, active: bool) -> Source:
        """Include or exclude a source from scheduled and bulk fetches."""
        return await self.update(source_id, is_active=bool(active))

    async def toggle_active(self, source_id: str) -> Source:
        return await self.set_active(source_id, not self.get(source_id).is_active)

    def apply_tier_order(self, tier: Tier | int, ordered_ids: list[str]) -> None:
        """Renumber one tier's positions in memory only.

        Raises:
            ValidationError: If the ids are not exactly the tier's sources.
        """
        tier = coerce_tier(tier)
        self._check_tier_order(tier, ordered_ids)

        by_id = {s.id: s for s in self._sources}
        for position, source_id in enumerate(ordered_ids):
            by_id[source_id].sort_order = position
        self._sources.sort(key=_sort_key)

    async def reorder(self, tier: Tier | int, ordered_ids: list[str]) -> bool:
        """Reorder one tier, persisting the full ordered id list.

        The new order is visible immediately. If the store rejects it, the
        previous positions are restored before the error is re-raised.

        Returns:
            True if a new order was persisted, False if it was unchanged.

        Raises:
            ValidationError: If the ids are not exactly the tier's sources.
            PersistenceError: If persisting fails (after rollback).
        """
        tier = coerce_tier(tier)
        current = self.tier_ids(tier)
        ordered_ids = list(ordered_ids)
        if ordered_ids == current:
            self.apply_tier_order(tier, ordered_ids)
            return False

        self._check_tier_order(tier, ordered_ids)
        self._require_store("persist_order")
        snapshot = {s.id: s.sort_order for s in self.tier_sources(tier)}
        self.apply_tier_order(tier, ordered_ids)
        self._publish("reordered", tier=int(tier), order=ordered_ids)

        try:
            await self._repo.persist_order(tier, ordered_ids)
        except PersistenceError as e:
            self._restore_positions(snapshot)
            self._metrics.record_reorder("rolled_back")
            logger.warning("Reorder rolled back", tier=int(tier), error=str(e))
            self._publish("reorder_rolled_back", tier=int(tier), order=current)
            raise

        self._metrics.record_reorder("persisted")
        logger.info("Tier reordered", tier=int(tier), order=ordered_ids)
        return True

    # ── Internals ───────────────────────────────────────────────

    def _require_store(self, operation: str) -> None:
        # Built-in defaults have no rows behind them
        if self._using_defaults:
            raise PersistenceError(
                operation, "sources store unavailable, showing built-in defaults",
            )

    def _check_tier_order(self, tier: Tier, ordered_ids: list[str]) -> None:
        current = self.tier_ids(tier)
        if len(ordered_ids) != len(current) or set(ordered_ids) != set(current):
            raise ValidationError(
                f"Order for tier {int(tier)} must list each of its {len(current)} sources exactly once",
                field="ordered_ids",
            )

    def _validate_patch(self, patch: dict[str, Any]) -> dict[str, Any]:
        unknown = set(patch) - PATCHABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown source fields: {sorted(unknown)}")

        cleaned = dict(patch)
        if "name" in cleaned:
            if not cleaned["name"] or not str(cleaned["name"]).strip():
                raise ValidationError("Source name is required", field="name")
            cleaned["name"] = str(cleaned["name"]).strip()
        if "rss_url" in cleaned:
            if not cleaned["rss_url"] or not is_http_url(str(cleaned["rss_url"]).strip()):
                raise ValidationError("Feed URL must be an http(s) URL", field="rss_url")
            cleaned["rss_url"] = str(cleaned["rss_url"]).strip()
        if "url" in cleaned and cleaned["url"]:
            if not is_http_url(str(cleaned["url"]).strip()):
                raise ValidationError("Website URL must be an http(s) URL", field="url")
            cleaned["url"] = str(cleaned["url"]).strip()
        if "tier" in cleaned:
            cleaned["tier"] = coerce_tier(cleaned["tier"])
        if "sort_order" in cleaned:
            if isinstance(cleaned["sort_order"], bool) or not isinstance(cleaned["sort_order"], int):
                raise ValidationError("sort_order must be an integer", field="sort_order")
        return cleaned

    def _replace(self, source: Source) -> None:
        self._sources = [source if s.id == source.id else s for s in self._sources]
        self._sources.sort(key=_sort_key)

    def _remove(self, source_id: str) -> None:
        self._sources = [s for s in self._sources if s.id != source_id]

    def _restore_positions(self, snapshot: dict[str, int]) -> None:
        for source in self._sources:
            if source.id in snapshot:
                source.sort_order = snapshot[source.id]
        self._sources.sort(key=_sort_key)

    def _publish(self, action: str, **payload: Any) -> None:
        self._events.publish(SOURCES_CHANGED, action=action, **payload)
