"""Viewer settings: storage and the manager that applies them.

Settings are keyed by an explicit owner id, loaded once at startup and
cached. Every update is applied to the running components (scheduler,
orchestrator) and then written back to ``news_monitor_settings``.
"""

import structlog

from news_monitor.errors import PersistenceError
from news_monitor.monitor.config import MonitorConfig
from news_monitor.monitor.events import SETTINGS_CHANGED, EventBus
from news_monitor.monitor.orchestrator import FetchOrchestrator
from news_monitor.monitor.scheduler import AutoRefreshScheduler
from news_monitor.monitor.schemas import ViewerSettings
from news_monitor.sources.repository import storage_errors
from news_monitor.storage.database import Database

logger = structlog.get_logger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS news_monitor_settings (
    user_id             TEXT PRIMARY KEY,
    refresh_interval    INTEGER NOT NULL DEFAULT 300,
    articles_per_source INTEGER NOT NULL DEFAULT 5,
    auto_refresh        BOOLEAN NOT NULL DEFAULT TRUE,
    auto_analyze        BOOLEAN NOT NULL DEFAULT FALSE,
    expanded_sources    TEXT[] NOT NULL DEFAULT '{}',
    updated_at          TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

_UPSERT_SQL = """
INSERT INTO news_monitor_settings (
    user_id, refresh_interval, articles_per_source, auto_refresh, auto_analyze, expanded_sources
)
VALUES ($1, $2, $3, $4, $5, $6)
ON CONFLICT (user_id) DO UPDATE SET
    refresh_interval = EXCLUDED.refresh_interval,
    articles_per_source = EXCLUDED.articles_per_source,
    auto_refresh = EXCLUDED.auto_refresh,
    auto_analyze = EXCLUDED.auto_analyze,
    expanded_sources = EXCLUDED.expanded_sources,
    updated_at = NOW()
"""


def _record_to_settings(record) -> ViewerSettings:
    """Convert an asyncpg Record to ViewerSettings."""
    return ViewerSettings(
        owner_id=record["user_id"],
        refresh_interval=record["refresh_interval"],
        articles_per_source=record["articles_per_source"],
        auto_refresh=record["auto_refresh"],
        auto_analyze=bool(record["auto_analyze"]),
        expanded_sources=list(record["expanded_sources"] or []),
    )


class SettingsRepository:
    """Read/upsert of the news_monitor_settings table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the settings table (idempotent)."""
        with storage_errors("create_table"):
            await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Settings table ensured")

    async def get(self, owner_id: str) -> ViewerSettings | None:
        """Stored settings for an owner, or None if never saved."""
        with storage_errors("get_settings"):
            row = await self._db.fetchrow(
                "SELECT * FROM news_monitor_settings WHERE user_id = $1", owner_id,
            )
        return _record_to_settings(row) if row else None

    async def save(self, settings: ViewerSettings) -> None:
        """Insert or replace the owner's settings row."""
        with storage_errors("update_settings"):
            await self._db.execute(
                _UPSERT_SQL,
                settings.owner_id,
                settings.refresh_interval,
                settings.articles_per_source,
                settings.auto_refresh,
                settings.auto_analyze,
                list(settings.expanded_sources),
            )


class SettingsManager:
    """
    Cached viewer settings that drive the scheduler and orchestrator.

    - Turning auto_refresh off stops the scheduler; turning it on starts it
    - Changing refresh_interval while running restarts the scheduler
    - articles_per_source is pushed to the orchestrator

    Usage:
        manager = SettingsManager(repo, "alice", scheduler=scheduler, orchestrator=orch)
        await manager.load()
        await manager.update(refresh_interval=60)
    """

    def __init__(
        self,
        repository: SettingsRepository,
        owner_id: str,
        scheduler: AutoRefreshScheduler | None = None,
        orchestrator: FetchOrchestrator | None = None,
        events: EventBus | None = None,
        config: MonitorConfig | None = None,
    ) -> None:
        self._repo = repository
        self._owner_id = owner_id
        self._scheduler = scheduler
        self._orchestrator = orchestrator
        self._events = events or EventBus()
        self._config = config or MonitorConfig()
        self._settings = self._defaults()

    @property
    def settings(self) -> ViewerSettings:
        return self._settings

    @property
    def owner_id(self) -> str:
        return self._owner_id

    def _defaults(self) -> ViewerSettings:
        return ViewerSettings(
            owner_id=self._owner_id,
            refresh_interval=self._config.default_refresh_interval,
            articles_per_source=self._config.default_articles_per_source,
            auto_refresh=self._config.default_auto_refresh,
        )

    async def load(self) -> ViewerSettings:
        """Read the owner's settings, falling back to defaults when absent or unreadable."""
        try:
            stored = await self._repo.get(self._owner_id)
        except PersistenceError as e:
            logger.error("Failed to load settings, using defaults", owner_id=self._owner_id, error=str(e))
            stored = None

        self._settings = stored or self._defaults()
        if self._orchestrator is not None:
            self._orchestrator.articles_per_source = self._settings.articles_per_source
        return self._settings

    def start_scheduler(self) -> bool:
        """Start auto-refresh with an immediate round if enabled. Returns whether it started."""
        if self._scheduler is None or not self._settings.auto_refresh:
            return False
        self._scheduler.start(self._settings.refresh_interval, immediate=True)
        return True

    async def update(self, **patch) -> ViewerSettings:
        """
        Apply and persist a settings change.

        The change takes effect locally even if saving it fails.

        Raises:
            ValidationError: On unknown fields or out-of-range values
            PersistenceError: If the settings row could not be written
        """
        previous = self._settings
        updated = previous.with_updates(**patch)
        self._settings = updated
        self._apply(previous, updated)
        self._events.publish(SETTINGS_CHANGED, owner_id=self._owner_id, fields=sorted(patch))

        await self._repo.save(updated)
        logger.info("Settings updated", owner_id=self._owner_id, fields=sorted(patch))
        return updated

    async def toggle_expanded(self, source_id: str) -> ViewerSettings:
        """Expand or collapse one source in the viewer."""
        expanded = list(self._settings.expanded_sources)
        if source_id in expanded:
            expanded.remove(source_id)
        else:
            expanded.append(source_id)
        return await self.update(expanded_sources=expanded)

    def _apply(self, previous: ViewerSettings, current: ViewerSettings) -> None:
        if self._orchestrator is not None:
            self._orchestrator.articles_per_source = current.articles_per_source

        if self._scheduler is None:
            return
        if not current.auto_refresh:
            self._scheduler.stop()
        elif not previous.auto_refresh:
            self._scheduler.start(current.refresh_interval)
        elif current.refresh_interval != previous.refresh_interval and self._scheduler.running:
            self._scheduler.restart(current.refresh_interval)
