"""
News monitor service - wires the monitor components for a UI or CLI.

Owns one of each component and exposes the imperative operations a
front end invokes (add/delete/toggle/reorder/refresh/settings) plus the
read models it renders (sources, fetch states, statistics).
"""

from datetime import datetime

import structlog

from news_monitor.analysis.config import AnalysisConfig
from news_monitor.analysis.dispatcher import AnalysisDispatcher
from news_monitor.analytics.reconciler import compute_stats
from news_monitor.analytics.repository import HistoryRepository
from news_monitor.analytics.schemas import SourceStats
from news_monitor.config.settings import get_settings
from news_monitor.config.tiers import Tier
from news_monitor.ingestion.feed_client import FeedClient
from news_monitor.ingestion.schemas import Article
from news_monitor.monitor.config import MonitorConfig
from news_monitor.monitor.events import SOURCES_CHANGED, EventBus, MonitorEvent
from news_monitor.monitor.orchestrator import FetchOrchestrator
from news_monitor.monitor.preferences import SettingsManager, SettingsRepository
from news_monitor.monitor.reorder import ReorderCoordinator
from news_monitor.monitor.scheduler import AutoRefreshScheduler
from news_monitor.monitor.schemas import FetchState, ViewerSettings
from news_monitor.monitor.state import FetchStateTracker
from news_monitor.monitor.validator import SourceValidator, ValidationResult
from news_monitor.observability.metrics import MetricsCollector, get_metrics
from news_monitor.sources.config import SourcesConfig
from news_monitor.sources.registry import SourceRegistry
from news_monitor.sources.repository import SourcesRepository
from news_monitor.sources.schemas import Source, SourceDraft
from news_monitor.storage.database import Database

logger = structlog.get_logger(__name__)


class NewsMonitor:
    """
    Facade over the registry, fetcher, scheduler and analytics.

    Usage:
        async with Database() as db:
            monitor = NewsMonitor(db)
            await monitor.start()
            ...
            await monitor.stop()
    """

    def __init__(
        self,
        database: Database,
        owner_id: str | None = None,
        feed_client: FeedClient | None = None,
        sources_config: SourcesConfig | None = None,
        monitor_config: MonitorConfig | None = None,
        analysis_config: AnalysisConfig | None = None,
        metrics: MetricsCollector | None = None,
        validator: SourceValidator | None = None,
        analysis: AnalysisDispatcher | None = None,
    ) -> None:
        monitor_config = monitor_config or MonitorConfig()
        metrics = metrics or get_metrics()

        self.events = EventBus()
        self.sources_repository = SourcesRepository(database)
        self.settings_repository = SettingsRepository(database)
        self.history = HistoryRepository(database)

        self.registry = SourceRegistry(
            self.sources_repository, self.events, sources_config, metrics,
        )
        self.tracker = FetchStateTracker(self.events)
        self.orchestrator = FetchOrchestrator(
            self.registry,
            feed_client,
            self.tracker,
            monitor_config,
            metrics,
            on_articles=self._on_articles,
        )
        self.scheduler = AutoRefreshScheduler(self.orchestrator.fetch_all, metrics)
        self.reorderer = ReorderCoordinator(self.registry)
        self.validator = validator or SourceValidator(config=monitor_config)
        self.preferences = SettingsManager(
            self.settings_repository,
            owner_id or get_settings().owner_id,
            scheduler=self.scheduler,
            orchestrator=self.orchestrator,
            events=self.events,
            config=monitor_config,
        )
        self.analysis = analysis or AnalysisDispatcher(
            analysis_config, self.history, metrics=metrics,
        )

        self.events.subscribe(self._on_sources_changed, SOURCES_CHANGED)

    # ── Lifecycle ───────────────────────────────────────────────

    async def init_storage(self) -> None:
        """Create the monitor tables (idempotent)."""
        await self.sources_repository.create_table()
        await self.settings_repository.create_table()

    async def load(self) -> None:
        """Load sources and the owner's settings."""
        await self.registry.load()
        await self.preferences.load()
        logger.info(
            "News monitor loaded",
            sources=len(self.registry),
            using_defaults=self.registry.using_defaults,
            owner_id=self.preferences.owner_id,
        )

    async def start(self, auto_refresh: bool = True) -> None:
        """Load state and, if enabled in settings, start auto-refresh."""
        await self.load()
        if auto_refresh and self.registry.list():
            self.preferences.start_scheduler()

    async def stop(self) -> None:
        """Stop the scheduler and let running fetches and analyses finish."""
        self.scheduler.stop()
        await self.scheduler.wait_ticks()
        await self.orchestrator.wait_idle()
        logger.info("News monitor stopped")

    # ── Read models ─────────────────────────────────────────────

    @property
    def owner_id(self) -> str:
        return self.preferences.owner_id

    @property
    def settings(self) -> ViewerSettings:
        return self.preferences.settings

    @property
    def last_refresh(self) -> datetime | None:
        return self.orchestrator.last_refresh

    def sources(self, tier: Tier | int | None = None) -> list[Source]:
        if tier is None:
            return self.registry.list()
        return self.registry.tier_sources(tier)

    def fetch_states(self) -> dict[str, FetchState]:
        return self.tracker.snapshot()

    async def stats(self, since: datetime | None = None) -> dict[str, SourceStats]:
        """Per-source statistics from the stored news history."""
        records = await self.history.list_history_records(since=since)
        return compute_stats(self.registry.list(), records)

    # ── Actions ─────────────────────────────────────────────────

    async def validate(self, feed_url: str) -> ValidationResult:
        return await self.validator.validate(feed_url)

    async def add_source(self, draft: SourceDraft) -> Source:
        return await self.registry.create(draft)

    async def update_source(self, source_id: str, **patch) -> Source:
        return await self.registry.update(source_id, **patch)

    async def delete_source(self, source_id: str) -> bool:
        return await self.registry.delete(source_id)

    async def toggle_source(self, source_id: str) -> Source:
        return await self.registry.toggle_active(source_id)

    async def reorder(self, tier: Tier | int, from_index: int, to_index: int) -> bool:
        return await self.reorderer.reorder(tier, from_index, to_index)

    async def refresh(self, source_id: str | None = None) -> dict[str, FetchState]:
        """Fetch one source now, or every active source when no id is given."""
        if source_id is None:
            return await self.orchestrator.fetch_all()
        return {source_id: await self.orchestrator.fetch_one(source_id)}

    async def update_settings(self, **patch) -> ViewerSettings:
        return await self.preferences.update(**patch)

    # ── Event wiring ────────────────────────────────────────────

    def _on_sources_changed(self, event: MonitorEvent) -> None:
        if event.payload.get("action") == "deleted":
            self.orchestrator.forget(event.payload["source_id"])

    def _on_articles(self, source: Source, articles: list[Article]):
        if not self.settings.auto_analyze or not self.analysis.enabled:
            return None
        return self.analysis.analyze_new_articles(articles, source.name)
