"""
Fetch orchestrator - runs feed fetches for one source or many.

Features:
- At most one in-flight fetch per source (a second request joins it)
- Concurrent fetch of every selected source via asyncio.gather
- Per-fetch timeout
- Failures recorded in fetch state, never raised from fetch_all
- Optional non-blocking hook for freshly fetched articles
"""

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

import structlog

from news_monitor.errors import FetchError
from news_monitor.ingestion.feed_client import FeedClient
from news_monitor.ingestion.schemas import Article
from news_monitor.monitor.config import MonitorConfig
from news_monitor.monitor.schemas import FetchState
from news_monitor.monitor.state import FetchStateTracker
from news_monitor.observability.metrics import MetricsCollector, get_metrics
from news_monitor.sources.registry import SourceRegistry
from news_monitor.sources.schemas import Source

logger = structlog.get_logger(__name__)

ArticlesHook = Callable[[Source, list[Article]], Awaitable[None] | None]


class FetchOrchestrator:
    """
    Drives the fetch state tracker from feed fetches.

    Usage:
        orchestrator = FetchOrchestrator(registry, FeedClient())
        state = await orchestrator.fetch_one(source_id)
        states = await orchestrator.fetch_all()
    """

    def __init__(
        self,
        registry: SourceRegistry,
        feed_client: FeedClient | None = None,
        tracker: FetchStateTracker | None = None,
        config: MonitorConfig | None = None,
        metrics: MetricsCollector | None = None,
        on_articles: ArticlesHook | None = None,
    ) -> None:
        self._registry = registry
        self._feed_client = feed_client or FeedClient()
        self._tracker = tracker or FetchStateTracker(registry.events)
        self._config = config or MonitorConfig()
        self._metrics = metrics or get_metrics()
        self._on_articles = on_articles

        self._in_flight: dict[str, asyncio.Task] = {}
        self._background: set[asyncio.Task] = set()
        self.articles_per_source = self._config.default_articles_per_source
        self.last_refresh: datetime | None = None

    @property
    def tracker(self) -> FetchStateTracker:
        return self._tracker

    @property
    def in_flight(self) -> set[str]:
        """Ids of sources with a fetch currently running."""
        return set(self._in_flight)

    def set_articles_hook(self, hook: ArticlesHook | None) -> None:
        self._on_articles = hook

    def state(self, source_id: str) -> FetchState:
        return self._tracker.get(source_id)

    async def fetch_one(self, source_id: str, include_inactive: bool = False) -> FetchState:
        """
        Fetch one source and return its settled state.

        An inactive source is left alone unless ``include_inactive`` is
        set. If the source is already loading, the in-progress state is
        returned without starting new network work.

        Raises:
            SourceNotFoundError: If the id is unknown
        """
        source = self._registry.get(source_id)
        if not source.is_active and not include_inactive:
            logger.debug("Skipping inactive source", source_id=source_id)
            return self._tracker.get(source_id)

        if source_id in self._in_flight:
            self._metrics.record_fetch(int(source.tier), "deduplicated")
            return self._tracker.get(source_id)

        return await self._dispatch(source)

    async def fetch_all(self, active_only: bool = True) -> dict[str, FetchState]:
        """
        Fetch every selected source concurrently.

        Resolves once every fetch has settled, whatever its outcome.
        Sources already loading are joined rather than fetched again.

        Returns:
            Settled state per fetched source id
        """
        selected = [
            s for s in self._registry.list()
            if s.is_active or not active_only
        ]
        self.last_refresh = datetime.now(timezone.utc)

        if not selected:
            return {}

        logger.info("Fetching sources", count=len(selected), active_only=active_only)
        await asyncio.gather(
            *(self._dispatch(source) for source in selected),
            return_exceptions=True,
        )

        states = {s.id: self._tracker.get(s.id) for s in selected}
        failed = sum(1 for s in states.values() if s.status == "failed")
        logger.info("Fetch round complete", count=len(states), failed=failed)
        return states

    async def wait_idle(self) -> None:
        """Wait for running fetches and article hooks to finish."""
        pending = list(self._in_flight.values()) + list(self._background)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def forget(self, source_id: str) -> None:
        """Drop the fetch state of a source that left the registry."""
        self._tracker.remove(source_id)

    def _dispatch(self, source: Source) -> "asyncio.Future[FetchState]":
        task = self._in_flight.get(source.id)
        if task is None:
            self._tracker.mark_loading(source.id)
            task = asyncio.create_task(
                self._run(source), name=f"fetch_{source.id}",
            )
            self._in_flight[source.id] = task
        else:
            self._metrics.record_fetch(int(source.tier), "deduplicated")
        return task

    async def _run(self, source: Source) -> FetchState:
        limit = self.articles_per_source
        tier = int(source.tier)
        start_time = time.monotonic()

        try:
            result = await asyncio.wait_for(
                self._feed_client.fetch_feed(source.rss_url, limit),
                timeout=self._config.fetch_timeout_seconds,
            )
        except asyncio.TimeoutError:
            return self._fail(
                source, f"Timed out after {self._config.fetch_timeout_seconds:g}s", start_time,
            )
        except FetchError as e:
            return self._fail(source, str(e), start_time)
        except asyncio.CancelledError:
            self._tracker.mark_failure(source.id, "Fetch cancelled")
            raise
        except Exception as e:
            logger.exception("Unexpected fetch failure", source_id=source.id)
            return self._fail(source, str(e) or type(e).__name__, start_time)
        finally:
            self._in_flight.pop(source.id, None)

        articles = [
            article.model_copy(update={"source_name": source.name})
            for article in result.articles[:limit]
        ]
        state = self._tracker.mark_success(source.id, articles)

        self._metrics.record_fetch(tier, "success", time.monotonic() - start_time)
        self._metrics.record_articles(tier, len(articles))
        self._metrics.set_sources_in_error(self._tracker.failed_count())
        logger.debug(
            "Fetched source",
            source_id=source.id,
            articles=len(articles),
            cached=result.cached,
        )

        self._notify(source, articles)
        return state

    def _fail(self, source: Source, message: str, start_time: float) -> FetchState:
        state = self._tracker.mark_failure(source.id, message)
        self._metrics.record_fetch(int(source.tier), "error", time.monotonic() - start_time)
        self._metrics.set_sources_in_error(self._tracker.failed_count())
        logger.warning("Fetch failed", source_id=source.id, name=source.name, error=message)
        return state

    def _notify(self, source: Source, articles: list[Article]) -> None:
        if self._on_articles is None or not articles:
            return
        try:
            outcome = self._on_articles(source, articles)
        except Exception:
            logger.exception("Articles hook failed", source_id=source.id)
            return
        if inspect.isawaitable(outcome):
            task = asyncio.ensure_future(outcome)
            self._background.add(task)
            task.add_done_callback(self._hook_done)

    def _hook_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Articles hook failed", error=str(task.exception()))
