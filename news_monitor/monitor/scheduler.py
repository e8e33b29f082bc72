"""
Auto-refresh scheduler.

A single cancelable timer task that fires at a fixed rate: tick ``k``
is due at ``anchor + k * interval`` where the anchor is the time of the
last start/restart. Each tick spawns the refresh callback without
waiting for it, so a slow round never delays the next tick.
"""

import asyncio
import math
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from news_monitor.observability.metrics import MetricsCollector, get_metrics

logger = structlog.get_logger(__name__)

RefreshCallback = Callable[[], Awaitable[Any]]


class AutoRefreshScheduler:
    """
    Periodically invokes a refresh callback (normally ``fetch_all``).

    Usage:
        scheduler = AutoRefreshScheduler(orchestrator.fetch_all)
        scheduler.start(300)
        scheduler.restart(60)   # next tick at most 60s from now
        scheduler.stop()        # running refreshes still complete
    """

    def __init__(
        self,
        callback: RefreshCallback,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._callback = callback
        self._metrics = metrics or get_metrics()
        self._timer: asyncio.Task | None = None
        self._ticks: set[asyncio.Task] = set()
        self._interval: float | None = None
        self._anchor: float | None = None
        self._tick_count = 0

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def interval(self) -> float | None:
        return self._interval

    @property
    def tick_count(self) -> int:
        """Ticks fired since the scheduler was created, manual triggers included."""
        return self._tick_count

    @property
    def next_tick_at(self) -> float | None:
        """Event-loop time of the next scheduled tick, or None when stopped."""
        if not self.running or self._anchor is None or self._interval is None:
            return None
        loop = asyncio.get_running_loop()
        elapsed = loop.time() - self._anchor
        k = math.floor(elapsed / self._interval) + 1
        return self._anchor + k * self._interval

    def start(self, interval_seconds: float, immediate: bool = False) -> None:
        """
        Start ticking every ``interval_seconds``.

        A running timer is stopped first, so there is never more than one.
        Must be called from within a running event loop.

        Args:
            interval_seconds: Seconds between ticks
            immediate: Also fire a tick right away
        """
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")

        self.stop()
        loop = asyncio.get_running_loop()
        self._interval = float(interval_seconds)
        self._anchor = loop.time()
        self._timer = loop.create_task(
            self._run(self._anchor, self._interval, immediate),
            name="auto_refresh_timer",
        )
        logger.info("Auto-refresh started", interval=interval_seconds, immediate=immediate)

    def stop(self) -> None:
        """Cancel the timer. Refreshes already spawned keep running."""
        if self._timer is None:
            return
        if not self._timer.done():
            self._timer.cancel()
            logger.info("Auto-refresh stopped")
        self._timer = None

    def restart(self, interval_seconds: float) -> None:
        """Restart with a new interval, anchored at the time of the call."""
        self.start(interval_seconds)

    def trigger(self) -> asyncio.Task:
        """Fire one refresh now without touching the schedule."""
        return self._spawn_tick(manual=True)

    async def wait_ticks(self) -> None:
        """Wait for spawned refreshes to settle."""
        if self._ticks:
            await asyncio.gather(*list(self._ticks), return_exceptions=True)

    async def _run(self, anchor: float, interval: float, immediate: bool) -> None:
        loop = asyncio.get_running_loop()
        if immediate:
            self._spawn_tick()

        k = 1
        while True:
            due = anchor + k * interval
            delay = due - loop.time()
            if delay < -interval:
                # Loop was blocked past whole intervals; skip to the next future slot
                missed = math.floor(-delay / interval)
                logger.warning("Auto-refresh fell behind", missed_ticks=missed)
                k += missed
                continue
            if delay > 0:
                await asyncio.sleep(delay)
            self._spawn_tick()
            k += 1

    def _spawn_tick(self, manual: bool = False) -> asyncio.Task:
        self._tick_count += 1
        self._metrics.record_tick()
        logger.debug("Auto-refresh tick", tick=self._tick_count, manual=manual)

        task = asyncio.get_running_loop().create_task(
            self._invoke(), name=f"auto_refresh_tick_{self._tick_count}",
        )
        self._ticks.add(task)
        task.add_done_callback(self._ticks.discard)
        return task

    async def _invoke(self) -> None:
        try:
            await self._callback()
        except Exception:
            logger.exception("Auto-refresh tick failed")
