"""
Command-line interface for news-monitor.

Usage:
    news-monitor init-db                 # Create tables
    news-monitor seed                    # Store the built-in sources
    news-monitor sources list            # Show sources by tier
    news-monitor validate URL            # Trial-fetch a feed
    news-monitor fetch [SOURCE_ID]       # Fetch one or all sources
    news-monitor watch                   # Auto-refresh until interrupted
    news-monitor stats                   # Per-source history statistics
    news-monitor settings show|set       # Viewer settings
"""

import asyncio
import signal
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import click

from news_monitor.config.tiers import TIER_CONFIGS, Tier
from news_monitor.errors import MonitorError
from news_monitor.observability.logging import log_context, setup_logging
from news_monitor.observability.metrics import get_metrics


def _run_with_monitor(action: Callable[[Any], Awaitable[None]], load: bool = True) -> None:
    """Open the database, build a NewsMonitor and run one action against it."""
    from news_monitor.services.monitor_service import NewsMonitor
    from news_monitor.storage.database import Database

    ctx = click.get_current_context(silent=True)
    command = ctx.command_path if ctx else None

    async def run():
        db = Database()
        await db.connect()
        try:
            monitor = NewsMonitor(db)
            with log_context(command=command, owner_id=monitor.owner_id):
                if load:
                    await monitor.load()
                await action(monitor)
        finally:
            await db.close()

    try:
        asyncio.run(run())
    except MonitorError as e:
        raise click.ClickException(str(e)) from e


def _format_age(delta: timedelta | None) -> str:
    if delta is None:
        return "-"
    minutes = int(delta.total_seconds() // 60)
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h {minutes % 60}m" if minutes % 60 else f"{hours}h"
    days = hours // 24
    return f"{days}d {hours % 24}h" if hours % 24 else f"{days}d"


def _echo_state(name: str, state) -> None:
    if state.status == "failed":
        click.echo(click.style(f"  ✗ {name}: {state.error}", fg="red"))
        return
    if state.status == "idle":
        click.echo(f"  - {name}: not fetched")
        return
    click.echo(click.style(f"  ✓ {name}: {len(state.articles)} articles", fg="green"))
    for article in state.articles:
        click.echo(f"      {article.title}")
        click.echo(f"      {article.url}")


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """News Monitor - Multi-tier feed monitoring."""
    setup_logging("DEBUG" if debug else None)


@main.command("init-db")
def init_db() -> None:
    """Create the monitor tables."""

    async def action(monitor):
        await monitor.init_storage()
        click.echo("Database initialized successfully")

    _run_with_monitor(action, load=False)


@main.command()
@click.option("--force", is_flag=True, help="Seed even if sources already exist")
def seed(force: bool) -> None:
    """Store the built-in default sources."""

    async def action(monitor):
        existing = await monitor.sources_repository.count()
        if existing and not force:
            click.echo(f"Sources table already has {existing} sources, skipping (use --force)")
            return
        count = await monitor.registry.seed()
        click.echo(click.style(f"Seeded {count} sources", fg="green"))

    _run_with_monitor(action, load=False)


# ── sources ───────────────────────────────────────────────


@main.group()
def sources() -> None:
    """Manage monitored sources."""


@sources.command("list")
@click.option("--tier", type=click.IntRange(1, 4), default=None, help="Only this tier")
def sources_list(tier: int | None) -> None:
    """Show sources grouped by tier, in display order."""

    async def action(monitor):
        tiers = [Tier(tier)] if tier else list(Tier)
        if monitor.registry.using_defaults:
            click.echo(click.style("Store unavailable, showing built-in sources", fg="yellow"))
        for t in tiers:
            config = TIER_CONFIGS[t]
            click.echo(f"\nTier {int(t)} - {config.name} ({config.description})")
            click.echo("-" * 60)
            tier_sources = monitor.sources(t)
            if not tier_sources:
                click.echo("  (none)")
            for position, source in enumerate(tier_sources):
                mark = "x" if source.is_active else " "
                flag = " [default]" if source.is_default else ""
                click.echo(f"  {position}. [{mark}] {source.name}{flag}")
                click.echo(f"       id={source.id}  feed={source.rss_url}")

    _run_with_monitor(action)


@sources.command("add")
@click.argument("name")
@click.argument("rss_url")
@click.option("--tier", type=click.IntRange(1, 4), default=3, help="Tier (1-4)")
@click.option("--url", default=None, help="Website URL")
@click.option("--inactive", is_flag=True, help="Add without fetching it")
@click.option("--skip-validation", is_flag=True, help="Do not trial-fetch the feed first")
def sources_add(
    name: str,
    rss_url: str,
    tier: int,
    url: str | None,
    inactive: bool,
    skip_validation: bool,
) -> None:
    """Validate a feed and add it as a source."""
    from news_monitor.sources.schemas import SourceDraft

    async def action(monitor):
        if not skip_validation:
            result = await monitor.validate(rss_url)
            if not result.valid:
                raise click.ClickException(f"Feed validation failed: {result.error}")
        draft = SourceDraft(name=name, rss_url=rss_url, tier=tier, url=url, is_active=not inactive)
        source = await monitor.add_source(draft)
        click.echo(click.style(f"Added {source.name} (id={source.id}) to tier {int(source.tier)}", fg="green"))

    _run_with_monitor(action)


@sources.command("delete")
@click.argument("source_id")
def sources_delete(source_id: str) -> None:
    """Delete a user-added source."""

    async def action(monitor):
        await monitor.delete_source(source_id)
        click.echo(f"Deleted {source_id}")

    _run_with_monitor(action)


@sources.command("toggle")
@click.argument("source_id")
def sources_toggle(source_id: str) -> None:
    """Activate or deactivate a source."""

    async def action(monitor):
        source = await monitor.toggle_source(source_id)
        state = "active" if source.is_active else "inactive"
        click.echo(f"{source.name} is now {state}")

    _run_with_monitor(action)


@sources.command("reorder")
@click.argument("tier", type=click.IntRange(1, 4))
@click.argument("from_index", type=int)
@click.argument("to_index", type=int)
def sources_reorder(tier: int, from_index: int, to_index: int) -> None:
    """Move the source at FROM_INDEX to TO_INDEX within TIER."""

    async def action(monitor):
        changed = await monitor.reorder(tier, from_index, to_index)
        if not changed:
            click.echo("Order unchanged")
            return
        click.echo(click.style("Order saved", fg="green"))
        for position, source in enumerate(monitor.sources(tier)):
            click.echo(f"  {position}. {source.name}")

    _run_with_monitor(action)


# ── fetching ──────────────────────────────────────────────


@main.command()
@click.argument("url")
def validate(url: str) -> None:
    """Trial-fetch a feed URL and preview its items."""
    from news_monitor.monitor.validator import SourceValidator

    async def run():
        return await SourceValidator().validate(url)

    result = asyncio.run(run())
    if not result.valid:
        click.echo(click.style(f"✗ Invalid feed: {result.error}", fg="red"))
        raise SystemExit(1)

    click.echo(click.style("✓ Valid feed", fg="green"))
    if result.suggested_name:
        click.echo(f"Suggested name: {result.suggested_name}")
    for article in result.articles:
        click.echo(f"  - {article.title}")
        click.echo(f"    {article.url}")


@main.command()
@click.argument("source_id", required=False)
@click.option("--all/--active-only", "include_inactive", default=False,
              help="Include inactive sources")
def fetch(source_id: str | None, include_inactive: bool) -> None:
    """Fetch one source, or every active source."""

    async def action(monitor):
        if source_id:
            state = await monitor.orchestrator.fetch_one(source_id, include_inactive=include_inactive)
            states = {source_id: state}
        else:
            states = await monitor.orchestrator.fetch_all(active_only=not include_inactive)

        names = {s.id: s.name for s in monitor.sources()}
        for sid, state in states.items():
            _echo_state(names.get(sid, sid), state)
        await monitor.stop()

    _run_with_monitor(action)


@main.command()
@click.option("--interval", type=click.IntRange(min=10), default=None,
              help="Override the refresh interval in seconds")
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
def watch(interval: int | None, metrics: bool) -> None:
    """Auto-refresh all active sources until interrupted."""

    async def action(monitor):
        if metrics:
            get_metrics().start_server()

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)

        if not monitor.settings.auto_refresh:
            click.echo("Auto-refresh is disabled in settings; running anyway")
        refresh = interval or monitor.settings.refresh_interval
        monitor.scheduler.start(refresh, immediate=True)
        click.echo(f"Watching {len(monitor.sources())} sources every {refresh}s (Ctrl+C to stop)")

        await stop_event.wait()
        await monitor.stop()
        click.echo("Stopped")

    _run_with_monitor(action)


@main.command()
@click.option("--days", type=int, default=None, help="Only history from the last N days")
def stats(days: int | None) -> None:
    """Per-source totals from the stored news history."""

    async def action(monitor):
        since = datetime.now(timezone.utc) - timedelta(days=days) if days else None
        all_stats = await monitor.stats(since=since)
        now = datetime.now(timezone.utc)

        click.echo(f"\n{'Source':<40} {'Total':>6} {'Published':>10} {'Last item':>10}")
        click.echo("-" * 70)
        for source in monitor.sources():
            stat = all_stats[source.id]
            click.echo(
                f"{source.name[:40]:<40} {stat.total:>6} {stat.published:>10} "
                f"{_format_age(stat.age(now)):>10}"
            )

    _run_with_monitor(action)


# ── settings ──────────────────────────────────────────────


@main.group()
def settings() -> None:
    """Show or change viewer settings."""


@settings.command("show")
def settings_show() -> None:
    """Print the current settings."""

    async def action(monitor):
        current = monitor.settings
        click.echo(f"Owner:               {current.owner_id}")
        click.echo(f"Refresh interval:    {current.refresh_interval}s")
        click.echo(f"Articles per source: {current.articles_per_source}")
        click.echo(f"Auto-refresh:        {'on' if current.auto_refresh else 'off'}")
        click.echo(f"Auto-analyze:        {'on' if current.auto_analyze else 'off'}")

    _run_with_monitor(action)


@settings.command("set")
@click.option("--refresh-interval", type=int, default=None)
@click.option("--articles-per-source", type=int, default=None)
@click.option("--auto-refresh/--no-auto-refresh", default=None)
@click.option("--auto-analyze/--no-auto-analyze", default=None)
def settings_set(
    refresh_interval: int | None,
    articles_per_source: int | None,
    auto_refresh: bool | None,
    auto_analyze: bool | None,
) -> None:
    """Change one or more settings."""
    patch = {
        key: value
        for key, value in {
            "refresh_interval": refresh_interval,
            "articles_per_source": articles_per_source,
            "auto_refresh": auto_refresh,
            "auto_analyze": auto_analyze,
        }.items()
        if value is not None
    }
    if not patch:
        raise click.UsageError("Nothing to change")

    async def action(monitor):
        updated = await monitor.update_settings(**patch)
        await monitor.stop()
        click.echo(click.style("Settings saved", fg="green"))
        for key in sorted(patch):
            click.echo(f"  {key} = {getattr(updated, key)}")

    _run_with_monitor(action)


if __name__ == "__main__":
    main()
