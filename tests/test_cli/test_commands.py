"""Tests for the news-monitor CLI commands."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from news_monitor.analytics.schemas import SourceStats
from news_monitor.cli import _format_age, main
from news_monitor.config.tiers import Tier
from news_monitor.errors import ProtectedEntityError
from news_monitor.monitor.schemas import ViewerSettings
from news_monitor.monitor.validator import ValidationResult
from news_monitor.sources.schemas import Source


# ── Fixtures ──────────────────────────────────────────────


@pytest.fixture
def runner():
    return CliRunner()


def _mock_db():
    """Create a mock Database."""
    db = AsyncMock()
    db.connect = AsyncMock()
    db.close = AsyncMock()
    return db


def _sources():
    return [
        Source(id="default-1", name="Skatteetaten", rss_url="https://www.skatteetaten.no/rss/",
               tier=Tier.GOVERNMENT, is_default=True),
        Source(id="u-1", name="Stripe Blog", rss_url="https://stripe.com/blog/feed.rss",
               tier=Tier.GLOBAL_TECH, is_active=False),
    ]


def _mock_monitor():
    """MagicMock shaped like NewsMonitor."""
    monitor = MagicMock()
    monitor.load = AsyncMock()
    monitor.init_storage = AsyncMock()
    monitor.stop = AsyncMock()
    monitor.validate = AsyncMock()
    monitor.add_source = AsyncMock()
    monitor.delete_source = AsyncMock(return_value=True)
    monitor.toggle_source = AsyncMock()
    monitor.reorder = AsyncMock(return_value=False)
    monitor.update_settings = AsyncMock()
    monitor.stats = AsyncMock(return_value={})
    monitor.sources_repository.count = AsyncMock(return_value=0)
    monitor.registry.seed = AsyncMock(return_value=22)
    monitor.registry.using_defaults = False
    monitor.settings = ViewerSettings(owner_id="alice")

    sources = _sources()
    monitor.sources = MagicMock(
        side_effect=lambda tier=None: [s for s in sources if tier is None or s.tier == tier]
    )
    return monitor


def _invoke(runner, args, monitor):
    with patch("news_monitor.storage.database.Database", return_value=_mock_db()), \
         patch("news_monitor.services.monitor_service.NewsMonitor", return_value=monitor):
        return runner.invoke(main, args)


# ── setup commands ────────────────────────────────────────


class TestInitDb:
    def test_creates_tables_without_loading(self, runner):
        monitor = _mock_monitor()

        result = _invoke(runner, ["init-db"], monitor)

        assert result.exit_code == 0
        assert "Database initialized successfully" in result.output
        monitor.init_storage.assert_awaited_once()
        monitor.load.assert_not_awaited()


class TestSeed:
    def test_seeds_empty_table(self, runner):
        monitor = _mock_monitor()

        result = _invoke(runner, ["seed"], monitor)

        assert result.exit_code == 0
        assert "Seeded 22 sources" in result.output

    def test_skips_populated_table(self, runner):
        monitor = _mock_monitor()
        monitor.sources_repository.count = AsyncMock(return_value=5)

        result = _invoke(runner, ["seed"], monitor)

        assert result.exit_code == 0
        assert "already has 5 sources" in result.output
        monitor.registry.seed.assert_not_awaited()

    def test_force(self, runner):
        monitor = _mock_monitor()
        monitor.sources_repository.count = AsyncMock(return_value=5)

        result = _invoke(runner, ["seed", "--force"], monitor)

        assert result.exit_code == 0
        monitor.registry.seed.assert_awaited_once()


# ── sources ───────────────────────────────────────────────


class TestSourcesList:
    def test_grouped_by_tier(self, runner):
        result = _invoke(runner, ["sources", "list"], _mock_monitor())

        assert result.exit_code == 0
        assert "Tier 1 - Government" in result.output
        assert "0. [x] Skatteetaten [default]" in result.output
        assert "0. [ ] Stripe Blog" in result.output
        assert "(none)" in result.output

    def test_single_tier(self, runner):
        result = _invoke(runner, ["sources", "list", "--tier", "3"], _mock_monitor())

        assert result.exit_code == 0
        assert "Stripe Blog" in result.output
        assert "Skatteetaten" not in result.output


class TestSourcesAdd:
    def test_validation_failure_stops_add(self, runner):
        monitor = _mock_monitor()
        monitor.validate.return_value = ValidationResult(valid=False, error="No articles found in feed")

        result = _invoke(runner, ["sources", "add", "Empty", "https://empty.example/feed"], monitor)

        assert result.exit_code == 1
        assert "Feed validation failed: No articles found in feed" in result.output
        monitor.add_source.assert_not_awaited()

    def test_adds_after_validation(self, runner):
        monitor = _mock_monitor()
        monitor.validate.return_value = ValidationResult(valid=True)
        monitor.add_source.return_value = Source(
            id="new-id", name="Blog", rss_url="https://blog.example/feed", tier=Tier.AGGREGATORS,
        )

        result = _invoke(
            runner,
            ["sources", "add", "Blog", "https://blog.example/feed", "--tier", "4", "--inactive"],
            monitor,
        )

        assert result.exit_code == 0
        assert "Added Blog (id=new-id) to tier 4" in result.output
        draft = monitor.add_source.call_args[0][0]
        assert draft.tier == 4
        assert draft.is_active is False

    def test_skip_validation(self, runner):
        monitor = _mock_monitor()
        monitor.add_source.return_value = _sources()[1]

        result = _invoke(
            runner, ["sources", "add", "Blog", "https://blog.example/feed", "--skip-validation"], monitor,
        )

        assert result.exit_code == 0
        monitor.validate.assert_not_awaited()


class TestSourcesDelete:
    def test_protected_source(self, runner):
        monitor = _mock_monitor()
        monitor.delete_source.side_effect = ProtectedEntityError("default-1")

        result = _invoke(runner, ["sources", "delete", "default-1"], monitor)

        assert result.exit_code == 1
        assert "cannot be deleted" in result.output

    def test_deleted(self, runner):
        result = _invoke(runner, ["sources", "delete", "u-1"], _mock_monitor())

        assert result.exit_code == 0
        assert "Deleted u-1" in result.output


class TestSourcesToggleAndReorder:
    def test_toggle(self, runner):
        monitor = _mock_monitor()
        monitor.toggle_source.return_value = _sources()[1]

        result = _invoke(runner, ["sources", "toggle", "u-1"], monitor)

        assert result.exit_code == 0
        assert "Stripe Blog is now inactive" in result.output

    def test_reorder_unchanged(self, runner):
        result = _invoke(runner, ["sources", "reorder", "2", "1", "1"], _mock_monitor())

        assert result.exit_code == 0
        assert "Order unchanged" in result.output

    def test_reorder_saved(self, runner):
        monitor = _mock_monitor()
        monitor.reorder.return_value = True

        result = _invoke(runner, ["sources", "reorder", "3", "0", "1"], monitor)

        assert result.exit_code == 0
        assert "Order saved" in result.output
        monitor.reorder.assert_awaited_once_with(3, 0, 1)


# ── validate ──────────────────────────────────────────────


class TestValidate:
    def test_valid_feed(self, runner):
        validator = MagicMock()
        validator.validate = AsyncMock(return_value=ValidationResult(valid=True, suggested_name="Digi"))

        with patch("news_monitor.monitor.validator.SourceValidator", return_value=validator):
            result = runner.invoke(main, ["validate", "https://www.digi.no/rss"])

        assert result.exit_code == 0
        assert "Valid feed" in result.output
        assert "Suggested name: Digi" in result.output

    def test_invalid_feed(self, runner):
        validator = MagicMock()
        validator.validate = AsyncMock(
            return_value=ValidationResult(valid=False, error="Failed to fetch feed: 404")
        )

        with patch("news_monitor.monitor.validator.SourceValidator", return_value=validator):
            result = runner.invoke(main, ["validate", "https://broken.example/feed"])

        assert result.exit_code == 1
        assert "Invalid feed: Failed to fetch feed: 404" in result.output


# ── stats and settings ────────────────────────────────────


class TestStats:
    def test_table(self, runner):
        monitor = _mock_monitor()
        now = datetime.now(timezone.utc)
        monitor.stats.return_value = {
            "default-1": SourceStats("default-1", total=12, published=3,
                                     last_item_at=now - timedelta(hours=2)),
            "u-1": SourceStats("u-1"),
        }

        result = _invoke(runner, ["stats", "--days", "7"], monitor)

        assert result.exit_code == 0
        assert "Skatteetaten" in result.output
        assert "12" in result.output
        since = monitor.stats.call_args.kwargs["since"]
        assert now - since > timedelta(days=6)


class TestSettings:
    def test_show(self, runner):
        result = _invoke(runner, ["settings", "show"], _mock_monitor())

        assert result.exit_code == 0
        assert "Owner:               alice" in result.output
        assert "Refresh interval:    300s" in result.output

    def test_set_requires_a_change(self, runner):
        result = runner.invoke(main, ["settings", "set"])

        assert result.exit_code == 2
        assert "Nothing to change" in result.output

    def test_set(self, runner):
        monitor = _mock_monitor()
        monitor.update_settings.return_value = ViewerSettings(
            owner_id="alice", refresh_interval=60, auto_analyze=True,
        )

        result = _invoke(
            runner, ["settings", "set", "--refresh-interval", "60", "--auto-analyze"], monitor,
        )

        assert result.exit_code == 0
        monitor.update_settings.assert_awaited_once_with(refresh_interval=60, auto_analyze=True)
        assert "refresh_interval = 60" in result.output
        monitor.stop.assert_awaited_once()


class TestFormatAge:
    @pytest.mark.parametrize("delta,expected", [
        (None, "-"),
        (timedelta(seconds=30), "just now"),
        (timedelta(minutes=5), "5m"),
        (timedelta(hours=2), "2h"),
        (timedelta(hours=2, minutes=15), "2h 15m"),
        (timedelta(days=3, hours=4), "3d 4h"),
    ])
    def test_format(self, delta, expected):
        assert _format_age(delta) == expected
