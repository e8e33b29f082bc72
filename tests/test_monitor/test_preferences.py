"""Tests for viewer settings storage and SettingsManager."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from news_monitor.errors import PersistenceError, ValidationError
from news_monitor.monitor.config import MonitorConfig
from news_monitor.monitor.events import SETTINGS_CHANGED, EventBus
from news_monitor.monitor.preferences import SettingsManager, SettingsRepository
from news_monitor.monitor.scheduler import AutoRefreshScheduler
from news_monitor.monitor.schemas import ViewerSettings


@pytest.fixture
def settings_row() -> dict:
    return {
        "user_id": "alice",
        "refresh_interval": 120,
        "articles_per_source": 8,
        "auto_refresh": False,
        "auto_analyze": True,
        "expanded_sources": ["default-3"],
    }


@pytest.fixture
def scheduler():
    mock = MagicMock(spec=AutoRefreshScheduler)
    mock.running = True
    return mock


@pytest.fixture
def orchestrator():
    return MagicMock(articles_per_source=5)


@pytest.fixture
def repo():
    mock = AsyncMock(spec=SettingsRepository)
    mock.get = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def manager(repo, scheduler, orchestrator):
    return SettingsManager(repo, "alice", scheduler=scheduler, orchestrator=orchestrator)


class TestViewerSettings:
    def test_defaults(self):
        settings = ViewerSettings()
        assert settings.refresh_interval == 300
        assert settings.articles_per_source == 5
        assert settings.auto_refresh is True
        assert settings.auto_analyze is False

    @pytest.mark.parametrize("patch", [
        {"refresh_interval": 5},
        {"articles_per_source": 0},
        {"articles_per_source": 51},
        {"theme": "dark"},
    ])
    def test_invalid_updates(self, patch):
        with pytest.raises(ValidationError):
            ViewerSettings().with_updates(**patch)

    def test_with_updates_returns_copy(self):
        original = ViewerSettings()
        updated = original.with_updates(refresh_interval=60)

        assert updated.refresh_interval == 60
        assert original.refresh_interval == 300


class TestSettingsRepository:
    @pytest.mark.asyncio
    async def test_get_maps_row(self, mock_database, settings_row):
        mock_database.fetchrow.return_value = settings_row

        settings = await SettingsRepository(mock_database).get("alice")

        assert mock_database.fetchrow.call_args[0][1] == "alice"
        assert settings.owner_id == "alice"
        assert settings.refresh_interval == 120
        assert settings.expanded_sources == ["default-3"]

    @pytest.mark.asyncio
    async def test_get_missing(self, mock_database):
        assert await SettingsRepository(mock_database).get("nobody") is None

    @pytest.mark.asyncio
    async def test_save_upserts_on_user_id(self, mock_database):
        settings = ViewerSettings(owner_id="alice", refresh_interval=60, expanded_sources=["x"])

        await SettingsRepository(mock_database).save(settings)

        args = mock_database.execute.call_args[0]
        assert "ON CONFLICT (user_id) DO UPDATE" in args[0]
        assert args[1:] == ("alice", 60, 5, True, False, ["x"])

    @pytest.mark.asyncio
    async def test_save_failure(self, mock_database):
        mock_database.execute.side_effect = OSError("connection lost")

        with pytest.raises(PersistenceError, match="update_settings failed"):
            await SettingsRepository(mock_database).save(ViewerSettings())


class TestLoad:
    @pytest.mark.asyncio
    async def test_stored_settings(self, manager, repo, orchestrator, settings_row):
        repo.get.return_value = ViewerSettings(
            owner_id="alice", refresh_interval=120, articles_per_source=8,
        )

        settings = await manager.load()

        repo.get.assert_awaited_once_with("alice")
        assert settings.refresh_interval == 120
        assert orchestrator.articles_per_source == 8

    @pytest.mark.asyncio
    async def test_defaults_when_absent(self, repo, scheduler, orchestrator):
        manager = SettingsManager(
            repo, "alice", scheduler, orchestrator,
            config=MonitorConfig(default_refresh_interval=60, default_articles_per_source=4),
        )

        settings = await manager.load()

        assert settings.owner_id == "alice"
        assert settings.refresh_interval == 60
        assert orchestrator.articles_per_source == 4

    @pytest.mark.asyncio
    async def test_defaults_when_store_fails(self, manager, repo):
        repo.get.side_effect = PersistenceError("get_settings", "down")

        settings = await manager.load()

        assert settings.refresh_interval == 300

    @pytest.mark.asyncio
    async def test_start_scheduler_respects_auto_refresh(self, manager, repo, scheduler):
        repo.get.return_value = ViewerSettings(owner_id="alice", auto_refresh=False)
        await manager.load()

        assert manager.start_scheduler() is False
        scheduler.start.assert_not_called()

    @pytest.mark.asyncio
    async def test_start_scheduler_fires_immediately(self, manager, scheduler):
        await manager.load()

        assert manager.start_scheduler() is True
        scheduler.start.assert_called_once_with(300, immediate=True)


class TestUpdate:
    @pytest.mark.asyncio
    async def test_interval_change_restarts_running_scheduler(self, manager, repo, scheduler):
        await manager.load()

        updated = await manager.update(refresh_interval=60)

        scheduler.restart.assert_called_once_with(60)
        repo.save.assert_awaited_once_with(updated)

    @pytest.mark.asyncio
    async def test_interval_change_while_stopped(self, manager, scheduler):
        scheduler.running = False
        await manager.load()

        await manager.update(refresh_interval=60)

        scheduler.restart.assert_not_called()
        scheduler.start.assert_not_called()

    @pytest.mark.asyncio
    async def test_disabling_auto_refresh_stops(self, manager, scheduler):
        await manager.load()

        await manager.update(auto_refresh=False)

        scheduler.stop.assert_called_once()

    @pytest.mark.asyncio
    async def test_enabling_auto_refresh_starts(self, manager, repo, scheduler):
        repo.get.return_value = ViewerSettings(owner_id="alice", auto_refresh=False)
        await manager.load()

        await manager.update(auto_refresh=True, refresh_interval=45)

        scheduler.start.assert_called_once_with(45)

    @pytest.mark.asyncio
    async def test_articles_per_source_pushed_to_orchestrator(self, manager, orchestrator, scheduler):
        await manager.load()

        await manager.update(articles_per_source=12)

        assert orchestrator.articles_per_source == 12
        scheduler.restart.assert_not_called()

    @pytest.mark.asyncio
    async def test_save_failure_keeps_local_change(self, manager, repo):
        repo.save.side_effect = PersistenceError("update_settings", "down")
        await manager.load()

        with pytest.raises(PersistenceError):
            await manager.update(auto_analyze=True)

        assert manager.settings.auto_analyze is True

    @pytest.mark.asyncio
    async def test_invalid_patch_changes_nothing(self, manager, repo, scheduler):
        await manager.load()

        with pytest.raises(ValidationError):
            await manager.update(refresh_interval=1)

        assert manager.settings.refresh_interval == 300
        repo.save.assert_not_called()
        scheduler.restart.assert_not_called()

    @pytest.mark.asyncio
    async def test_publishes_settings_changed(self, repo):
        events = EventBus()
        received = []
        events.subscribe(lambda e: received.append(e.payload), SETTINGS_CHANGED)
        manager = SettingsManager(repo, "alice", events=events)

        await manager.update(auto_analyze=True)

        assert received == [{"owner_id": "alice", "fields": ["auto_analyze"]}]

    @pytest.mark.asyncio
    async def test_toggle_expanded(self, manager):
        await manager.load()

        await manager.toggle_expanded("default-1")
        assert manager.settings.expanded_sources == ["default-1"]

        await manager.toggle_expanded("default-1")
        assert manager.settings.expanded_sources == []
