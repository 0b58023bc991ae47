"""
Tests for SyncEngine with mocked remote client, watcher and filesystem.
"""

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from autoupload.core.remote_client import RemoteError, RemoteNotFoundError
from autoupload.core.sync_engine import SyncEngine
from autoupload.models.sync_types import FilePair, LocalInfo, Policy, RemoteInfo, UnitState


@pytest.fixture
def pairs():
    return [
        FilePair(Path("/data/a.txt"), "/a.txt"),
        FilePair(Path("/data/b.txt"), "/b.txt"),
    ]


@pytest.fixture
def mock_remote():
    mock = AsyncMock()
    mock.get_metadata.side_effect = RemoteNotFoundError("path/not_found/")
    return mock


@pytest.fixture
def mock_local_files():
    mock = AsyncMock()
    mock.stat.return_value = LocalInfo(modified=datetime(2024, 1, 1, tzinfo=timezone.utc))
    mock.read_bytes.return_value = b"content"
    return mock


@pytest.fixture
def mock_watcher():
    """FileWatcher mock handing out a fresh subscription per call."""
    mock = MagicMock()
    mock.subscribe.side_effect = lambda path, callback: MagicMock(name=f"subscription:{path}")
    return mock


@pytest.fixture
def engine(mock_remote, mock_watcher, mock_local_files):
    return SyncEngine(Policy(0), mock_remote, mock_watcher, mock_local_files)


async def settle(engine: SyncEngine) -> None:
    tasks = [unit._task for unit in engine.units.values() if unit._task is not None]
    if tasks:
        await asyncio.gather(*tasks)


class TestSyncEngineStart:
    """Startup reconciliation and wiring."""

    async def test_start_creates_unit_per_pair(self, engine, pairs, mock_watcher):
        await engine.start(pairs)

        assert list(engine.units) == pairs
        for pair in pairs:
            unit = engine.units[pair]
            mock_watcher.subscribe.assert_any_call(pair.local_path, unit.notify_change)
            assert unit.subscription is not None

        await settle(engine)

    async def test_start_reconciles_every_pair(self, engine, pairs, mock_remote):
        await engine.start(pairs)
        await settle(engine)

        assert mock_remote.get_metadata.await_count == 2
        uploaded = sorted(call.args[0] for call in mock_remote.upload.await_args_list)
        assert uploaded == ["/a.txt", "/b.txt"]
        assert all(unit.state is UnitState.IDLE for unit in engine.units.values())

    async def test_start_twice_is_ignored(self, engine, pairs, mock_watcher):
        await engine.start(pairs)
        await engine.start(pairs)
        await settle(engine)

        assert mock_watcher.subscribe.call_count == 2

    async def test_duplicate_pair_is_ignored(self, engine, pairs, mock_watcher):
        await engine.start([pairs[0], pairs[0]])
        await settle(engine)

        assert len(engine.units) == 1
        assert mock_watcher.subscribe.call_count == 1

    async def test_watch_failure_does_not_abort_other_pairs(self, engine, pairs, mock_watcher):
        def subscribe(path, callback):
            if path == pairs[0].local_path:
                raise FileNotFoundError("Watch directory does not exist")
            return MagicMock()

        mock_watcher.subscribe.side_effect = subscribe

        await engine.start(pairs)
        await settle(engine)

        assert engine.units[pairs[0]].subscription is None
        assert engine.units[pairs[1]].subscription is not None

    async def test_error_in_one_unit_does_not_affect_others(self, engine, pairs, mock_remote):
        async def metadata(remote_path):
            if remote_path == "/a.txt":
                raise RemoteError("rate limited")
            raise RemoteNotFoundError("path/not_found/")

        mock_remote.get_metadata.side_effect = metadata

        await engine.start(pairs)
        await settle(engine)

        mock_remote.upload.assert_awaited_once_with("/b.txt", b"content")
        stats = engine.get_statistics()
        assert stats["errors"] == 1
        assert stats["uploads"] == 1


class TestSyncEngineEvents:
    """Change notifications routed through the watcher callback."""

    async def test_watcher_callback_triggers_reconciliation(self, engine, pairs, mock_watcher, mock_remote):
        await engine.start(pairs[:1])
        await settle(engine)

        callback = mock_watcher.subscribe.call_args.args[1]
        callback()
        await settle(engine)

        assert mock_remote.get_metadata.await_count == 2
        assert mock_remote.upload.await_count == 2


class TestSyncEngineStop:
    """Scoped shutdown."""

    async def test_stop_releases_subscriptions_and_pending_uploads(
        self, mock_remote, mock_watcher, mock_local_files, pairs
    ):
        mock_remote.get_metadata.side_effect = None
        mock_remote.get_metadata.return_value = RemoteInfo(
            server_modified=datetime(2024, 1, 1, tzinfo=timezone.utc)
        )
        engine = SyncEngine(Policy(3600), mock_remote, mock_watcher, mock_local_files)

        await engine.start(pairs)
        for unit in engine.units.values():
            while unit.state is not UnitState.WAITING:
                await asyncio.sleep(0.01)
        subscriptions = [unit.subscription for unit in engine.units.values()]

        await engine.stop()

        for subscription in subscriptions:
            subscription.cancel.assert_called_once()
        assert all(unit.state is UnitState.IDLE for unit in engine.units.values())
        mock_remote.upload.assert_not_awaited()
        assert engine.running is False

    async def test_change_queued_before_stop_is_ignored(self, engine, pairs, mock_watcher, mock_remote):
        """A watcher callback delivered after stop() starts no new sync."""
        await engine.start(pairs[:1])
        await settle(engine)
        callback = mock_watcher.subscribe.call_args.args[1]
        uploads_before = mock_remote.upload.await_count

        await engine.stop()
        callback()
        await asyncio.sleep(0.05)

        unit = engine.units[pairs[0]]
        assert unit._task is None
        assert unit.state is UnitState.IDLE
        assert mock_remote.upload.await_count == uploads_before
        assert mock_remote.get_metadata.await_count == 1

    async def test_async_context_manager_stops(self, engine, pairs):
        async with engine:
            await engine.start(pairs)
            await settle(engine)
            assert engine.running is True

        assert engine.running is False

    async def test_stop_not_running(self, engine):
        await engine.stop()
        assert engine.running is False


class TestSyncEngineStatistics:
    def test_statistics_empty(self, engine):
        stats = engine.get_statistics()

        assert stats["files"] == 0
        assert stats["idle"] == 0
        assert stats["waiting"] == 0

    async def test_statistics_after_start(self, engine, pairs):
        await engine.start(pairs)
        await settle(engine)

        stats = engine.get_statistics()
        assert stats["files"] == 2
        assert stats["idle"] == 2
        assert stats["uploads"] == 2
        assert stats["changes"] == 2
