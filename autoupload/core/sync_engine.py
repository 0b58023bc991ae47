"""Sync engine: owns one sync unit per configured file pair."""

import asyncio
import logging
from typing import Dict, Iterable, Optional

from autoupload.core.file_watcher import FileWatcher
from autoupload.core.local_files import LocalFiles
from autoupload.core.remote_client import RemoteClient
from autoupload.core.sync_unit import SyncUnit
from autoupload.models.sync_types import FilePair, Policy, UnitState

logger = logging.getLogger(__name__)


class SyncEngine:
    """Creates sync units, runs their startup check and wires them to the watcher."""

    def __init__(
        self,
        policy: Policy,
        remote_client: RemoteClient,
        file_watcher: FileWatcher,
        local_files: Optional[LocalFiles] = None,
    ):
        """Initialize sync engine.

        Args:
            policy: Throttling policy shared by all units
            remote_client: Remote storage backend (shared)
            file_watcher: Started FileWatcher that reports local changes
            local_files: Filesystem access, defaults to LocalFiles()
        """
        self.policy = policy
        self.remote_client = remote_client
        self.file_watcher = file_watcher
        self.local_files = local_files or LocalFiles()
        self.units: Dict[FilePair, SyncUnit] = {}
        self.running = False

    async def start(self, pairs: Iterable[FilePair]) -> None:
        """Create a unit per pair, reconcile it now, then watch it for changes.

        A pair that cannot be watched is logged and skipped; the others still run.
        """
        if self.running:
            logger.warning("Sync engine is already running")
            return

        self.running = True
        logger.info(f"Minimum update interval: {self.policy.min_update_interval:g} s")

        for pair in pairs:
            if pair in self.units:
                logger.warning(f"Duplicate file pair ignored: {pair}")
                continue

            unit = SyncUnit(pair, self.policy, self.remote_client, self.local_files)
            self.units[pair] = unit

            # Startup counts as a change so stale or missing remote copies are fixed
            unit.notify_change()

            try:
                unit.subscription = self.file_watcher.subscribe(pair.local_path, unit.notify_change)
            except (OSError, RuntimeError) as e:
                logger.error(f"Unable to watch file {pair.local_path}: {e}")

        logger.info(f"Sync engine started with {len(self.units)} files")

    async def stop(self) -> None:
        """Release every watch subscription and cancel pending uploads."""
        if not self.running:
            return

        logger.info("Stopping sync engine")
        self.running = False
        await asyncio.gather(*(unit.close() for unit in self.units.values()))
        logger.info("Sync engine stopped")

    async def __aenter__(self) -> "SyncEngine":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def get_statistics(self) -> dict:
        """Get engine statistics.

        Returns:
            Counters summed over all units, plus how many units are in each state
        """
        stats: Dict[str, int] = {"files": len(self.units)}
        for state in UnitState:
            stats[state.value] = 0

        for unit in self.units.values():
            for key, value in unit.get_statistics().items():
                if key == "state":
                    stats[value] += 1
                else:
                    stats[key] = stats.get(key, 0) + value

        return stats
