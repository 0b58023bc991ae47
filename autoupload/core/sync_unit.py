"""Per-file sync unit: decides when a changed file is uploaded."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from autoupload.core.file_watcher import WatchSubscription
from autoupload.core.local_files import LocalFiles
from autoupload.core.remote_client import RemoteClient, RemoteError, RemoteNotFoundError
from autoupload.models.sync_types import FilePair, Policy, UnitState, file_age, upload_delay

logger = logging.getLogger(__name__)


class SyncUnit:
    """State machine that throttles uploads of one local file.

    A change while ``IDLE`` starts one sequential task: look up remote metadata
    and stat the local file, then upload now or wait until the remote copy is
    ``min_update_interval`` seconds behind and upload then. Changes that arrive
    while the task is running are dropped; the upload reads the file when it is
    sent, so the latest content always wins.
    """

    def __init__(
        self,
        pair: FilePair,
        policy: Policy,
        remote_client: RemoteClient,
        local_files: LocalFiles,
    ):
        """Initialize sync unit.

        Args:
            pair: Local file and remote path to mirror it to
            policy: Throttling policy shared by all units
            remote_client: Remote storage backend
            local_files: Filesystem access
        """
        self.pair = pair
        self.policy = policy
        self.remote_client = remote_client
        self.local_files = local_files

        self.state = UnitState.IDLE
        self.subscription: Optional[WatchSubscription] = None
        # Event loop time at which a deferred upload fires, while WAITING
        self.upload_due: Optional[float] = None
        self._task: Optional[asyncio.Task] = None
        self.closed = False

        # Statistics
        self._stats = {
            "changes": 0,
            "dropped_events": 0,
            "checks": 0,
            "deferred": 0,
            "uploads": 0,
            "errors": 0,
        }

    @property
    def local_path(self) -> Path:
        return self.pair.local_path

    @property
    def remote_path(self) -> str:
        return self.pair.remote_path

    def notify_change(self) -> None:
        """Handle a change to the local file. Must run on the event loop thread."""
        if self.closed:
            logger.debug(f"Ignoring change to {self.local_path} after close")
            return

        self._stats["changes"] += 1

        if self.state is not UnitState.IDLE:
            self._stats["dropped_events"] += 1
            logger.debug(f"Ignoring change to {self.local_path} while {self.state.value}")
            return

        # Leave IDLE before the task exists so no second chain can start
        self.state = UnitState.CHECKING
        self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        try:
            await self._reconcile()
        except asyncio.CancelledError:
            logger.debug(f"Sync of {self.local_path} cancelled while {self.state.value}")
            raise
        except Exception as e:
            self._stats["errors"] += 1
            logger.error(f"Unexpected error syncing {self.pair}: {e}", exc_info=True)
        finally:
            self.state = UnitState.IDLE
            self.upload_due = None
            self._task = None

    async def _reconcile(self) -> None:
        """Compare local and remote timestamps, then upload now or later."""
        self._stats["checks"] += 1

        remote_info, local_info = await asyncio.gather(
            self.remote_client.get_metadata(self.remote_path),
            self.local_files.stat(self.local_path),
            return_exceptions=True,
        )

        # Nothing to compare against, upload regardless of the local stat
        if isinstance(remote_info, RemoteNotFoundError):
            logger.info(f"File {self.remote_path} not found remotely, uploading now.")
            await self._upload()
            return

        if isinstance(remote_info, BaseException):
            self._stats["errors"] += 1
            logger.error(f"Error getting file metadata for {self.remote_path}: {remote_info}")
            return

        if isinstance(local_info, BaseException):
            self._stats["errors"] += 1
            logger.error(f"Unable to get information on file {self.local_path}: {local_info}")
            return

        age = file_age(local_info, remote_info)
        delay = upload_delay(age, self.policy)

        if delay is None:
            logger.info(f"File {self.local_path} is {age * 1000:.0f} ms old, updating now.")
        else:
            logger.info(
                f"File {self.local_path} is {age * 1000:.0f} ms old, updating in {delay * 1000:.0f} ms."
            )
            self._stats["deferred"] += 1
            self.state = UnitState.WAITING
            self.upload_due = asyncio.get_running_loop().time() + delay
            await self._wait(delay)

        await self._upload()

    async def _wait(self, delay: float) -> None:
        """Sleep out the throttle window."""
        await asyncio.sleep(delay)

    async def _upload(self) -> None:
        """Read the file as it is now and overwrite the remote copy."""
        self.state = UnitState.UPLOADING
        self.upload_due = None

        logger.info(f"Reading {self.local_path}")
        try:
            data = await self.local_files.read_bytes(self.local_path)
        except OSError as e:
            self._stats["errors"] += 1
            logger.error(f"Error reading file {self.local_path}: {e}")
            return

        logger.info(f"Uploading {self.local_path} to {self.remote_path}")
        try:
            await self.remote_client.upload(self.remote_path, data)
        except RemoteError as e:
            self._stats["errors"] += 1
            logger.error(f"Error uploading file {self.local_path}: {e}")
            return

        self._stats["uploads"] += 1
        logger.info(f"Uploaded file {self.local_path} to {self.remote_path}")

    async def close(self) -> None:
        """Stop watching the file and cancel any pending or running sync."""
        self.closed = True

        if self.subscription is not None:
            self.subscription.cancel()
            self.subscription = None

        task = self._task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    def get_statistics(self) -> dict:
        """Get unit statistics.

        Returns:
            Dictionary with the unit state and counters
        """
        return {"state": self.state.value, **self._stats}
