"""Async access to the local files being mirrored."""

from pathlib import Path

import aiofiles
import aiofiles.os

from autoupload.models.sync_types import LocalInfo


class LocalFiles:
    """Filesystem reads used by sync units. Errors surface as ``OSError``."""

    async def stat(self, local_path: Path) -> LocalInfo:
        """Get the modification time of a local file."""
        stats = await aiofiles.os.stat(local_path)
        return LocalInfo.from_mtime(stats.st_mtime)

    async def read_bytes(self, local_path: Path) -> bytes:
        """Read the current content of a local file."""
        async with aiofiles.open(local_path, "rb") as f:
            return await f.read()
