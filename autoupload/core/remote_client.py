"""Remote storage interface used by the sync engine."""

from abc import ABC, abstractmethod
from typing import Optional

from autoupload.models.simple_config import SimpleConfig
from autoupload.models.sync_types import RemoteInfo


class RemoteError(Exception):
    """A remote storage call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteNotFoundError(RemoteError):
    """Nothing exists at the remote path yet."""


class RemoteClient(ABC):
    """Metadata lookup and overwrite upload against a remote store."""

    async def initialize(self) -> None:
        """Open connections. Raises if the client cannot be constructed."""

    async def close(self) -> None:
        """Release connections."""

    @abstractmethod
    async def get_metadata(self, remote_path: str) -> RemoteInfo:
        """Get metadata for the object at ``remote_path``.

        Raises:
            RemoteNotFoundError: If nothing exists at the path
            RemoteError: On any other failure
        """

    @abstractmethod
    async def upload(self, remote_path: str, data: bytes) -> None:
        """Upload ``data`` to ``remote_path``, overwriting any existing object.

        Raises:
            RemoteError: If the upload failed
        """


def create_remote_client(config: SimpleConfig) -> RemoteClient:
    """Create the remote client selected by the configuration."""
    if config.remote == "s3":
        from autoupload.core.s3_manager import S3Manager

        return S3Manager(config)

    from autoupload.core.dropbox_client import DropboxClient

    return DropboxClient(config.access_token or "")
