"""Value types shared by the sync engine and its collaborators."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional


class UnitState(Enum):
    """Lifecycle state of a single sync unit."""

    IDLE = "idle"
    CHECKING = "checking"  # metadata lookup + local stat in flight
    WAITING = "waiting"  # deferred upload armed
    UPLOADING = "uploading"


@dataclass(frozen=True)
class FilePair:
    """A local file and the remote path it is mirrored to."""

    local_path: Path
    remote_path: str

    def __str__(self) -> str:
        return f"{self.local_path} -> {self.remote_path}"


@dataclass(frozen=True)
class RemoteInfo:
    """Metadata of the remote copy of a file."""

    server_modified: datetime


@dataclass(frozen=True)
class LocalInfo:
    """Metadata of the local file."""

    modified: datetime

    @classmethod
    def from_mtime(cls, mtime: float) -> "LocalInfo":
        """Build from an ``os.stat`` modification time."""
        return cls(modified=datetime.fromtimestamp(mtime, tz=timezone.utc))


@dataclass(frozen=True)
class Policy:
    """Upload throttling policy shared by every sync unit."""

    min_update_interval: float = 0.0

    def __post_init__(self):
        if self.min_update_interval < 0:
            raise ValueError(f"min_update_interval must be >= 0, got {self.min_update_interval}")


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so local and remote times compare."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def file_age(local: LocalInfo, remote: RemoteInfo) -> float:
    """Seconds the local file is ahead of the remote copy (negative if behind)."""
    return (as_utc(local.modified) - as_utc(remote.server_modified)).total_seconds()


def upload_delay(age: float, policy: Policy) -> Optional[float]:
    """Decide when to upload a file of the given age.

    Args:
        age: Seconds the local file is ahead of the remote copy
        policy: Throttling policy

    Returns:
        None to upload immediately, otherwise the number of seconds to wait
    """
    if age > policy.min_update_interval:
        return None
    return policy.min_update_interval - age
