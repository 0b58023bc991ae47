"""Configuration file for AutoUpload (JSON or YAML)."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from autoupload.models.sync_types import FilePair, Policy

logger = logging.getLogger(__name__)

REMOTE_BACKENDS = ("dropbox", "s3")
ACCESS_TOKEN_ENV = "AUTOUPLOAD_ACCESS_TOKEN"


class ConfigError(Exception):
    """Configuration file is missing, unreadable or invalid."""


class MissingCredentialsError(ConfigError):
    """The selected remote backend has no credentials configured."""


def credentials_present(
    remote: str,
    access_token: Optional[str],
    aws_access_key_id: Optional[str],
    aws_secret_access_key: Optional[str],
) -> bool:
    """Check credentials for a backend: S3 keys for s3, the access token otherwise."""
    if remote == "s3":
        return bool(aws_access_key_id and aws_secret_access_key)
    return bool(access_token)


class SimpleConfig:
    """Simple configuration class loaded from a JSON or YAML document."""

    def __init__(self, **kwargs):
        """Initialize configuration, validating every field.

        Raises:
            ConfigError: If a field has the wrong type or value
        """
        # Remote credentials
        self.access_token: Optional[str] = kwargs.get("access_token") or None
        self.remote: str = kwargs.get("remote", "dropbox")
        if self.remote not in REMOTE_BACKENDS:
            raise ConfigError(f"Unknown remote '{self.remote}', expected one of {', '.join(REMOTE_BACKENDS)}")

        # S3 backend settings
        self.s3_bucket: str = kwargs.get("s3_bucket", "")
        self.s3_region: str = kwargs.get("s3_region", "us-east-1")
        self.s3_prefix: str = kwargs.get("s3_prefix", "")
        self.aws_access_key_id: Optional[str] = kwargs.get("aws_access_key_id") or None
        self.aws_secret_access_key: Optional[str] = kwargs.get("aws_secret_access_key") or None

        # Upload throttling
        interval = kwargs.get("min_update_interval", 0)
        if interval is None:
            interval = 0
        if isinstance(interval, bool) or not isinstance(interval, (int, float)):
            raise ConfigError(f"minUpdateInterval must be a number of seconds, got {interval!r}")
        if interval < 0:
            raise ConfigError(f"minUpdateInterval must not be negative, got {interval}")
        self.min_update_interval: float = float(interval)

        # Files to watch
        self.files: List[FilePair] = self._parse_files(kwargs.get("files"))

    @staticmethod
    def _parse_files(files_data: Any) -> List[FilePair]:
        """Validate the ``files`` list and drop duplicate pairs."""
        if not isinstance(files_data, list):
            raise ConfigError("files must be a list of {localPath, remotePath} entries")

        pairs: List[FilePair] = []
        for index, entry in enumerate(files_data):
            if not isinstance(entry, dict):
                raise ConfigError(f"files[{index}] must be an object with localPath and remotePath")
            local_path = entry.get("localPath")
            remote_path = entry.get("remotePath")
            if not isinstance(local_path, str) or not local_path:
                raise ConfigError(f"files[{index}] is missing localPath")
            if not isinstance(remote_path, str) or not remote_path:
                raise ConfigError(f"files[{index}] is missing remotePath")

            pair = FilePair(Path(local_path).expanduser(), remote_path)
            if pair in pairs:
                logger.warning(f"Skipping duplicate file entry: {pair}")
                continue
            pairs.append(pair)

        return pairs

    @classmethod
    def from_document(cls, data: Dict[str, Any], require_credentials: bool = False) -> "SimpleConfig":
        """Build configuration from a parsed config document (camelCase keys).

        Args:
            data: Parsed JSON/YAML document
            require_credentials: Check credentials before any other field

        Raises:
            MissingCredentialsError: If required credentials are absent
            ConfigError: If a field is invalid
        """
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a JSON/YAML object")

        s3_data = data.get("s3") or {}
        if not isinstance(s3_data, dict):
            raise ConfigError("s3 must be an object")

        access_token = data.get("accessToken") or os.environ.get(ACCESS_TOKEN_ENV)
        remote = data.get("remote", "dropbox")
        if require_credentials and not credentials_present(
            remote, access_token, s3_data.get("accessKeyId"), s3_data.get("secretAccessKey")
        ):
            raise MissingCredentialsError("No access token!")

        return cls(
            access_token=access_token,
            remote=remote,
            min_update_interval=data.get("minUpdateInterval", 0),
            files=data.get("files"),
            s3_bucket=s3_data.get("bucket", ""),
            s3_region=s3_data.get("region", "us-east-1"),
            s3_prefix=s3_data.get("prefix", ""),
            aws_access_key_id=s3_data.get("accessKeyId"),
            aws_secret_access_key=s3_data.get("secretAccessKey"),
        )

    @classmethod
    def load_from_file(cls, config_path: Path, require_credentials: bool = False) -> "SimpleConfig":
        """Load configuration from a JSON or YAML file.

        YAML is a superset of JSON, so ``yaml.safe_load`` reads both formats.
        """
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Unable to read configuration file {config_path}: {e}") from e

        return cls.from_document(data or {}, require_credentials=require_credentials)

    def save(self, config_path: Path) -> None:
        """Save configuration as JSON (``.json`` paths) or YAML."""
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w", encoding="utf-8") as f:
            if config_path.suffix.lower() == ".json":
                json.dump(self.to_dict(), f, indent=2)
                f.write("\n")
            else:
                yaml.dump(self.to_dict(), f, default_flow_style=False, indent=2, sort_keys=False)

    @property
    def policy(self) -> Policy:
        """Throttling policy shared by all sync units."""
        return Policy(min_update_interval=self.min_update_interval)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a config document (camelCase keys)."""
        data: Dict[str, Any] = {
            "accessToken": self.access_token or "",
            "remote": self.remote,
            "minUpdateInterval": self.min_update_interval,
            "files": [
                {"localPath": str(pair.local_path), "remotePath": pair.remote_path} for pair in self.files
            ],
        }
        if self.remote == "s3":
            data["s3"] = {
                "bucket": self.s3_bucket,
                "region": self.s3_region,
                "prefix": self.s3_prefix,
                "accessKeyId": self.aws_access_key_id or "",
                "secretAccessKey": self.aws_secret_access_key or "",
            }
        return data


# Default configuration file, relative to the working directory
DEFAULT_CONFIG_PATH = Path("autoupload.json")


def template_config() -> SimpleConfig:
    """Example configuration written when no config file exists."""
    return SimpleConfig(
        access_token="",
        min_update_interval=60,
        files=[{"localPath": str(Path.home() / "notes.txt"), "remotePath": "/notes.txt"}],
    )


def load_config(config_path: Path = DEFAULT_CONFIG_PATH, require_credentials: bool = False) -> SimpleConfig:
    """Load configuration from a JSON/YAML file.

    With ``require_credentials`` a missing credential is reported before any
    other validation error.

    Raises:
        FileNotFoundError: If the file does not exist
        MissingCredentialsError: If required credentials are absent
        ConfigError: If the file is unreadable or invalid
    """
    return SimpleConfig.load_from_file(config_path, require_credentials=require_credentials)
