"""Async S3 backend using aiobotocore."""

import base64
import contextlib
import hashlib
import logging
from typing import Dict, Optional

from aiobotocore.config import AioConfig
from aiobotocore.session import get_session
from botocore.exceptions import BotoCoreError, ClientError

from autoupload.core.remote_client import RemoteClient, RemoteError, RemoteNotFoundError
from autoupload.models.simple_config import SimpleConfig
from autoupload.models.sync_types import RemoteInfo

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


class S3Manager(RemoteClient):
    """S3 backend with metadata lookup and overwrite upload."""

    def __init__(self, config: SimpleConfig, max_pool_connections: int = 10):
        """Initialize S3 manager with configuration."""
        self.config = config
        self._exit_stack: Optional[contextlib.AsyncExitStack] = contextlib.AsyncExitStack()
        self._session = get_session()
        self._s3_client = None
        self._client_config = AioConfig(max_pool_connections=max_pool_connections)

    def _create_client(self):
        return self._session.create_client(
            "s3",
            aws_access_key_id=self.config.aws_access_key_id,
            aws_secret_access_key=self.config.aws_secret_access_key,
            region_name=self.config.s3_region,
            config=self._client_config,
        )

    async def initialize(self) -> None:
        """Open the client and check the bucket is reachable."""
        try:
            client = await self._get_or_create_client()
            await client.head_bucket(Bucket=self.config.s3_bucket)
            logger.info(f"S3Manager initialized for bucket: {self.config.s3_bucket}")

        except Exception as e:
            logger.error(f"Failed to initialize S3Manager: {e}")
            raise

    async def _get_or_create_client(self):
        """Get or create the S3 client, kept open on an AsyncExitStack."""
        if not self._exit_stack:
            self._exit_stack = contextlib.AsyncExitStack()
        if not self._s3_client:
            self._s3_client = await self._exit_stack.enter_async_context(self._create_client())
        return self._s3_client

    async def close(self) -> None:
        """Close the S3 client and release its connection pool."""
        self._s3_client = None
        if self._exit_stack:
            await self._exit_stack.aclose()
            self._exit_stack = None
        logger.debug("S3Manager closed")

    def _build_s3_key(self, remote_path: str) -> str:
        """Build full S3 key with prefix.

        Args:
            remote_path: Remote path, with or without a leading slash

        Returns:
            Full S3 key with prefix
        """
        key = remote_path.lstrip("/")
        if self.config.s3_prefix:
            return f"{self.config.s3_prefix.rstrip('/')}/{key}"
        return key

    @staticmethod
    def _error_code(error: ClientError) -> str:
        return str(error.response.get("Error", {}).get("Code", ""))

    async def get_metadata(self, remote_path: str) -> RemoteInfo:
        """Get the ``LastModified`` time of an S3 object."""
        full_s3_key = self._build_s3_key(remote_path)
        try:
            client = await self._get_or_create_client()
            response = await client.head_object(Bucket=self.config.s3_bucket, Key=full_s3_key)

        except ClientError as e:
            if self._error_code(e) in NOT_FOUND_CODES:
                raise RemoteNotFoundError(f"s3://{self.config.s3_bucket}/{full_s3_key} not found") from e
            raise RemoteError(f"Error getting object info for {full_s3_key}: {e}") from e
        except BotoCoreError as e:
            raise RemoteError(f"Error getting object info for {full_s3_key}: {e}") from e

        last_modified = response.get("LastModified")
        if last_modified is None:
            raise RemoteError(f"No LastModified for s3://{self.config.s3_bucket}/{full_s3_key}")
        return RemoteInfo(server_modified=last_modified)

    def _prepare_metadata(self, remote_path: str, md5_hash: str) -> Dict[str, str]:
        """Prepare metadata dictionary (ASCII only, base64 encoded if needed)."""
        try:
            remote_path.encode("ascii")
            original_path = remote_path
        except UnicodeEncodeError:
            original_path = "base64:" + base64.b64encode(remote_path.encode("utf-8")).decode("ascii")

        return {
            "md5-checksum": md5_hash,
            "original-path": original_path,
        }

    async def upload(self, remote_path: str, data: bytes) -> None:
        """Upload bytes to S3, overwriting the object, with MD5 integrity check."""
        full_s3_key = self._build_s3_key(remote_path)
        digest = hashlib.md5(data)

        try:
            client = await self._get_or_create_client()
            await client.put_object(
                Bucket=self.config.s3_bucket,
                Key=full_s3_key,
                Body=data,
                ContentMD5=base64.b64encode(digest.digest()).decode("ascii"),
                Metadata=self._prepare_metadata(remote_path, digest.hexdigest()),
            )
        except (ClientError, BotoCoreError) as e:
            raise RemoteError(f"Upload to s3://{self.config.s3_bucket}/{full_s3_key} failed: {e}") from e

        logger.debug(f"S3 upload complete: s3://{self.config.s3_bucket}/{full_s3_key} ({len(data)} bytes)")
