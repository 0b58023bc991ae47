"""Async Dropbox client using the HTTP API v2."""

import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from autoupload.core.remote_client import RemoteClient, RemoteError, RemoteNotFoundError
from autoupload.models.sync_types import RemoteInfo

logger = logging.getLogger(__name__)

API_URL = "https://api.dropboxapi.com/2"
CONTENT_URL = "https://content.dropboxapi.com/2"


def parse_server_time(value: str) -> datetime:
    """Parse a Dropbox timestamp such as ``2015-05-12T15:50:38Z``."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class DropboxClient(RemoteClient):
    """Dropbox backend: metadata lookup and overwrite upload."""

    def __init__(
        self,
        access_token: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the Dropbox client.

        Args:
            access_token: OAuth2 access token for the Dropbox app
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.access_token = access_token
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def initialize(self) -> None:
        """Create the HTTP client."""
        self._get_client()
        logger.info("Dropbox client initialized")

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the httpx client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"Authorization": f"Bearer {self.access_token}"},
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.debug("Dropbox client closed")

    async def _post(self, url: str, **kwargs: Any) -> httpx.Response:
        """POST to the API, translating failures into RemoteError."""
        client = self._get_client()
        try:
            response = await client.post(url, **kwargs)
        except httpx.HTTPError as e:
            raise RemoteError(f"Request to {url} failed: {e}") from e

        if response.is_success:
            return response

        summary = self._error_summary(response)
        if response.status_code == 409 and "not_found" in summary:
            raise RemoteNotFoundError(summary, status_code=response.status_code)
        raise RemoteError(summary, status_code=response.status_code)

    @staticmethod
    def _error_summary(response: httpx.Response) -> str:
        """Extract Dropbox's ``error_summary`` or fall back to the body text."""
        try:
            data = response.json()
        except ValueError:
            return f"HTTP {response.status_code}: {response.text.strip()}"
        if isinstance(data, dict) and data.get("error_summary"):
            return data["error_summary"]
        return f"HTTP {response.status_code}: {data}"

    async def get_metadata(self, remote_path: str) -> RemoteInfo:
        """Get the server modification time of a Dropbox file."""
        arg = {
            "path": remote_path,
            "include_media_info": False,
            "include_deleted": False,
            "include_has_explicit_shared_members": False,
        }
        response = await self._post(f"{API_URL}/files/get_metadata", json=arg)
        metadata: Dict[str, Any] = response.json()

        if metadata.get(".tag") != "file":
            raise RemoteError(f"{remote_path} is a {metadata.get('.tag', 'unknown entry')}, not a file")

        try:
            return RemoteInfo(server_modified=parse_server_time(metadata["server_modified"]))
        except (KeyError, TypeError, ValueError) as e:
            raise RemoteError(f"Malformed metadata for {remote_path}: {e}") from e

    async def upload(self, remote_path: str, data: bytes) -> None:
        """Upload bytes to Dropbox in overwrite mode."""
        arg = {"path": remote_path, "mode": "overwrite"}
        await self._post(
            f"{CONTENT_URL}/files/upload",
            headers={
                "Dropbox-API-Arg": json.dumps(arg),
                "Content-Type": "application/octet-stream",
            },
            content=data,
        )
        logger.debug(f"Dropbox upload complete: {remote_path} ({len(data)} bytes)")
