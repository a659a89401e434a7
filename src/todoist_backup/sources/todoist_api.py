"""Todoist API operations for listing and downloading backups."""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import requests
from dateutil import parser as date_parser

from .. import __version__
from ..config.settings import ClientConfig
from ..exceptions import ApiError

logger = logging.getLogger(__name__)

USER_AGENT = f"todoist-backup/{__version__}"


@dataclass(frozen=True)
class BackupMetadata:
    """Response headers of a backup download."""
    content_disposition: str
    content_type: str
    etag: str
    last_modified: datetime
    size: Optional[int] = None


@dataclass(frozen=True)
class Backup:
    """A backup listed by the Todoist API."""
    url: str
    version: str
    metadata: Optional[BackupMetadata] = field(default=None, compare=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Backup":
        return cls(url=data["url"], version=data["version"])

    def with_metadata(self, metadata: Optional[BackupMetadata]) -> "Backup":
        return replace(self, metadata=metadata)


def check_response(response: requests.Response) -> None:
    """Raise ApiError unless the status is in the 2xx or 3xx range."""
    if 200 <= response.status_code <= 399:
        return
    raise ApiError(response.status_code, response.reason or "", response.url or "")


def parse_metadata(response: requests.Response) -> BackupMetadata:
    """Build backup metadata from download response headers.

    Raises:
        ValueError: If the Last-Modified header is missing or malformed
    """
    headers = response.headers
    last_modified = headers.get("Last-Modified")
    if not last_modified:
        raise ValueError("parsing header Last-Modified: header is missing")
    try:
        modified = date_parser.parse(last_modified)
    except (ValueError, OverflowError) as e:
        raise ValueError(f"parsing header Last-Modified: {e}") from e

    size = headers.get("Content-Length")
    return BackupMetadata(
        content_disposition=headers.get("Content-Disposition", ""),
        content_type=headers.get("Content-Type", ""),
        etag=headers.get("ETag", ""),
        last_modified=modified,
        size=int(size) if size and size.isdigit() else None,
    )


class TodoistClient:
    """Thin client for the Todoist backup endpoints."""

    def __init__(self, config: ClientConfig, session: Optional[requests.Session] = None):
        """Initialize the client.

        Args:
            config: Client configuration (token, timeout, base URL)
            session: Optional requests session, mainly for tests
        """
        self.base_url = config.base_url.rstrip('/')
        self.timeout = config.timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': f'Bearer {config.token}',
            'User-Agent': USER_AGENT,
        })

    def get(self, url: str, stream: bool = False) -> requests.Response:
        """Issue an authenticated GET and check the response status."""
        response = self.session.get(url, timeout=self.timeout, stream=stream)
        try:
            check_response(response)
        except ApiError:
            response.close()
            raise
        return response

    def list_backups(self) -> List[Backup]:
        """List all backups available for download."""
        response = self.get(f"{self.base_url}/backups/get")
        try:
            payload = response.json()
        finally:
            response.close()

        if not isinstance(payload, list):
            raise ValueError(f"unexpected backups payload: {type(payload).__name__}")
        return [Backup.from_dict(item) for item in payload]

    def download_backup(self, backup: Backup) -> Tuple[requests.Response, Backup]:
        """Open a streaming download for a backup.

        The caller owns the returned response and must close it. The
        returned backup carries the parsed metadata, or none when the
        headers could not be parsed.
        """
        response = self.get(backup.url, stream=True)
        try:
            metadata = parse_metadata(response)
        except ValueError as e:
            logger.warning(f"Parsing metadata of {backup.version}: {e}")
            metadata = None
        return response, backup.with_metadata(metadata)

    def test_connection(self) -> bool:
        """Check that the token can list backups."""
        try:
            self.list_backups()
            return True
        except (requests.RequestException, ApiError, ValueError) as e:
            logger.error(f"Failed to connect to the Todoist API: {e}")
            return False
