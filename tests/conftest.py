"""Shared fixtures and in-memory fakes for the Todoist API and storage."""

import io
import logging
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add src to Python path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from todoist_backup.destinations.s3_store import from_version
from todoist_backup.exceptions import ApiError
from todoist_backup.sources.todoist_api import Backup, BackupMetadata


class FakeRaw(io.BytesIO):
    """Stand-in for the urllib3 response body."""
    decode_content = False


class FakeResponse:
    def __init__(self, data: bytes):
        self.raw = FakeRaw(data)
        self.closed = False

    def close(self):
        self.closed = True


class FakeTodoistClient:
    """In-memory Todoist API."""

    def __init__(self, archives=None, failing=(), with_metadata=True):
        self.archives = dict(archives or {})
        self.failing = set(failing)
        self.with_metadata = with_metadata
        self.downloads = []
        self.responses = []
        self.list_error = None
        self._lock = threading.Lock()

    def add(self, version, data=b"zip"):
        self.archives[version] = data

    def list_backups(self):
        if self.list_error is not None:
            raise self.list_error
        return [Backup(url=f"https://example.com/{i}", version=v)
                for i, v in enumerate(self.archives)]

    def download_backup(self, backup):
        with self._lock:
            self.downloads.append(backup.version)
        if backup.version in self.failing:
            raise ApiError(500, "Internal Server Error", backup.url)
        metadata = None
        if self.with_metadata:
            metadata = BackupMetadata(
                content_disposition=f'attachment; filename="{from_version(backup.version)}"',
                content_type="application/zip",
                etag='"abc"',
                last_modified=datetime(2024, 1, 31, 10, 30, tzinfo=timezone.utc),
                size=len(self.archives[backup.version]),
            )
        response = FakeResponse(self.archives[backup.version])
        with self._lock:
            self.responses.append(response)
        return response, backup.with_metadata(metadata)

    def test_connection(self):
        return self.list_error is None


class FakeStore:
    """In-memory bucket keyed like the S3 store."""

    def __init__(self, versions=()):
        self.objects = {from_version(v): (v, b"") for v in versions}
        self.puts = []
        self.put_error = None
        self.list_error = None
        self._lock = threading.Lock()

    def list_versions(self):
        if self.list_error is not None:
            raise self.list_error
        with self._lock:
            return {version for version, _ in self.objects.values()}

    def put_backup(self, backup, stream, cancel=None):
        if self.put_error is not None:
            raise self.put_error
        data = stream.read()
        with self._lock:
            self.objects[from_version(backup.version)] = (backup.version, data)
            self.puts.append(backup)
        return len(data)


@pytest.fixture
def fake_client():
    return FakeTodoistClient()


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture(autouse=True)
def reset_app_logger():
    """Drop handlers installed by the CLI so they never outlive a test's streams."""
    yield
    logging.getLogger("todoist_backup").handlers.clear()
