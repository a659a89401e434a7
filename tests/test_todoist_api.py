"""Tests for the Todoist API client."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from todoist_backup.config.settings import ClientConfig
from todoist_backup.exceptions import ApiError
from todoist_backup.sources.todoist_api import (
    Backup,
    TodoistClient,
    check_response,
    parse_metadata,
)

DOWNLOAD_HEADERS = {
    'Content-Disposition': 'attachment; filename="2024-01-31 10:30.zip"',
    'Content-Type': 'application/zip',
    'ETag': '"d41d8cd9"',
    'Last-Modified': 'Wed, 31 Jan 2024 10:30:00 GMT',
    'Content-Length': '2048',
}


def make_response(status_code=200, json_data=None, headers=None, reason="OK"):
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.reason = reason
    response.url = "https://api.todoist.com/sync/v9/backups/get"
    response.headers = CaseInsensitiveDict(headers or {})
    response.json.return_value = json_data
    return response


@pytest.fixture
def session():
    session = requests.Session()
    session.get = MagicMock()
    return session


@pytest.fixture
def client(session):
    return TodoistClient(ClientConfig(token="secret", timeout=7), session=session)


class TestCheckResponse:

    @pytest.mark.parametrize("status", [200, 204, 302, 399])
    def test_accepts_success_and_redirect(self, status):
        check_response(make_response(status))

    @pytest.mark.parametrize("status", [400, 401, 404, 500])
    def test_rejects_errors(self, status):
        with pytest.raises(ApiError) as exc_info:
            check_response(make_response(status, reason="Nope"))
        assert exc_info.value.status_code == status


class TestParseMetadata:

    def test_parses_headers(self):
        metadata = parse_metadata(make_response(headers=DOWNLOAD_HEADERS))

        assert metadata.content_type == "application/zip"
        assert metadata.content_disposition.startswith("attachment")
        assert metadata.etag == '"d41d8cd9"'
        assert metadata.size == 2048
        assert metadata.last_modified == datetime(2024, 1, 31, 10, 30, tzinfo=timezone.utc)

    def test_missing_last_modified(self):
        with pytest.raises(ValueError, match="Last-Modified"):
            parse_metadata(make_response(headers={'Content-Type': 'application/zip'}))

    def test_malformed_last_modified(self):
        with pytest.raises(ValueError, match="Last-Modified"):
            parse_metadata(make_response(headers={'Last-Modified': 'not a date'}))

    def test_unknown_size(self):
        headers = dict(DOWNLOAD_HEADERS)
        del headers['Content-Length']
        assert parse_metadata(make_response(headers=headers)).size is None


class TestTodoistClient:

    def test_sets_auth_headers(self, client, session):
        assert session.headers['Authorization'] == "Bearer secret"
        assert session.headers['User-Agent'].startswith("todoist-backup/")

    def test_list_backups(self, client, session):
        session.get.return_value = make_response(json_data=[
            {'url': "https://example.com/a.zip", 'version': "2024-01-30 10:30"},
            {'url': "https://example.com/b.zip", 'version': "2024-01-31 10:30"},
        ])

        backups = client.list_backups()

        session.get.assert_called_once_with(
            "https://api.todoist.com/sync/v9/backups/get", timeout=7, stream=False)
        assert backups == [
            Backup(url="https://example.com/a.zip", version="2024-01-30 10:30"),
            Backup(url="https://example.com/b.zip", version="2024-01-31 10:30"),
        ]
        session.get.return_value.close.assert_called_once()

    def test_list_backups_http_error(self, client, session):
        session.get.return_value = make_response(status_code=403, reason="Forbidden")

        with pytest.raises(ApiError):
            client.list_backups()
        session.get.return_value.close.assert_called_once()

    def test_list_backups_unexpected_payload(self, client, session):
        session.get.return_value = make_response(json_data={'error': 'nope'})

        with pytest.raises(ValueError):
            client.list_backups()

    def test_download_backup(self, client, session):
        response = make_response(headers=DOWNLOAD_HEADERS)
        session.get.return_value = response
        backup = Backup(url="https://example.com/b.zip", version="2024-01-31 10:30")

        returned, downloaded = client.download_backup(backup)

        session.get.assert_called_once_with("https://example.com/b.zip", timeout=7, stream=True)
        assert returned is response
        assert downloaded.version == backup.version
        assert downloaded.metadata.size == 2048
        assert backup.metadata is None

    def test_download_backup_without_metadata(self, client, session, caplog):
        session.get.return_value = make_response(headers={'Content-Type': 'application/zip'})

        _, downloaded = client.download_backup(Backup(url="u", version="A"))

        assert downloaded.metadata is None
        assert "Parsing metadata of A" in caplog.text

    def test_download_backup_server_error(self, client, session):
        session.get.return_value = make_response(status_code=500, reason="Internal Server Error")

        with pytest.raises(ApiError) as exc_info:
            client.download_backup(Backup(url="u", version="A"))
        assert exc_info.value.status_code == 500

    def test_test_connection(self, client, session):
        session.get.return_value = make_response(json_data=[])
        assert client.test_connection() is True

        session.get.side_effect = requests.ConnectionError("down")
        assert client.test_connection() is False
