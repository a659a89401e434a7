"""Exception hierarchy for the backup application."""

from typing import List, Optional


class TodoistBackupError(Exception):
    """Base class for all backup errors."""


class ConfigError(TodoistBackupError):
    """Raised when the configuration is missing or invalid."""


class ApiError(TodoistBackupError):
    """Raised when the Todoist API answers with an unexpected status."""

    def __init__(self, status_code: int, reason: str = "", url: str = ""):
        self.status_code = status_code
        self.reason = reason
        self.url = url
        super().__init__(f"unexpected http status code {status_code} {reason}".rstrip())


class ListingError(TodoistBackupError):
    """Raised when remote or stored backups cannot be enumerated."""


class VersionParseError(TodoistBackupError):
    """Raised when a storage key cannot be mapped back to a version."""


class TransferCancelled(TodoistBackupError):
    """Raised inside a transfer that observed a cancellation request."""


class TransferError(TodoistBackupError):
    """A single backup that could not be copied into storage."""

    def __init__(self, version: str, cause: BaseException, stage: str = "transfer"):
        self.version = version
        self.cause = cause
        self.stage = stage
        super().__init__(f"{stage} of backup {version!r} failed: {cause}")


class SyncError(TodoistBackupError):
    """Combined error for every transfer that failed during one run."""

    def __init__(self, errors: List[TransferError], message: Optional[str] = None):
        self.errors = list(errors)
        if message is None:
            details = "; ".join(str(e) for e in self.errors)
            message = f"{len(self.errors)} backup(s) failed: {details}"
        super().__init__(message)

    @property
    def versions(self) -> List[str]:
        return [e.version for e in self.errors]
