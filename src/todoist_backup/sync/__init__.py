"""Sync engine for backup operations."""

from .backup_manager import BackupManager, ErrorCollector, SyncResult
from .scheduler import periodic

__all__ = ["BackupManager", "ErrorCollector", "SyncResult", "periodic"]
