"""
Todoist Backup Mirror

Copies the backup archives offered by the Todoist API into an S3 compatible
bucket, downloading only the backups that are not stored yet.
"""

__version__ = "1.0.0"
__author__ = "Todoist Backup"
__description__ = "Mirror Todoist backups into S3 compatible storage"

from .config.settings import BackupConfig
from .sync.backup_manager import BackupManager

__all__ = ["BackupConfig", "BackupManager"]
