"""Main backup manager orchestrating the mirroring of Todoist backups."""

import asyncio
import logging
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from ..exceptions import ListingError, SyncError, TransferCancelled, TransferError
from ..sources.todoist_api import Backup
from ..utils.logging import ContextualLogger, TimedOperation

# Module logger
logger = logging.getLogger(__name__)


class ErrorCollector:
    """Thread-safe collector for per-backup transfer errors."""

    def __init__(self):
        self._lock = threading.Lock()
        self._errors: List[TransferError] = []

    def append(self, error: TransferError) -> None:
        with self._lock:
            self._errors.append(error)

    @property
    def errors(self) -> List[TransferError]:
        with self._lock:
            return list(self._errors)

    def __len__(self) -> int:
        with self._lock:
            return len(self._errors)

    def __bool__(self) -> bool:
        return len(self) > 0


@dataclass
class SyncResult:
    """Outcome of one synchronization run."""
    found: int = 0
    existing: int = 0
    missing: List[str] = field(default_factory=list)
    added: int = 0
    bytes_transferred: int = 0
    duration: float = 0.0


class BackupManager:
    """Mirror the backups listed by Todoist into object storage.

    Each run lists the remote backups and the stored versions, then
    downloads every missing backup concurrently. A failed download never
    stops its siblings; failures are reported together once all transfers
    have finished.
    """

    def __init__(self, client, store):
        """Initialize backup manager.

        Args:
            client: Source of backups (``list_backups`` / ``download_backup``)
            store: Destination (``list_versions`` / ``put_backup``)
        """
        self.client = client
        self.store = store

    def _list_remote(self) -> List[Backup]:
        try:
            return self.client.list_backups()
        except Exception as e:
            raise ListingError(f"listing todoist backups: {e}") from e

    def _list_stored(self) -> Set[str]:
        try:
            return self.store.list_versions()
        except Exception as e:
            raise ListingError(f"listing backups in storage: {e}") from e

    def _transfer(self, backup: Backup, cancel: threading.Event) -> int:
        """Blocking download of one backup streamed into the store."""
        log = ContextualLogger(logger, {"version": backup.version})
        if cancel.is_set():
            raise TransferCancelled("transfer cancelled")

        log.debug("Downloading backup")
        try:
            response, backup = self.client.download_backup(backup)
        except Exception as e:
            raise TransferError(backup.version, e, stage="download") from e

        try:
            response.raw.decode_content = True
            size = self.store.put_backup(backup, response.raw, cancel=cancel)
        except TransferCancelled:
            raise
        except Exception as e:
            raise TransferError(backup.version, e, stage="upload") from e
        finally:
            response.close()

        log.info(f"Written backup to storage ({size} bytes)")
        return size

    async def download(self, backup: Backup, errors: ErrorCollector,
                       cancel: threading.Event,
                       executor: Optional[Executor] = None) -> Optional[int]:
        """Copy one backup into storage, recording any failure in ``errors``.

        Returns:
            Bytes stored, or None if the backup was not stored
        """
        log = ContextualLogger(logger, {"version": backup.version})
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(executor, self._transfer, backup, cancel)
        except TransferCancelled:
            log.debug("Transfer cancelled")
        except TransferError as e:
            log.error(str(e))
            errors.append(e)
        except Exception as e:
            error = TransferError(backup.version, e)
            log.error(str(error))
            errors.append(error)
        return None

    async def _download_all(self, backups: List[Backup], errors: ErrorCollector) -> int:
        """Fan out one transfer per backup and wait for all of them."""
        if not backups:
            return 0

        cancel = threading.Event()
        executor = ThreadPoolExecutor(max_workers=len(backups), thread_name_prefix="backup")
        tasks = [
            asyncio.ensure_future(self.download(b, errors, cancel, executor))
            for b in backups
        ]
        try:
            sizes = await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            cancel.set()
            for task in tasks:
                task.cancel()
            raise
        finally:
            executor.shutdown(wait=False)
        return sum(size for size in sizes if size)

    async def run(self) -> SyncResult:
        """Run one synchronization pass.

        Returns:
            Statistics of the run

        Raises:
            ListingError: If remote or stored backups cannot be listed
            SyncError: If one or more backups could not be transferred
        """
        result = SyncResult()
        with TimedOperation(logger, "backup synchronization") as timer:
            backups = await asyncio.to_thread(self._list_remote)
            result.found = len(backups)
            logger.info(f"Found {len(backups)} potentially new backups")

            existing = await asyncio.to_thread(self._list_stored)
            result.existing = len(existing)

            missing = [b for b in backups if b.version not in existing]
            result.missing = [b.version for b in missing]
            logger.info(f"Starting download of {len(missing)} missing backups")

            errors = ErrorCollector()
            result.bytes_transferred = await self._download_all(missing, errors)
            if errors:
                raise SyncError(errors.errors)

            if missing:
                versions = await asyncio.to_thread(self._list_stored)
                result.added = len(versions) - len(existing)
            logger.info(f"Added {result.added} new backups to storage")

        result.duration = timer.duration
        return result

    def test_connections(self) -> Dict[str, bool]:
        """Test the Todoist API and storage connections."""
        return {
            'todoist_api': self.client.test_connection(),
            'storage': self.store.auth.test_connection(self.store.bucket),
        }


async def run_logged(manager: BackupManager) -> Optional[SyncResult]:
    """Run a sync pass, logging instead of raising run failures."""
    try:
        return await manager.run()
    except (ListingError, SyncError) as e:
        logger.error(f"Backup run failed: {e}")
        return None
