"""S3 destination holding one object per Todoist backup."""

import logging
import threading
from typing import BinaryIO, Optional, Set

from boto3.s3.transfer import TransferConfig
from botocore.exceptions import ClientError

from ..auth.cloud_auth import S3Auth
from ..exceptions import TransferCancelled, VersionParseError
from ..sources.todoist_api import Backup

logger = logging.getLogger(__name__)

KEY_PREFIX = "todoist-backup-"
KEY_SUFFIX = ".zip"
VERSION_METADATA_KEY = "version"  # S3 lower-cases user metadata keys
SOURCE_ETAG_KEY = "source-etag"
SOURCE_MTIME_KEY = "source-mtime"
SOURCE_SIZE_KEY = "source-size"

CHUNK_SIZE = 8 * 1024 * 1024  # 8MB


def from_version(version: str) -> str:
    """Derive the storage key for a backup version."""
    slug = version.replace(" ", "-").replace(":", "-")
    return f"{KEY_PREFIX}{slug}{KEY_SUFFIX}"


def to_version(key: str) -> str:
    """Reconstruct a version from a storage key written without metadata.

    Keys are expected to look like ``todoist-backup-2024-01-31-10-30.zip``
    which maps back to ``2024-01-31 10:30``.

    Raises:
        VersionParseError: If the key does not have exactly five segments
    """
    stem = key
    if stem.startswith(KEY_PREFIX):
        stem = stem[len(KEY_PREFIX):]
    if stem.endswith(KEY_SUFFIX):
        stem = stem[:-len(KEY_SUFFIX)]

    parts = stem.split("-")
    if len(parts) != 5:
        raise VersionParseError(f"parsing version {stem!r}")
    return f"{parts[0]}-{parts[1]}-{parts[2]} {parts[3]}:{parts[4]}"


class CancellableReader:
    """File-like wrapper that aborts reads once cancellation is requested."""

    def __init__(self, stream: BinaryIO, cancel: Optional[threading.Event] = None):
        self.stream = stream
        self.cancel = cancel
        self.bytes_read = 0

    def read(self, size: int = -1) -> bytes:
        if self.cancel is not None and self.cancel.is_set():
            raise TransferCancelled("transfer cancelled")
        chunk = self.stream.read(size)
        self.bytes_read += len(chunk)
        return chunk


class S3BackupStore:
    """Backup archives stored in an S3 bucket."""

    def __init__(self, auth: S3Auth, bucket: str):
        """Initialize the store.

        Args:
            auth: S3 authentication handler
            bucket: Target bucket name
        """
        self.auth = auth
        self.bucket = bucket
        self.transfer_config = TransferConfig(
            multipart_chunksize=CHUNK_SIZE,
            max_concurrency=1,
        )

    @property
    def client(self):
        return self.auth.get_s3_client()

    def ensure_bucket(self) -> None:
        self.auth.ensure_bucket(self.bucket)

    def _object_version(self, key: str) -> Optional[str]:
        """Read the version tag of a stored object, if it has one."""
        try:
            response = self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            logger.warning(f"Reading metadata of {key}: {e}")
            return None
        return response.get('Metadata', {}).get(VERSION_METADATA_KEY)

    def list_versions(self) -> Set[str]:
        """Enumerate the versions already present in the bucket.

        Objects whose version can neither be read from metadata nor parsed
        from the key are skipped.
        """
        versions: Set[str] = set()
        paginator = self.client.get_paginator('list_objects_v2')
        for page in paginator.paginate(Bucket=self.bucket):
            for obj in page.get('Contents', []):
                key = obj['Key']
                version = self._object_version(key)
                if not version:
                    try:
                        version = to_version(key)
                    except VersionParseError as e:
                        logger.warning(f"Getting backup version of {key}: {e}")
                        continue
                versions.add(version)
        return versions

    def put_backup(self, backup: Backup, stream: BinaryIO,
                   cancel: Optional[threading.Event] = None) -> int:
        """Stream a backup archive into the bucket.

        Args:
            backup: Backup being stored, metadata is optional
            stream: Readable binary stream of the archive
            cancel: Event that aborts the upload when set

        Returns:
            Number of bytes uploaded
        """
        key = from_version(backup.version)
        metadata = backup.metadata
        user_metadata = {VERSION_METADATA_KEY: backup.version}
        extra_args = {'Metadata': user_metadata}
        if metadata is not None:
            if metadata.content_type:
                extra_args['ContentType'] = metadata.content_type
            if metadata.content_disposition:
                extra_args['ContentDisposition'] = metadata.content_disposition
            if metadata.etag:
                user_metadata[SOURCE_ETAG_KEY] = metadata.etag
            user_metadata[SOURCE_MTIME_KEY] = metadata.last_modified.isoformat()
            if metadata.size is not None:
                user_metadata[SOURCE_SIZE_KEY] = str(metadata.size)

        reader = CancellableReader(stream, cancel)
        self.client.upload_fileobj(
            Fileobj=reader,
            Bucket=self.bucket,
            Key=key,
            ExtraArgs=extra_args,
            Config=self.transfer_config,
        )
        logger.debug(f"Uploaded s3://{self.bucket}/{key} ({reader.bytes_read} bytes)")
        if metadata is not None and metadata.size is not None and metadata.size != reader.bytes_read:
            logger.warning(f"Backup {backup.version}: expected {metadata.size} bytes, stored {reader.bytes_read}")
        return reader.bytes_read
