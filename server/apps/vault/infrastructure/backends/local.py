"""Local filesystem storage backend."""

import contextlib
import logging
import os
import uuid
from pathlib import Path
from typing import final, override

from django.core.files import File
from django.core.files.storage import FileSystemStorage

from server.apps.vault.exceptions import BlobNotFoundError, StorageBackendError
from server.apps.vault.infrastructure.backends.base import BlobStat, StorageBackend
from server.apps.vault.infrastructure.metadata import detect_mime_type

logger = logging.getLogger(__name__)


@final
class LocalBackend(StorageBackend, FileSystemStorage):
    """Blob store on the local filesystem.

    Extends Django's FileSystemStorage with:
    - In-place overwrite at the exact requested path
    - Parent directories created on demand
    - Error wrapping into StorageBackendError / BlobNotFoundError
    """

    @override
    def store(self, path: str, data: bytes, mime_type: str) -> None:
        """Write blob atomically via a temporary file and rename.

        Args:
            path: Storage path relative to the backend root.
            data: Blob bytes.
            mime_type: MIME type (logged only, not persisted locally).

        Raises:
            StorageBackendError: If the write fails.
        """
        full_path = Path(self.path(path))
        temp_path = full_path.with_name(
            f'.{full_path.name}.{uuid.uuid4().hex}.tmp',
        )
        try:
            logger.info(
                'Storing blob locally: %s (%s, %d bytes)',
                path,
                mime_type,
                len(data),
            )
            full_path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_bytes(data)
            os.replace(temp_path, full_path)
        except OSError as error:
            logger.exception('Failed to store blob locally: %s', path)
            with contextlib.suppress(OSError):
                temp_path.unlink(missing_ok=True)
            raise StorageBackendError('store', path, str(error)) from error

    @override
    def get(self, path: str) -> File:
        """Open blob for reading.

        Args:
            path: Storage path.

        Returns:
            Django File opened in binary mode.

        Raises:
            BlobNotFoundError: If no blob exists at path.
            StorageBackendError: If the blob cannot be opened.
        """
        try:
            return self.open(path, 'rb')
        except FileNotFoundError as error:
            raise BlobNotFoundError(path) from error
        except OSError as error:
            logger.exception('Failed to open blob: %s', path)
            raise StorageBackendError('get', path, str(error)) from error

    @override
    def delete(self, name: str) -> None:
        """Delete blob; a missing blob is not an error.

        Args:
            name: Storage path of blob to delete.

        Raises:
            StorageBackendError: If deletion fails.
        """
        try:
            logger.info('Deleting blob locally: %s', name)
            super().delete(name)
        except OSError as error:
            logger.exception('Failed to delete blob locally: %s', name)
            raise StorageBackendError('delete', name, str(error)) from error

    @override
    def stat(self, path: str) -> BlobStat:
        """Return blob metadata.

        MIME type is guessed from the path, blobs named by hash report
        'application/octet-stream'.

        Raises:
            BlobNotFoundError: If no blob exists at path.
        """
        try:
            return BlobStat(
                path=path,
                size=self.size(path),
                modified_at=self.get_modified_time(path),
                mime_type=detect_mime_type(path),
            )
        except FileNotFoundError as error:
            raise BlobNotFoundError(path) from error
        except OSError as error:
            raise StorageBackendError('stat', path, str(error)) from error

    @override
    def list_blobs(self, prefix: str = '') -> list[BlobStat]:
        """List blobs whose path starts with prefix.

        Temporary files from in-flight writes are skipped.

        Args:
            prefix: Path prefix, e.g. 'personal/42/'.

        Returns:
            Blob stats sorted by path.
        """
        root = Path(self.location)
        directory = prefix.rsplit('/', 1)[0] if '/' in prefix else ''
        start = Path(self.path(directory)) if directory else root
        if not start.is_dir():
            return []

        blobs = []
        try:
            for file_path in sorted(start.rglob('*')):
                if not file_path.is_file() or file_path.name.startswith('.'):
                    continue
                name = file_path.relative_to(root).as_posix()
                if not name.startswith(prefix):
                    continue
                try:
                    blobs.append(self.stat(name))
                except BlobNotFoundError:
                    # Deleted while listing
                    continue
        except OSError as error:
            logger.exception('Failed to list blobs: %s', prefix)
            raise StorageBackendError('list', prefix, str(error)) from error

        return blobs
