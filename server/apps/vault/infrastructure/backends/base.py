"""Capabilities every vault storage backend provides."""

import dataclasses
from datetime import datetime
from typing import Any, BinaryIO, ClassVar

from server.apps.vault.exceptions import UnsupportedOperationError


@dataclasses.dataclass(frozen=True, slots=True)
class BlobStat:
    """Metadata about a stored blob."""

    path: str
    size: int
    modified_at: datetime
    mime_type: str | None = None


class StorageBackend:
    """Blob store interface mixed into a Django ``Storage`` subclass.

    ``delete(path)`` and ``exists(path)`` come from Django's storage API;
    ``delete`` is idempotent for a missing path.

    Implementations raise ``StorageBackendError`` for I/O failures and
    ``BlobNotFoundError`` when a blob is missing.
    """

    supports_presigned_urls: ClassVar[bool] = False

    def store(self, path: str, data: bytes, mime_type: str) -> None:
        """Write bytes at ``path``, replacing any existing blob."""
        raise NotImplementedError

    def get(self, path: str) -> BinaryIO | Any:
        """Open the blob at ``path`` for binary reading."""
        raise NotImplementedError

    def stat(self, path: str) -> BlobStat:
        """Return size, MIME type and modification time of a blob."""
        raise NotImplementedError

    def list_blobs(self, prefix: str = '') -> list[BlobStat]:
        """List every blob whose path starts with ``prefix``.

        The result is a finished list; callers restart by listing again.
        """
        raise NotImplementedError

    def presigned_url(self, path: str, ttl: int) -> str:
        """Return a time-limited download URL for a blob.

        Raises:
            UnsupportedOperationError: If the backend cannot sign URLs.
        """
        raise UnsupportedOperationError(
            f'{type(self).__name__} does not support presigned URLs',
        )
