"""Content ledger: reference-counted, deduplicated content.

State per hash: Absent -> Present(1) -> Present(N) -> Absent when the
last reference is released. Every transition is a single atomic
operation on ``ContentRecord.objects``; no in-process locks are used,
so several service instances can share one database.
"""

import dataclasses
import logging

from django.conf import settings
from django.core.exceptions import ValidationError

from server.apps.vault.exceptions import (
    ContentNotFoundError,
    ReferenceIntegrityError,
    StorageBackendError,
)
from server.apps.vault.infrastructure.backends import get_backend
from server.apps.vault.models import ContentRecord

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True, slots=True)
class Acquisition:
    """Result of acquiring a reference to content."""

    record: ContentRecord
    created: bool

    @property
    def storage_path(self) -> str:
        """Path of the (possibly pre-existing) blob."""
        return self.record.storage_path


@dataclasses.dataclass(frozen=True, slots=True)
class ReleaseOutcome:
    """Result of releasing a reference."""

    content_hash: str
    remaining: int
    blob_deleted: bool = False
    pending_delete: bool = False


def acquire_or_create(
    content_hash: str,
    data: bytes,
    byte_size: int,
    *,
    storage_path: str,
    mime_type: str,
) -> Acquisition:
    """Take a reference to content, storing the blob if it is new.

    Present content gets its count incremented and no bytes are
    written. Absent content is written to ``storage_path`` and recorded
    with a count of 1. Concurrent callers with identical bytes produce
    exactly one blob write.

    Args:
        content_hash: SHA256 hex digest of ``data``.
        data: Content bytes.
        byte_size: Size of ``data`` in bytes.
        storage_path: Where to write the blob if it is new.
        mime_type: MIME type stored with the blob.

    Returns:
        Acquisition with the ledger row and whether it was created.

    Raises:
        ValidationError: If ``byte_size`` does not match the data.
        StorageBackendError: If writing a new blob fails (nothing is
            recorded in that case).
        ReferenceIntegrityError: If the ledger row can't be acquired.
    """
    if byte_size != len(data):
        raise ValidationError(
            f'Declared size {byte_size} does not match content ({len(data)} bytes)',
        )

    backend = get_backend()

    def write_blob(path: str) -> None:
        backend.store(path, data, mime_type)

    record, created = ContentRecord.objects.upsert_increment(
        content_hash,
        storage_path=storage_path,
        byte_size=byte_size,
        write_blob=write_blob,
        attempts=settings.VAULT_ACQUIRE_ATTEMPTS,
    )

    if created:
        logger.info(
            'Stored new content %s at %s (%d bytes)',
            content_hash,
            record.storage_path,
            byte_size,
        )
    else:
        logger.debug(
            'Deduplicated content %s (references: %d)',
            content_hash,
            record.reference_count,
        )
    return Acquisition(record=record, created=created)


def increment_existing(content_hash: str) -> ContentRecord:
    """Add a reference to content that must already be present.

    Used by reference copies, which supply no bytes and must never
    fabricate a ledger row.

    Args:
        content_hash: Content hash to reference.

    Returns:
        Updated ContentRecord.

    Raises:
        ContentNotFoundError: If the content is absent.
    """
    try:
        record = ContentRecord.objects.increment_existing(content_hash)
    except ContentNotFoundError:
        logger.warning('Reference to absent content refused: %s', content_hash)
        raise

    logger.debug(
        'Added reference to %s (references: %d)',
        content_hash,
        record.reference_count,
    )
    return record


def delete_blob(record: ContentRecord) -> bool:
    """Delete the blob of a ledger row, reporting instead of raising.

    Args:
        record: Ledger row whose blob should go.

    Returns:
        True if the blob is gone, False if deletion failed.
    """
    try:
        get_backend().delete(record.storage_path)
    except StorageBackendError:
        logger.exception(
            'Blob deletion failed, keeping %s pending delete: %s',
            record.content_hash,
            record.storage_path,
        )
        return False
    return True


def release(content_hash: str) -> ReleaseOutcome:
    """Drop one reference, tearing down content when none remain.

    At zero the blob is deleted first and the ledger row second. If the
    blob can't be deleted the row stays with ``pending_delete`` set
    for the reconciliation sweep.

    Args:
        content_hash: Content hash to release.

    Returns:
        ReleaseOutcome describing what happened.

    Raises:
        ReferenceIntegrityError: If the hash has no reference to release.
    """
    try:
        record, deleted = ContentRecord.objects.decrement_or_delete(
            content_hash,
            delete_blob=delete_blob,
        )
    except ReferenceIntegrityError:
        logger.exception('Reference integrity violation on release: %s', content_hash)
        raise

    if deleted:
        logger.info(
            'Released last reference, content removed: %s',
            content_hash,
        )
    elif record.pending_delete:
        logger.warning(
            'Released last reference, blob cleanup deferred: %s',
            content_hash,
        )
    else:
        logger.debug(
            'Released reference to %s (references: %d)',
            content_hash,
            record.reference_count,
        )

    return ReleaseOutcome(
        content_hash=content_hash,
        remaining=record.reference_count,
        blob_deleted=deleted,
        pending_delete=record.pending_delete and not deleted,
    )


def lookup(content_hash: str) -> ContentRecord:
    """Find present content.

    Args:
        content_hash: Content hash.

    Returns:
        ContentRecord with path and size.

    Raises:
        ContentNotFoundError: If absent or pending delete.
    """
    try:
        return ContentRecord.objects.live().get(content_hash=content_hash)
    except ContentRecord.DoesNotExist as error:
        raise ContentNotFoundError(content_hash) from error
