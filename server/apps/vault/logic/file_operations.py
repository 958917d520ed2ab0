"""Business logic for file operations.

Upload, download, delete and reference copy coordinate the quota
enforcer, the content ledger and file records. Steps that can't be made
atomic together are compensated on failure.
"""

import enum
import functools
import logging
import uuid
from typing import Any, BinaryIO

from django.conf import settings
from django.core.exceptions import PermissionDenied, ValidationError
from django.db import DatabaseError, transaction

from server.apps.vault.exceptions import ReferenceIntegrityError
from server.apps.vault.infrastructure.backends import get_backend
from server.apps.vault.infrastructure.hashing import compute_content_hash
from server.apps.vault.infrastructure.metadata import (
    build_storage_path,
    detect_mime_type,
    read_content,
    validate_display_name,
    validate_scope,
)
from server.apps.vault.logic import ledger, quota_operations
from server.apps.vault.models import FileRecord, PendingRelease

# Owner type for Django's dynamic user model
_Owner = Any

logger = logging.getLogger(__name__)


class UploadState(enum.StrEnum):
    """Stages of an upload."""

    VALIDATING = 'validating'
    HASHING = 'hashing'
    ACQUIRING_CONTENT = 'acquiring_content'
    PERSISTING_METADATA = 'persisting_metadata'
    COMMITTED = 'committed'
    FAILED = 'failed'


def upload_content(  # noqa: WPS211
    owner: _Owner,
    content: bytes | BinaryIO,
    display_name: str,
    *,
    scope: str | None = None,
    folder_id: uuid.UUID | None = None,
    mime_type: str | None = None,
    visibility: str = FileRecord.Visibility.PRIVATE,
    share_token: str | None = None,
) -> FileRecord:
    """Store content and create a file record for it.

    Identical bytes are written to storage once; every upload still
    gets its own FileRecord. Quota is checked before anything is
    written and charged in the same transaction as the record insert.
    If anything fails after the content reference was taken, the
    reference is released again.

    Args:
        owner: Owner of the new file.
        content: Raw bytes or a binary file-like object.
        display_name: User-visible file name.
        scope: 'personal' (default) or a tenant identifier; only
            decides where new blobs land.
        folder_id: Optional folder the file belongs to.
        mime_type: MIME type; guessed from display_name when omitted.
        visibility: One of FileRecord.Visibility.
        share_token: Optional token issued by the sharing collaborator.

    Returns:
        Created FileRecord.

    Raises:
        ValidationError: If input is invalid.
        QuotaExceededError: If the owner has no room for the content.
        StorageBackendError: If a new blob can't be written.
    """
    scope = scope or settings.VAULT_PERSONAL_SCOPE
    state = _transition(UploadState.VALIDATING, display_name)
    try:
        data = _validate_upload(content, display_name, scope, visibility)
        quota_operations.reserve(owner, len(data))
        mime_type = mime_type or detect_mime_type(display_name)

        state = _transition(UploadState.HASHING, display_name)
        content_hash = compute_content_hash(data)

        state = _transition(UploadState.ACQUIRING_CONTENT, display_name)
        acquisition = ledger.acquire_or_create(
            content_hash,
            data,
            len(data),
            storage_path=build_storage_path(scope, owner.pk, content_hash),
            mime_type=mime_type,
        )
    except Exception:
        logger.warning(
            'Upload failed in %s state: %s',
            state,
            display_name,
        )
        _transition(UploadState.FAILED, display_name)
        raise

    try:
        _transition(UploadState.PERSISTING_METADATA, display_name)
        with transaction.atomic():
            file_record = FileRecord.objects.create(
                owner=owner,
                folder_id=folder_id,
                display_name=display_name,
                mime_type=mime_type,
                content=acquisition.record,
                visibility=visibility,
                share_token=share_token,
                logical_size=acquisition.record.byte_size,
            )
            quota_operations.commit(owner, file_record.logical_size)
    except BaseException:
        # Also covers cancellation: the reference must not leak.
        logger.exception(
            'Persisting file record failed, releasing content %s',
            content_hash,
        )
        _transition(UploadState.FAILED, display_name)
        _compensate_release(content_hash, reason='upload')
        raise

    _transition(UploadState.COMMITTED, display_name)
    logger.info(
        'Upload completed: %s (ID: %s, hash: %s, deduplicated: %s)',
        display_name,
        file_record.id,
        content_hash,
        not acquisition.created,
    )
    return file_record


def download_content(file_record_id: uuid.UUID | str) -> Any:
    """Open the content of a file record for reading.

    Access control is the caller's job.

    Args:
        file_record_id: ID of the file record.

    Returns:
        Binary stream of the content.

    Raises:
        FileRecord.DoesNotExist: If the record doesn't exist.
        ContentNotFoundError: If the content or its blob is missing.
        StorageBackendError: If the blob can't be read.
    """
    file_record = FileRecord.objects.get(pk=file_record_id)
    content = ledger.lookup(file_record.content_hash)
    stream = get_backend().get(content.storage_path)

    FileRecord.objects.increment_download_count(file_record.pk)
    logger.debug('Opened content for download: %s', file_record.id)
    return stream


def get_download_url(
    file_record_id: uuid.UUID | str,
    ttl: int | None = None,
) -> str:
    """Get a presigned download URL for a file record.

    Args:
        file_record_id: ID of the file record.
        ttl: URL lifetime in seconds (VAULT_PRESIGNED_URL_TTL default).

    Returns:
        Presigned URL.

    Raises:
        FileRecord.DoesNotExist: If the record doesn't exist.
        ContentNotFoundError: If the content is missing.
        UnsupportedOperationError: If the backend can't sign URLs.
    """
    file_record = FileRecord.objects.get(pk=file_record_id)
    content = ledger.lookup(file_record.content_hash)
    return get_backend().presigned_url(
        content.storage_path,
        ttl or settings.VAULT_PRESIGNED_URL_TTL,
    )


def delete_content(
    file_record_id: uuid.UUID | str,
    *,
    owner: _Owner | None = None,
) -> None:
    """Delete a file record and release its content and quota.

    The record deletion commits first and is the user-visible result.
    Quota and the content reference are released by the ``post_delete``
    handler in ``signals``, the same way as for any other deletion.
    Blob cleanup may be deferred; it never blocks the delete.

    Args:
        file_record_id: ID of file record to delete.
        owner: Acting owner; when given, must own the record.

    Raises:
        FileRecord.DoesNotExist: If the record doesn't exist.
        PermissionDenied: If ``owner`` doesn't own the record.
    """
    try:
        file_record = FileRecord.objects.get(pk=file_record_id)
    except FileRecord.DoesNotExist:
        logger.exception('File record not found: ID=%s', file_record_id)
        raise

    if owner is not None and file_record.owner_id != owner.pk:
        raise PermissionDenied(
            f'Owner {owner.pk} does not own file record {file_record_id}',
        )

    logger.info(
        'Deleting file record: ID=%s, hash=%s',
        file_record_id,
        file_record.content_hash,
    )

    with transaction.atomic():
        # Row lock: a racing delete must not release the reference twice
        locked = FileRecord.objects.select_for_update().filter(
            pk=file_record.pk,
        ).first()
        if locked is None:
            raise FileRecord.DoesNotExist(
                f'File record {file_record_id} was already deleted',
            )
        locked.delete()


def release_deleted_record(
    content_hash: str,
    owner_id: Any,
    logical_size: int,
) -> None:
    """Release what a deleted file record held.

    Quota is credited inside the deleting transaction. The content
    reference is released once that transaction commits, since at zero
    references the blob is deleted and that can't be rolled back.
    Never raises, so a failed release can't block a deletion.

    Args:
        content_hash: Content the record pointed at.
        owner_id: Primary key of the record's owner.
        logical_size: Bytes the owner was charged for the record.
    """
    try:
        with transaction.atomic():
            quota_operations.release_for_owner(owner_id, logical_size)
    except DatabaseError:
        # Usage drifts upward until recalculated by reconciliation
        logger.exception(
            'Usage release failed after delete: owner %s, %d bytes',
            owner_id,
            logical_size,
        )

    transaction.on_commit(
        functools.partial(_release_after_delete, content_hash),
        robust=True,
    )


def _release_after_delete(content_hash: str) -> None:
    try:
        ledger.release(content_hash)
    except ReferenceIntegrityError:
        logger.error(
            'Deleted file record held no reference to %s; '
            'run reconcile_vault --repair',
            content_hash,
        )
    except Exception as error:
        logger.exception(
            'Ledger release failed after delete, queueing: %s',
            content_hash,
        )
        _queue_release(content_hash, reason='delete', error=error)


def create_reference_copy(
    file_record_id: uuid.UUID | str,
    *,
    new_owner: _Owner | None = None,
    folder_id: uuid.UUID | None = None,
    display_name: str | None = None,
) -> FileRecord:
    """Create a new file record pointing at existing content.

    Used for sharing and "add to folder". No bytes are written; the
    content gains one reference. The target owner is charged the
    logical size.

    Args:
        file_record_id: ID of the source file record.
        new_owner: Owner of the copy (source owner by default).
        folder_id: Folder of the copy (source folder by default).
        display_name: Name of the copy (source name by default).

    Returns:
        New FileRecord.

    Raises:
        FileRecord.DoesNotExist: If the source record doesn't exist.
        ContentNotFoundError: If the content was deleted concurrently.
        QuotaExceededError: If the target owner has no room.
        ValidationError: If display_name is invalid.
    """
    source = FileRecord.objects.select_related('owner').get(pk=file_record_id)
    target_owner = new_owner if new_owner is not None else source.owner
    name = display_name or source.display_name
    validate_display_name(name)

    quota_operations.reserve(target_owner, source.logical_size)

    with transaction.atomic():
        ledger.increment_existing(source.content_hash)
        copy = FileRecord.objects.create(
            owner=target_owner,
            folder_id=folder_id if folder_id is not None else source.folder_id,
            display_name=name,
            mime_type=source.mime_type,
            content_id=source.content_hash,
            logical_size=source.logical_size,
        )
        quota_operations.commit(target_owner, copy.logical_size)

    logger.info(
        'Reference copy created: %s -> %s (hash: %s)',
        source.id,
        copy.id,
        copy.content_hash,
    )
    return copy


def _validate_upload(
    content: bytes | BinaryIO,
    display_name: str,
    scope: str,
    visibility: str,
) -> bytes:
    validate_display_name(display_name)
    validate_scope(scope)
    if visibility not in FileRecord.Visibility.values:
        raise ValidationError(f'Unknown visibility: {visibility!r}')

    data = read_content(content)
    if not data:
        raise ValidationError('Cannot upload empty content')
    return data


def _transition(state: UploadState, display_name: str) -> UploadState:
    logger.debug('Upload %s: %s', state, display_name)
    return state


def _compensate_release(content_hash: str, reason: str) -> None:
    """Release a reference taken by a failed operation (best effort).

    A release that can't be performed now is queued for the
    reconciliation sweep instead of being dropped.
    """
    try:
        ledger.release(content_hash)
    except Exception as error:
        logger.exception(
            'Compensating release failed, queueing: %s',
            content_hash,
        )
        _queue_release(content_hash, reason=reason, error=error)
    else:
        logger.info('Compensated failed %s: released %s', reason, content_hash)


def _queue_release(content_hash: str, reason: str, error: Exception) -> None:
    try:
        PendingRelease.objects.create(
            content_hash=content_hash,
            reason=reason,
            last_error=repr(error),
        )
    except Exception:
        logger.critical(
            'Could not queue release of %s after failed %s; '
            'reference count stays inflated until reconciled',
            content_hash,
            reason,
            exc_info=True,
        )
