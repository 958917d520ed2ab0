"""Atomic persistence primitives for vault models.

Orchestration code never read-modify-writes counters. Every ledger and
usage mutation goes through one of these manager methods, each a single
conditional UPDATE or a transaction holding the row lock.
"""

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from django.db import IntegrityError, models, transaction
from django.db.models import F
from django.db.models.functions import Greatest

from server.apps.vault.exceptions import (
    ContentNotFoundError,
    ReferenceIntegrityError,
)

if TYPE_CHECKING:
    from server.apps.vault.models import ContentRecord, OwnerUsage

logger = logging.getLogger(__name__)

_REFERENCE_COUNT_FIELD = 'reference_count'  # noqa: WPS226
_USED_BYTES_FIELD = 'used_bytes'  # noqa: WPS226


class ContentRecordManager(models.Manager['ContentRecord']):
    """Ledger repository for ContentRecord rows."""

    def live(self) -> models.QuerySet['ContentRecord']:
        """Rows whose content is considered present."""
        return self.filter(pending_delete=False)

    def upsert_increment(
        self,
        content_hash: str,
        *,
        storage_path: str,
        byte_size: int,
        write_blob: Callable[[str], None],
        attempts: int,
    ) -> tuple['ContentRecord', bool]:
        """Increment the row for a hash, creating it when absent.

        An existing row gets ``reference_count + 1`` in one UPDATE and no
        blob is written. Otherwise the row is inserted with a count of 1
        and ``write_blob`` runs inside the same transaction, so a failed
        write rolls the insert back. Racing creators collide on the
        primary key, the loser waits for the winner to commit and then
        takes the increment branch.

        Args:
            content_hash: Content hash (primary key).
            storage_path: Path to use when the blob has to be written.
            byte_size: Blob size in bytes.
            write_blob: Callback storing the bytes at the given path.
            attempts: How many key collisions to tolerate.

        Returns:
            Tuple of (record, created). ``created`` is True when this call
            wrote the blob.

        Raises:
            ReferenceIntegrityError: If the row could not be acquired.
        """
        for _attempt in range(attempts):
            with transaction.atomic(using=self.db):
                updated = self.live().filter(
                    content_hash=content_hash,
                ).update(reference_count=F(_REFERENCE_COUNT_FIELD) + 1)
                if updated:
                    return self.get(content_hash=content_hash), False

                record = self.select_for_update().filter(
                    content_hash=content_hash,
                ).first()
                if record is not None:
                    return self._revive(record, write_blob)

                try:
                    with transaction.atomic(using=self.db):
                        record = self.create(
                            content_hash=content_hash,
                            storage_path=storage_path,
                            byte_size=byte_size,
                            reference_count=1,
                        )
                except IntegrityError:
                    logger.debug(
                        'Concurrent creator won for %s, retrying',
                        content_hash,
                    )
                    continue

                write_blob(record.storage_path)
                return record, True

        raise ReferenceIntegrityError(
            content_hash,
            f'could not acquire ledger row after {attempts} attempts',
        )

    def increment_existing(self, content_hash: str) -> 'ContentRecord':
        """Add one reference to content that must already exist.

        Args:
            content_hash: Content hash to increment.

        Returns:
            Updated ContentRecord.

        Raises:
            ContentNotFoundError: If the hash is absent or pending delete.
        """
        with transaction.atomic(using=self.db):
            updated = self.live().filter(
                content_hash=content_hash,
            ).update(reference_count=F(_REFERENCE_COUNT_FIELD) + 1)
            if not updated:
                raise ContentNotFoundError(
                    content_hash,
                    'cannot add a reference to absent content',
                )
            return self.get(content_hash=content_hash)

    def decrement_or_delete(
        self,
        content_hash: str,
        *,
        delete_blob: Callable[['ContentRecord'], bool],
    ) -> tuple['ContentRecord', bool]:
        """Remove one reference, deleting the row when none remain.

        When the count reaches zero, ``delete_blob`` runs while the row
        is locked. If it reports success the row is deleted, otherwise
        the row is kept with ``pending_delete`` set.

        Args:
            content_hash: Content hash to decrement.
            delete_blob: Callback removing the blob; returns False when
                the blob could not be deleted.

        Returns:
            Tuple of (record, deleted). The record reflects the count
            after the decrement.

        Raises:
            ReferenceIntegrityError: If there is no reference to release,
                or file records still point at content reaching zero.
        """
        with transaction.atomic(using=self.db):
            updated = self.filter(
                content_hash=content_hash,
                reference_count__gt=0,
            ).update(reference_count=F(_REFERENCE_COUNT_FIELD) - 1)
            if not updated:
                raise ReferenceIntegrityError(
                    content_hash,
                    'release with no outstanding reference',
                )

            record = self.select_for_update().get(content_hash=content_hash)
            if record.reference_count > 0:
                return record, False

            if record.file_records.exists():
                raise ReferenceIntegrityError(
                    content_hash,
                    'count reached zero while file records remain',
                )

            return self._delete_locked(record, delete_blob)

    def purge_pending(
        self,
        content_hash: str,
        *,
        delete_blob: Callable[['ContentRecord'], bool],
    ) -> bool:
        """Retry deletion of a row stuck in pending delete.

        Args:
            content_hash: Content hash of the pending row.
            delete_blob: Callback removing the blob.

        Returns:
            True if the blob and row are gone, False otherwise.
        """
        with transaction.atomic(using=self.db):
            record = self.select_for_update().filter(
                content_hash=content_hash,
                pending_delete=True,
                reference_count=0,
            ).first()
            if record is None:
                return False
            _record, deleted = self._delete_locked(record, delete_blob)
            return deleted

    def _revive(
        self,
        record: 'ContentRecord',
        write_blob: Callable[[str], None],
    ) -> tuple['ContentRecord', bool]:
        # Caller holds the row lock.
        if not record.pending_delete:
            self.filter(content_hash=record.content_hash).update(
                reference_count=F(_REFERENCE_COUNT_FIELD) + 1,
            )
            record.refresh_from_db()
            return record, False

        logger.info(
            'Reviving content pending delete: %s',
            record.content_hash,
        )
        write_blob(record.storage_path)
        record.reference_count = 1
        record.pending_delete = False
        record.save(update_fields=[_REFERENCE_COUNT_FIELD, 'pending_delete'])
        return record, True

    def _delete_locked(
        self,
        record: 'ContentRecord',
        delete_blob: Callable[['ContentRecord'], bool],
    ) -> tuple['ContentRecord', bool]:
        if delete_blob(record):
            content_hash = record.content_hash
            record.delete()
            record.content_hash = content_hash
            return record, True

        if not record.pending_delete:
            record.pending_delete = True
            record.save(update_fields=['pending_delete'])
        return record, False


class FileRecordManager(models.Manager[Any]):
    """Plain CRUD repository for FileRecord rows."""

    def count_for_hash(self, content_hash: str) -> int:
        """Number of records referencing a content hash."""
        return self.filter(content_id=content_hash).count()

    def increment_download_count(self, record_id: Any) -> None:
        """Atomically bump the download counter."""
        self.filter(pk=record_id).update(
            download_count=F('download_count') + 1,
        )


class OwnerUsageManager(models.Manager['OwnerUsage']):
    """Usage repository with atomic add and floored subtract."""

    def add_bytes(self, owner: Any, size_bytes: int) -> int:
        """Atomically add to an owner's usage.

        Returns:
            Number of rows updated (0 when the owner has no usage row).
        """
        return self.filter(owner=owner).update(
            used_bytes=F(_USED_BYTES_FIELD) + size_bytes,
        )

    def subtract_bytes(self, owner: Any, size_bytes: int) -> int:
        """Atomically subtract from an owner's usage, never below zero.

        Returns:
            Number of rows updated (0 when the owner has no usage row).
        """
        return self.filter(owner=owner).update(
            used_bytes=Greatest(
                F(_USED_BYTES_FIELD) - size_bytes,
                0,
                output_field=models.BigIntegerField(),
            ),
        )
