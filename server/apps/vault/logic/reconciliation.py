"""Reconciliation of deferred cleanup and ledger drift.

Every step is safe to run repeatedly and concurrently with normal
traffic. Run it periodically via ``manage.py reconcile_vault``.
"""

import dataclasses
import logging
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count, F, Q
from django.utils import timezone

from server.apps.vault.exceptions import BlobNotFoundError, VaultError
from server.apps.vault.infrastructure.backends import get_backend
from server.apps.vault.logic import ledger, quota_operations
from server.apps.vault.models import ContentRecord, FileRecord, PendingRelease

logger = logging.getLogger(__name__)


@dataclasses.dataclass(slots=True)
class SweepReport:
    """Counters collected by one reconciliation step."""

    processed: int = 0
    fixed: int = 0
    failed: int = 0
    details: list[str] = dataclasses.field(default_factory=list)


def retry_pending_releases(batch_size: int) -> SweepReport:
    """Replay ledger releases queued by failed compensation.

    A queued release is applied only while the ledger still counts more
    references than there are file records, so replaying it twice never
    drops a live reference.

    Args:
        batch_size: Max queued releases to process.

    Returns:
        SweepReport for the batch.
    """
    report = SweepReport()
    for pending in PendingRelease.objects.all()[:batch_size]:
        report.processed += 1
        content_hash = pending.content_hash

        record = ContentRecord.objects.filter(content_hash=content_hash).first()
        actual = FileRecord.objects.count_for_hash(content_hash)
        if record is None or record.reference_count <= actual:
            logger.warning(
                'Dropping stale pending release for %s (ledger: %s, records: %d)',
                content_hash,
                record.reference_count if record else 'absent',
                actual,
            )
            pending.delete()
            report.details.append(f'dropped stale release {content_hash}')
            continue

        try:
            ledger.release(content_hash)
        except Exception as error:
            pending.attempts = F('attempts') + 1
            pending.last_error = repr(error)
            pending.save(update_fields=['attempts', 'last_error', 'updated_at'])
            logger.exception('Pending release failed again: %s', content_hash)
            report.failed += 1
            continue

        pending.delete()
        report.fixed += 1
        report.details.append(f'released {content_hash}')

    return report


def purge_pending_deletes(batch_size: int) -> SweepReport:
    """Retry blob deletion for content stuck in pending delete.

    Args:
        batch_size: Max rows to process.

    Returns:
        SweepReport for the batch.
    """
    report = SweepReport()
    hashes = ContentRecord.objects.filter(
        pending_delete=True,
        reference_count=0,
    ).values_list('content_hash', flat=True)[:batch_size]

    for content_hash in list(hashes):
        report.processed += 1
        if ContentRecord.objects.purge_pending(
            content_hash,
            delete_blob=ledger.delete_blob,
        ):
            logger.info('Purged pending content: %s', content_hash)
            report.fixed += 1
            report.details.append(f'purged {content_hash}')
        else:
            report.failed += 1

    return report


def sweep_orphaned_blobs(
    grace: timedelta,
    *,
    dry_run: bool = False,
    prefix: str = '',
) -> SweepReport:
    """Delete blobs that no ledger row points at.

    Orphans come from a process dying between a blob write and its
    transaction commit. Blobs younger than ``grace`` are skipped because
    their upload may still be in flight.

    Args:
        grace: Minimum blob age before it may be deleted.
        dry_run: Only report what would be deleted.
        prefix: Restrict the sweep to paths under this prefix.

    Returns:
        SweepReport for the sweep.
    """
    report = SweepReport()
    backend = get_backend()
    cutoff = timezone.now() - grace
    known_paths = set(
        ContentRecord.objects.values_list('storage_path', flat=True),
    )

    for blob in backend.list_blobs(prefix):
        report.processed += 1
        if blob.path in known_paths or blob.modified_at > cutoff:
            continue
        if _is_referenced(blob.path):
            continue

        if dry_run:
            report.details.append(f'would delete orphan {blob.path}')
            continue

        try:
            # Re-check age: the path may have been rewritten meanwhile
            if backend.stat(blob.path).modified_at > cutoff:
                continue
            backend.delete(blob.path)
        except BlobNotFoundError:
            continue
        except VaultError:
            logger.exception('Failed to delete orphaned blob: %s', blob.path)
            report.failed += 1
            continue

        logger.info('Deleted orphaned blob: %s', blob.path)
        report.fixed += 1
        report.details.append(f'deleted orphan {blob.path}')

    return report


def audit_reference_counts(*, repair: bool = False) -> SweepReport:
    """Compare ledger counts with the file records pointing at them.

    Repair should run in a maintenance window: a count is overwritten
    only if it hasn't changed since it was read, but uploads that took
    their reference and haven't inserted the file record yet are counted
    as drift.

    Args:
        repair: Overwrite drifting counts with the actual ones.

    Returns:
        SweepReport listing every mismatch.
    """
    report = SweepReport()
    records = ContentRecord.objects.filter(pending_delete=False).annotate(
        actual=Count('file_records'),
    )

    for record in records.iterator():
        report.processed += 1
        if record.reference_count == record.actual:
            continue

        logger.warning(
            'Reference count drift for %s: ledger %d, records %d',
            record.content_hash,
            record.reference_count,
            record.actual,
        )
        report.details.append(
            f'{record.content_hash}: {record.reference_count} != {record.actual}',
        )
        if not repair:
            report.failed += 1
            continue

        with transaction.atomic():
            updated = ContentRecord.objects.filter(
                content_hash=record.content_hash,
                reference_count=record.reference_count,
            ).update(
                reference_count=record.actual,
                pending_delete=record.actual == 0,
            )
        if updated:
            report.fixed += 1
        else:
            report.failed += 1

    return report


def recalculate_all_usage() -> SweepReport:
    """Recompute usage of every owner that has a usage row or files.

    Returns:
        SweepReport with one entry per owner whose usage changed.
    """
    report = SweepReport()
    owners = get_user_model().objects.filter(
        Q(vault_usage__isnull=False) | Q(vault_files__isnull=False),
    ).distinct()

    for owner in owners:
        report.processed += 1
        before = quota_operations.get_or_create_usage(owner).used_bytes
        after = quota_operations.recalculate_usage(owner)
        if before != after:
            report.fixed += 1
            report.details.append(f'owner {owner.pk}: {before} -> {after}')

    return report


def _is_referenced(path: str) -> bool:
    return ContentRecord.objects.filter(storage_path=path).exists()
