"""Management command to reconcile the vault ledger with storage."""

import logging
from datetime import timedelta
from typing import Any, Final

from django.conf import settings
from django.core.management.base import BaseCommand

from server.apps.vault.logic import reconciliation
from server.apps.vault.models import ContentRecord, PendingRelease

_DEFAULT_BATCH_SIZE: Final = 1000

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Finish deferred cleanup and report ledger drift."""

    help = 'Retry queued releases, purge pending deletes, sweep orphaned blobs'

    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be changed without changing anything',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=_DEFAULT_BATCH_SIZE,
            help=f'Max rows per step (default: {_DEFAULT_BATCH_SIZE})',
        )
        parser.add_argument(
            '--grace-minutes',
            type=int,
            default=settings.VAULT_ORPHAN_GRACE_MINUTES,
            help='Min age of a blob before it counts as orphaned',
        )
        parser.add_argument(
            '--repair',
            action='store_true',
            help='Overwrite drifting reference counts (maintenance window only)',
        )
        parser.add_argument(
            '--recalculate-usage',
            action='store_true',
            help='Recompute every owner usage from file records',
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the reconciliation command.

        Args:
            args: Positional arguments (unused).
            options: Command options.
        """
        dry_run = options['dry_run']
        batch_size = options['batch_size']
        grace = timedelta(minutes=options['grace_minutes'])

        if dry_run:
            self._report_pending(batch_size)
        else:
            self._write_report(
                'Pending releases',
                reconciliation.retry_pending_releases(batch_size),
            )
            self._write_report(
                'Pending deletes',
                reconciliation.purge_pending_deletes(batch_size),
            )

        self._write_report(
            'Orphaned blobs',
            reconciliation.sweep_orphaned_blobs(grace, dry_run=dry_run),
        )
        self._write_report(
            'Reference counts',
            reconciliation.audit_reference_counts(
                repair=options['repair'] and not dry_run,
            ),
        )

        if options['recalculate_usage'] and not dry_run:
            self._write_report(
                'Usage',
                reconciliation.recalculate_all_usage(),
            )

        self.stdout.write(self.style.SUCCESS('Reconciliation finished'))

    def _report_pending(self, batch_size: int) -> None:
        releases = PendingRelease.objects.all()[:batch_size]
        for pending in releases:
            self.stdout.write(
                f'Would retry release: {pending.content_hash} '
                f'({pending.reason}, attempts: {pending.attempts})',
            )

        deletes = ContentRecord.objects.filter(
            pending_delete=True,
        )[:batch_size]
        for record in deletes:
            self.stdout.write(
                f'Would purge: {record.content_hash} ({record.storage_path})',
            )

    def _write_report(
        self,
        title: str,
        report: reconciliation.SweepReport,
    ) -> None:
        for line in report.details:
            self.stdout.write(f'  {line}')

        summary = (
            f'{title}: {report.processed} checked, '
            f'{report.fixed} fixed, {report.failed} failed'
        )
        if report.failed:
            self.stdout.write(self.style.WARNING(summary))
            logger.warning('Reconciliation step: %s', summary)
        else:
            self.stdout.write(self.style.SUCCESS(summary))
            logger.info('Reconciliation step: %s', summary)
