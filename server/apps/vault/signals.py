"""Signal handlers for vault app."""

import logging

from django.db.models.signals import post_delete
from django.dispatch import receiver

from server.apps.vault.logic.file_operations import release_deleted_record
from server.apps.vault.models import FileRecord

logger = logging.getLogger(__name__)


@receiver(post_delete, sender=FileRecord)
def release_file_record_content(
    sender: type[FileRecord],
    instance: FileRecord,
    **kwargs: object,
) -> None:
    """Release quota and content reference when a FileRecord is deleted.

    This signal handler ensures that when a FileRecord is deleted
    (via delete_content, admin, ORM, or a cascade from its owner), its
    ledger reference and quota charge are released exactly once.

    Args:
        sender: The FileRecord model class.
        instance: The FileRecord instance being deleted.
        **kwargs: Additional signal arguments.
    """
    logger.debug(
        'Releasing content of deleted file record: %s (hash: %s)',
        instance.pk,
        instance.content_id,
    )
    release_deleted_record(
        instance.content_id,
        instance.owner_id,
        instance.logical_size,
    )
