"""Business logic for storage quota operations.

Usage is reserved before any ledger mutation and committed only after
the file record exists, so a failed upload never leaves a stale charge.
"""

import logging
from typing import Any

from django.db import transaction
from django.db.models import Sum  # noqa: WPS347

from server.apps.vault.exceptions import QuotaExceededError
from server.apps.vault.models import FileRecord, OwnerUsage

# Owner type for Django's dynamic user model
_Owner = Any

logger = logging.getLogger(__name__)


def get_or_create_usage(owner: _Owner) -> OwnerUsage:
    """Get or create usage row for owner (on-demand creation).

    Args:
        owner: Owner to get usage for.

    Returns:
        OwnerUsage instance for the owner.
    """
    usage, created = OwnerUsage.objects.get_or_create(owner=owner)
    if created:
        logger.info(
            'Created usage for owner %s: %d bytes quota',
            owner.pk,
            usage.quota_bytes,
        )
    return usage


def reserve(owner: _Owner, size_bytes: int) -> None:
    """Check that owner has headroom for an upload.

    Fast-fail check performed before any storage side effect. Creates
    the usage row on demand.

    Args:
        owner: Owner to check quota for.
        size_bytes: Size of the upload in bytes.

    Raises:
        QuotaExceededError: If upload would exceed quota.
    """
    usage = get_or_create_usage(owner)

    if not usage.has_space_for(size_bytes):
        logger.warning(
            'Quota exceeded for owner %s: need %d, have %d available',
            owner.pk,
            size_bytes,
            usage.available_bytes(),
        )
        raise QuotaExceededError(
            quota_bytes=usage.quota_bytes,
            used_bytes=usage.used_bytes,
            required_bytes=size_bytes,
        )


def commit(owner: _Owner, size_bytes: int) -> None:
    """Atomically add committed bytes to owner's usage.

    Args:
        owner: Owner to charge.
        size_bytes: Bytes to add to usage.
    """
    with transaction.atomic():
        updated = OwnerUsage.objects.add_bytes(owner, size_bytes)

        if updated == 0:
            # Usage doesn't exist yet, create it
            get_or_create_usage(owner)
            OwnerUsage.objects.add_bytes(owner, size_bytes)

    logger.debug(
        'Committed %d bytes of usage for owner %s',
        size_bytes,
        owner.pk,
    )


def release(owner: _Owner, size_bytes: int) -> None:
    """Atomically subtract bytes from owner's usage.

    Prevents negative values by clamping to 0.

    Args:
        owner: Owner to credit.
        size_bytes: Bytes to subtract from usage.
    """
    release_for_owner(owner.pk, size_bytes)


def release_for_owner(owner_id: Any, size_bytes: int) -> None:
    """Subtract bytes from usage by owner primary key.

    Used where the owner row may already be gone, e.g. when file
    records are deleted by a cascade from their owner.

    Args:
        owner_id: Primary key of the owner to credit.
        size_bytes: Bytes to subtract from usage.
    """
    updated = OwnerUsage.objects.subtract_bytes(owner_id, size_bytes)
    if updated == 0:
        # No usage exists, nothing to decrement
        logger.debug(
            'No usage exists for owner %s, skipping release',
            owner_id,
        )
        return

    logger.debug(
        'Released %d bytes of usage for owner %s',
        size_bytes,
        owner_id,
    )


def recalculate_usage(owner: _Owner) -> int:
    """Recalculate owner's usage from their file records.

    This is useful for fixing inconsistencies after failed deletes or
    bulk operations. The usage row stays locked from the aggregate to
    the write, so concurrent commits and releases wait for it.

    Args:
        owner: Owner to recalculate usage for.

    Returns:
        New calculated usage in bytes.
    """
    get_or_create_usage(owner)

    with transaction.atomic():
        usage = OwnerUsage.objects.select_for_update().get(owner=owner)
        total = FileRecord.objects.filter(owner=owner).aggregate(
            total=Sum('logical_size'),
        )['total'] or 0
        old_usage = usage.used_bytes
        usage.used_bytes = total
        usage.save(update_fields=['used_bytes'])

    logger.info(
        'Recalculated usage for owner %s: %d -> %d bytes',
        owner.pk,
        old_usage,
        total,
    )

    return total
