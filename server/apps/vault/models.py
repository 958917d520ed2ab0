"""Database models for vault app."""

import uuid
from typing import Final, final, override

from django.conf import settings
from django.db import models

from server.apps.vault.managers import (
    ContentRecordManager,
    FileRecordManager,
    OwnerUsageManager,
)

# Constants for field max lengths
_CONTENT_HASH_MAX_LENGTH: Final = 64  # SHA256 hex length
_STORAGE_PATH_MAX_LENGTH: Final = 512
_DISPLAY_NAME_MAX_LENGTH: Final = 255
_MIME_TYPE_MAX_LENGTH: Final = 255
_VISIBILITY_MAX_LENGTH: Final = 32
_SHARE_TOKEN_MAX_LENGTH: Final = 255
_REASON_MAX_LENGTH: Final = 255


def default_quota_bytes() -> int:
    """Quota assigned to owners without an explicit limit.

    Returns:
        Configured default quota in bytes.
    """
    return settings.VAULT_DEFAULT_QUOTA_BYTES


@final
class ContentRecord(models.Model):
    """Deduplicated content stored once per distinct hash.

    ``reference_count`` equals the number of FileRecords pointing at this
    hash, and the blob at ``storage_path`` exists exactly while the count
    is positive. A row with ``pending_delete`` set has a count of zero
    but its blob could not be removed yet.

    Mutate only through ``ContentRecord.objects`` ledger primitives.
    """

    content_hash = models.CharField(
        max_length=_CONTENT_HASH_MAX_LENGTH,
        primary_key=True,
        help_text='SHA256 hex digest of the content',
    )

    storage_path = models.CharField(
        max_length=_STORAGE_PATH_MAX_LENGTH,
        help_text='Backend path: {scope}/{owner_id}/{content_hash}',
    )

    byte_size = models.BigIntegerField(
        help_text='Size of the stored blob in bytes',
    )

    reference_count = models.IntegerField(
        default=1,
        help_text='Number of file records referencing this content',
    )

    pending_delete = models.BooleanField(
        default=False,
        help_text='Count reached zero but blob deletion failed',
    )

    created_at = models.DateTimeField(auto_now_add=True)

    objects = ContentRecordManager()

    class Meta:
        """Model metadata."""

        verbose_name = 'Content Record'  # type: ignore[mutable-override]
        verbose_name_plural = 'Content Records'  # type: ignore[mutable-override]

        constraints = [
            models.CheckConstraint(
                condition=models.Q(reference_count__gte=0),
                name='reference_count_non_negative',
            ),
            models.CheckConstraint(
                condition=models.Q(byte_size__gte=0),
                name='byte_size_non_negative',
            ),
        ]

        indexes = [
            # Reconciliation scans for stuck deletions
            models.Index(
                fields=['pending_delete'],
                name='content_pending_delete_idx',
            ),
            models.Index(
                fields=['storage_path'],
                name='content_storage_path_idx',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.content_hash[:12]} x{self.reference_count}'


@final
class FileRecord(models.Model):
    """Logical, user-visible file.

    Holds one counted reference to a ContentRecord and never owns the
    blob directly.
    """

    class Visibility(models.TextChoices):
        """Who may see the file."""

        PRIVATE = 'PRIVATE', 'Private'
        PUBLIC = 'PUBLIC', 'Public'
        SHARED_WITH_USERS = 'SHARED_WITH_USERS', 'Shared with users'

    id = models.UUIDField(  # noqa: WPS125
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
    )

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='vault_files',
        db_index=True,
    )

    # Folder hierarchy lives outside the engine
    folder_id = models.UUIDField(null=True, blank=True, db_index=True)

    display_name = models.CharField(max_length=_DISPLAY_NAME_MAX_LENGTH)

    mime_type = models.CharField(
        max_length=_MIME_TYPE_MAX_LENGTH,
        default='application/octet-stream',
    )

    content = models.ForeignKey(
        ContentRecord,
        on_delete=models.PROTECT,
        related_name='file_records',
        db_column='content_hash',
    )

    visibility = models.CharField(
        max_length=_VISIBILITY_MAX_LENGTH,
        choices=Visibility.choices,
        default=Visibility.PRIVATE,
    )

    share_token = models.CharField(
        max_length=_SHARE_TOKEN_MAX_LENGTH,
        unique=True,
        null=True,
        blank=True,
    )

    logical_size = models.BigIntegerField(
        help_text='Byte size charged to the owner quota',
    )

    download_count = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = FileRecordManager()

    class Meta:
        """Model metadata."""

        verbose_name = 'File Record'  # type: ignore[mutable-override]
        verbose_name_plural = 'File Records'  # type: ignore[mutable-override]
        ordering = ['-created_at']

        indexes = [
            models.Index(
                fields=['owner', '-created_at'],
                name='file_owner_recent_idx',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.owner_id}:{self.display_name}'

    @property
    def content_hash(self) -> str:
        """Hash of the referenced content."""
        return self.content_id


@final
class OwnerUsage(models.Model):
    """Storage quota and usage for an owner.

    ``used_bytes`` is the sum of ``logical_size`` over the owner's file
    records, so deduplicated content is still charged in full.
    """

    owner = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='vault_usage',
        primary_key=True,
    )

    quota_bytes = models.BigIntegerField(
        default=default_quota_bytes,
        help_text='Storage quota limit in bytes',
    )

    used_bytes = models.BigIntegerField(
        default=0,
        help_text='Currently used storage in bytes',
    )

    objects = OwnerUsageManager()

    class Meta:
        """Model metadata."""

        verbose_name = 'Owner Usage'  # type: ignore[mutable-override]
        verbose_name_plural = 'Owner Usage'  # type: ignore[mutable-override]

        constraints = [
            models.CheckConstraint(
                condition=models.Q(quota_bytes__gte=0),
                name='quota_bytes_non_negative',
            ),
            models.CheckConstraint(
                condition=models.Q(used_bytes__gte=0),
                name='used_bytes_non_negative',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.owner_id}: {self.used_bytes}/{self.quota_bytes}'

    def has_space_for(self, size_bytes: int) -> bool:
        """Check if there's enough space for the given size.

        Args:
            size_bytes: Size to check in bytes.

        Returns:
            True if there's enough space, False otherwise.
        """
        return self.used_bytes + size_bytes <= self.quota_bytes

    def available_bytes(self) -> int:
        """Get available storage space.

        Returns:
            Available bytes (never negative).
        """
        available = self.quota_bytes - self.used_bytes
        return max(0, available)


@final
class PendingRelease(models.Model):
    """Ledger release that a compensation step could not perform.

    Rows are replayed by the reconciliation sweep until the release
    succeeds, so an inflated reference count is never forgotten.
    """

    content_hash = models.CharField(
        max_length=_CONTENT_HASH_MAX_LENGTH,
        db_index=True,
    )

    reason = models.CharField(max_length=_REASON_MAX_LENGTH)

    attempts = models.PositiveIntegerField(default=0)

    last_error = models.TextField(blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        """Model metadata."""

        verbose_name = 'Pending Release'  # type: ignore[mutable-override]
        verbose_name_plural = 'Pending Releases'  # type: ignore[mutable-override]
        ordering = ['created_at']

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.content_hash[:12]} ({self.reason})'
