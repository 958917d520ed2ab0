"""Django admin configuration for vault app."""

from django.contrib import admin
from django.db.models import QuerySet
from django.http import HttpRequest
from django.utils.html import format_html

from server.apps.vault.models import (
    ContentRecord,
    FileRecord,
    OwnerUsage,
    PendingRelease,
)


def _format_bytes(size_bytes: int) -> str:
    """Format bytes in human-readable format.

    Args:
        size_bytes: Size in bytes.

    Returns:
        Formatted size string (e.g., '1.5 MB', '234 KB').
    """
    if size_bytes < 1024:
        return f'{size_bytes} B'
    if size_bytes < 1024 * 1024:  # noqa: WPS531
        return f'{size_bytes / 1024:.1f} KB'
    if size_bytes < 1024 * 1024 * 1024:  # noqa: WPS531
        return f'{size_bytes / (1024 * 1024):.1f} MB'
    return f'{size_bytes / (1024 * 1024 * 1024):.1f} GB'


@admin.register(ContentRecord)
class ContentRecordAdmin(admin.ModelAdmin[ContentRecord]):
    """Admin interface for the content ledger.

    Ledger columns are read-only; counts change only through file
    operations and reconciliation.
    """

    list_display = [
        'content_hash',
        'storage_path',
        'size_display',
        'reference_count',
        'pending_delete',
        'created_at',
    ]

    list_filter = [
        'pending_delete',
        'created_at',
    ]

    search_fields = [
        'content_hash',
        'storage_path',
    ]

    readonly_fields = [
        'content_hash',
        'storage_path',
        'byte_size',
        'reference_count',
        'pending_delete',
        'created_at',
    ]

    def size_display(self, obj: ContentRecord) -> str:
        """Display blob size in human-readable format."""
        return _format_bytes(obj.byte_size)
    size_display.short_description = 'Size'  # type: ignore[attr-defined]

    def has_add_permission(self, request: HttpRequest) -> bool:
        """Content rows are created by uploads only."""
        return False

    def has_delete_permission(
        self,
        request: HttpRequest,
        obj: ContentRecord | None = None,
    ) -> bool:
        """Content rows are deleted by releases only."""
        return False


@admin.register(FileRecord)
class FileRecordAdmin(admin.ModelAdmin[FileRecord]):
    """Admin interface for FileRecord model."""

    list_display = [
        'display_name',
        'owner',
        'size_display',
        'mime_type',
        'visibility',
        'download_count',
        'created_at',
    ]

    list_filter = [
        'visibility',
        'mime_type',
        'created_at',
    ]

    search_fields = [
        'display_name',
        'content__content_hash',
        'owner__username',
    ]

    readonly_fields = [
        'id',
        'owner',
        'content',
        'logical_size',
        'download_count',
        'created_at',
        'updated_at',
    ]

    fieldsets = (
        ('File Information', {
            'fields': ('id', 'owner', 'display_name', 'folder_id'),
        }),
        ('Content', {
            'fields': ('content', 'mime_type', 'logical_size'),
        }),
        ('Sharing', {
            'fields': ('visibility', 'share_token', 'download_count'),
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
        }),
    )

    def size_display(self, obj: FileRecord) -> str:
        """Display logical size in human-readable format.

        Args:
            obj: FileRecord instance.

        Returns:
            Formatted size string.
        """
        return _format_bytes(obj.logical_size)
    size_display.short_description = 'Size'  # type: ignore[attr-defined]

    def get_queryset(self, request: HttpRequest) -> QuerySet[FileRecord]:
        """Optimize queryset with select_related.

        Args:
            request: HTTP request.

        Returns:
            Optimized QuerySet.
        """
        return super().get_queryset(request).select_related('owner', 'content')


@admin.register(OwnerUsage)
class OwnerUsageAdmin(admin.ModelAdmin[OwnerUsage]):
    """Admin interface for OwnerUsage model."""

    list_display = [
        'owner',
        'quota_display',
        'used_display',
        'percentage_display',
        'status_display',
    ]

    search_fields = [
        'owner__username',
        'owner__email',
    ]

    readonly_fields = [
        'owner',
        'used_bytes',
    ]

    fieldsets = (
        ('Owner', {
            'fields': ('owner',),
        }),
        ('Quota Settings', {
            'fields': ('quota_bytes',),
        }),
        ('Current Usage', {
            'fields': ('used_bytes',),
        }),
    )

    def quota_display(self, obj: OwnerUsage) -> str:
        """Display quota in human-readable format."""
        return _format_bytes(obj.quota_bytes)
    quota_display.short_description = 'Quota'  # type: ignore[attr-defined]

    def used_display(self, obj: OwnerUsage) -> str:
        """Display used bytes in human-readable format."""
        return _format_bytes(obj.used_bytes)
    used_display.short_description = 'Used'  # type: ignore[attr-defined]

    def percentage_display(self, obj: OwnerUsage) -> str:
        """Display percentage of quota used.

        Args:
            obj: OwnerUsage instance.

        Returns:
            Percentage string.
        """
        if obj.quota_bytes == 0:
            return '0%'
        percentage = (obj.used_bytes / obj.quota_bytes) * 100
        return f'{percentage:.1f}%'
    percentage_display.short_description = '%'  # type: ignore[attr-defined]

    def status_display(self, obj: OwnerUsage) -> str:
        """Display status indicator based on usage.

        Args:
            obj: OwnerUsage instance.

        Returns:
            HTML formatted status indicator.
        """
        if obj.quota_bytes == 0:
            percentage = 0.0
        else:
            percentage = (obj.used_bytes / obj.quota_bytes) * 100

        if percentage >= 100:
            color = '#dc3545'  # Red - over quota
            status = 'Over Quota'
        elif percentage >= 90:
            color = '#ffc107'  # Yellow - warning
            status = 'Warning'
        else:
            color = '#28a745'  # Green - ok
            status = 'OK'

        return format_html(
            '<span style="color: {color}; font-weight: bold;">'
            '{status}</span>',
            color=color,
            status=status,
        )
    status_display.short_description = 'Status'  # type: ignore[attr-defined]

    def get_queryset(self, request: HttpRequest) -> QuerySet[OwnerUsage]:
        """Optimize queryset with select_related."""
        return super().get_queryset(request).select_related('owner')


@admin.register(PendingRelease)
class PendingReleaseAdmin(admin.ModelAdmin[PendingRelease]):
    """Admin interface for queued ledger releases."""

    list_display = [
        'content_hash',
        'reason',
        'attempts',
        'created_at',
        'updated_at',
    ]

    list_filter = ['reason']

    search_fields = ['content_hash']

    readonly_fields = [
        'content_hash',
        'reason',
        'attempts',
        'last_error',
        'created_at',
        'updated_at',
    ]
