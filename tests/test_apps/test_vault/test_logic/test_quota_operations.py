"""Tests for quota operations business logic."""

import pytest

from server.apps.vault.exceptions import QuotaExceededError
from server.apps.vault.logic.quota_operations import (
    commit,
    get_or_create_usage,
    recalculate_usage,
    release,
    reserve,
)
from server.apps.vault.models import ContentRecord, FileRecord, OwnerUsage


def _file_record(owner, content_hash, size):
    content = ContentRecord.objects.create(
        content_hash=content_hash,
        storage_path=f'personal/{owner.pk}/{content_hash}',
        byte_size=size,
    )
    return FileRecord.objects.create(
        owner=owner,
        display_name='file.txt',
        content=content,
        logical_size=size,
    )


@pytest.mark.django_db
def test_get_or_create_usage_creates_new(user):
    """Test get_or_create_usage creates usage when none exists."""
    assert not OwnerUsage.objects.filter(owner=user).exists()

    usage = get_or_create_usage(user)

    assert usage.owner == user
    assert usage.quota_bytes == 10 * 1024 * 1024 * 1024  # 10 GB default
    assert usage.used_bytes == 0


@pytest.mark.django_db
def test_get_or_create_usage_honours_settings(user, settings):
    """Test default quota comes from settings."""
    settings.VAULT_DEFAULT_QUOTA_BYTES = 1234

    assert get_or_create_usage(user).quota_bytes == 1234


@pytest.mark.django_db
def test_get_or_create_usage_returns_existing(user):
    """Test get_or_create_usage returns existing usage."""
    OwnerUsage.objects.create(owner=user, quota_bytes=5000, used_bytes=1000)

    usage = get_or_create_usage(user)

    assert usage.quota_bytes == 5000
    assert usage.used_bytes == 1000


@pytest.mark.django_db
def test_reserve_passes_when_space_available(user):
    """Test reserve doesn't raise when space is available."""
    OwnerUsage.objects.create(owner=user, quota_bytes=1000, used_bytes=400)

    # Should not raise
    reserve(user, 500)


@pytest.mark.django_db
def test_reserve_passes_at_exact_limit(user):
    """Test reserve doesn't raise when at exact limit."""
    OwnerUsage.objects.create(owner=user, quota_bytes=1000, used_bytes=400)

    # Should not raise - exactly at limit
    reserve(user, 600)


@pytest.mark.django_db
def test_reserve_raises_when_exceeded(user):
    """Test reserve raises QuotaExceededError when exceeded."""
    OwnerUsage.objects.create(owner=user, quota_bytes=1000, used_bytes=400)

    with pytest.raises(QuotaExceededError) as exc_info:
        reserve(user, 700)

    assert exc_info.value.quota_bytes == 1000
    assert exc_info.value.used_bytes == 400
    assert exc_info.value.required_bytes == 700
    assert not exc_info.value.retryable


@pytest.mark.django_db
def test_reserve_does_not_charge(user):
    """Test reserve leaves usage unchanged."""
    OwnerUsage.objects.create(owner=user, quota_bytes=1000, used_bytes=400)

    reserve(user, 100)

    assert OwnerUsage.objects.get(owner=user).used_bytes == 400


@pytest.mark.django_db
def test_reserve_creates_usage_on_demand(user):
    """Test reserve creates usage if it doesn't exist."""
    reserve(user, 1000)

    assert OwnerUsage.objects.filter(owner=user).exists()


@pytest.mark.django_db
def test_commit(user):
    """Test commit increases used_bytes."""
    OwnerUsage.objects.create(owner=user, quota_bytes=1000, used_bytes=100)

    commit(user, 50)

    assert OwnerUsage.objects.get(owner=user).used_bytes == 150


@pytest.mark.django_db
def test_commit_creates_usage_if_missing(user):
    """Test commit creates usage if missing."""
    commit(user, 500)

    assert OwnerUsage.objects.get(owner=user).used_bytes == 500


@pytest.mark.django_db
def test_release(user):
    """Test release decreases used_bytes."""
    OwnerUsage.objects.create(owner=user, quota_bytes=1000, used_bytes=100)

    release(user, 50)

    assert OwnerUsage.objects.get(owner=user).used_bytes == 50


@pytest.mark.django_db
def test_release_prevents_negative(user):
    """Test release clamps to 0."""
    OwnerUsage.objects.create(owner=user, quota_bytes=1000, used_bytes=100)

    release(user, 200)  # More than current usage

    assert OwnerUsage.objects.get(owner=user).used_bytes == 0


@pytest.mark.django_db
def test_release_no_usage(user):
    """Test release does nothing if no usage exists."""
    # Should not raise
    release(user, 100)

    # Usage should not be created
    assert not OwnerUsage.objects.filter(owner=user).exists()


@pytest.mark.django_db
def test_recalculate_usage_no_files(user):
    """Test recalculate_usage with no files."""
    OwnerUsage.objects.create(
        owner=user,
        quota_bytes=1000,
        used_bytes=500,  # Incorrect value
    )

    assert recalculate_usage(user) == 0
    assert OwnerUsage.objects.get(owner=user).used_bytes == 0


@pytest.mark.django_db
def test_recalculate_usage_with_files(user, other_user):
    """Test recalculate_usage sums only the owner's logical sizes."""
    OwnerUsage.objects.create(owner=user, quota_bytes=10000, used_bytes=0)
    _file_record(user, 'a' * 64, 100)
    _file_record(user, 'b' * 64, 200)
    _file_record(other_user, 'c' * 64, 999)

    assert recalculate_usage(user) == 300
    assert OwnerUsage.objects.get(owner=user).used_bytes == 300


@pytest.mark.django_db
def test_recalculate_usage_creates_usage_if_missing(user):
    """Test recalculate_usage creates usage if missing."""
    _file_record(user, 'a' * 64, 100)

    assert recalculate_usage(user) == 100
    assert OwnerUsage.objects.get(owner=user).used_bytes == 100


@pytest.mark.django_db
def test_quota_exceeded_error_message(user):
    """Test QuotaExceededError message format."""
    OwnerUsage.objects.create(owner=user, quota_bytes=1000, used_bytes=900)

    with pytest.raises(QuotaExceededError) as exc_info:
        reserve(user, 200)

    error = exc_info.value
    assert 'need 200 bytes' in str(error)
    assert 'only 100 bytes available' in str(error)
    assert 'quota: 1000' in str(error)
    assert 'used: 900' in str(error)


@pytest.mark.django_db
def test_recalculate_usage_creates_missing_row(user):
    """Test recalculate_usage creates usage for a new owner."""
    _file_record(user, 'd' * 64, 42)

    assert recalculate_usage(user) == 42
    assert OwnerUsage.objects.get(owner=user).used_bytes == 42


@pytest.mark.django_db
def test_recalculate_usage_locks_before_summing(user, monkeypatch):
    """Test the usage row is locked before file records are summed."""
    OwnerUsage.objects.create(owner=user, quota_bytes=1000, used_bytes=7)
    calls = []
    lock_rows = OwnerUsage.objects.select_for_update
    filter_records = FileRecord.objects.filter

    def recording_lock(*args, **kwargs):
        calls.append('lock')
        return lock_rows(*args, **kwargs)

    def recording_filter(*args, **kwargs):
        calls.append('sum')
        return filter_records(*args, **kwargs)

    monkeypatch.setattr(OwnerUsage.objects, 'select_for_update', recording_lock)
    monkeypatch.setattr(FileRecord.objects, 'filter', recording_filter)

    assert recalculate_usage(user) == 0
    assert calls == ['lock', 'sum']
