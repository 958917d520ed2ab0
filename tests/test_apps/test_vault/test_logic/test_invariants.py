"""End-to-end tests of ledger invariants across uploads and deletes."""

import pytest
from django.db.models import Count

from server.apps.vault.exceptions import BlobNotFoundError, ContentNotFoundError
from server.apps.vault.infrastructure.hashing import compute_content_hash
from server.apps.vault.logic import ledger
from server.apps.vault.logic.file_operations import (
    create_reference_copy,
    delete_content,
    download_content,
    upload_content,
)
from server.apps.vault.models import ContentRecord


def _read(stream):
    try:
        return stream.read()
    finally:
        stream.close()


def _assert_ledger_consistent(backend):
    for record in ContentRecord.objects.annotate(actual=Count('file_records')):
        assert record.reference_count == record.actual
        assert backend.exists(record.storage_path) == (record.reference_count > 0)


@pytest.fixture(params=['local', 's3'])
def backend(request, local_backend):
    """Run a test against each storage backend.

    Returns:
        Active vault backend.
    """
    if request.param == 's3':
        return request.getfixturevalue('s3_backend')
    return local_backend


@pytest.mark.django_db
def test_two_owner_scenario(
    backend,
    user,
    other_user,
    store_calls,
    committed,
):
    """Test shared content lives exactly as long as its last owner's file."""
    content_hash = compute_content_hash(b'hello')

    file_a = upload_content(user, b'hello', 'hello.txt')
    assert ledger.lookup(content_hash).reference_count == 1

    file_b = upload_content(other_user, b'hello', 'hello.txt')
    assert ledger.lookup(content_hash).reference_count == 2
    assert len(store_calls) == 1
    storage_path = file_b.content.storage_path

    with committed():
        delete_content(file_a.id, owner=user)
    assert ledger.lookup(content_hash).reference_count == 1
    assert _read(download_content(file_b.id)) == b'hello'

    with committed():
        delete_content(file_b.id, owner=other_user)
    assert not ContentRecord.objects.exists()
    with pytest.raises(ContentNotFoundError):
        ledger.lookup(content_hash)
    with pytest.raises(BlobNotFoundError):
        backend.get(storage_path)


@pytest.mark.django_db
def test_n_uploads_yield_one_blob(backend, user, other_user, store_calls):
    """Test N uploads of identical bytes give one blob with count N."""
    owners = [user, other_user, user, other_user, user]

    for index, owner in enumerate(owners):
        upload_content(owner, b'same', f'{index}.txt')

    record = ContentRecord.objects.get()
    assert record.reference_count == len(owners)
    assert len(store_calls) == 1
    assert len(backend.list_blobs()) == 1


@pytest.mark.django_db
def test_invariants_hold_through_mixed_operations(
    backend,
    user,
    other_user,
    committed,
):
    """Test counts match records and blobs exist iff counted."""
    first = upload_content(user, b'alpha', 'a.txt')
    second = upload_content(user, b'beta', 'b.txt')
    shared = create_reference_copy(first.id, new_owner=other_user)
    upload_content(other_user, b'alpha', 'a2.txt')
    _assert_ledger_consistent(backend)

    with committed():
        delete_content(first.id)
        delete_content(second.id)
    _assert_ledger_consistent(backend)

    with committed():
        delete_content(shared.id)
    _assert_ledger_consistent(backend)
    assert ContentRecord.objects.get().reference_count == 1


@pytest.mark.django_db
def test_round_trip(backend):
    """Test stored bytes come back byte-identical."""
    data = bytes(range(256)) * 64
    path = f'personal/1/{compute_content_hash(data)}'

    backend.store(path, data, 'application/octet-stream')

    assert _read(backend.get(path)) == data
