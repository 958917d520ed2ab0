"""Concurrency tests for the upload and delete paths.

Each thread gets its own database connection, so these tests run
outside the per-test transaction.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Final

import pytest
from django.db import connections

from server.apps.vault.infrastructure.hashing import compute_content_hash
from server.apps.vault.logic.file_operations import delete_content, upload_content
from server.apps.vault.models import ContentRecord, FileRecord, OwnerUsage

_WORKERS: Final = 50
_CONTENT: Final = b'identical bytes uploaded by everyone'


def _run_concurrently(task, count):
    barrier = threading.Barrier(count)

    def worker(index):
        try:
            barrier.wait()
            return task(index)
        finally:
            connections.close_all()

    with ThreadPoolExecutor(max_workers=count) as executor:
        return list(executor.map(worker, range(count)))


@pytest.mark.django_db(transaction=True)
def test_concurrent_identical_uploads_store_once(user, store_calls):
    """Test 50 racing uploads of the same bytes write exactly one blob."""
    file_records = _run_concurrently(
        lambda index: upload_content(user, _CONTENT, f'copy-{index}.txt'),
        _WORKERS,
    )

    content_hash = compute_content_hash(_CONTENT)
    assert len(file_records) == _WORKERS
    assert len(store_calls) == 1
    record = ContentRecord.objects.get(content_hash=content_hash)
    assert record.reference_count == _WORKERS
    assert FileRecord.objects.filter(content_id=content_hash).count() == _WORKERS
    assert OwnerUsage.objects.get(owner=user).used_bytes == _WORKERS * len(_CONTENT)


@pytest.mark.django_db(transaction=True)
def test_concurrent_deletes_release_every_reference(user, local_backend):
    """Test racing deletes never lose a decrement or go negative."""
    file_records = [
        upload_content(user, _CONTENT, f'copy-{index}.txt')
        for index in range(_WORKERS)
    ]
    storage_path = file_records[0].content.storage_path

    _run_concurrently(
        lambda index: delete_content(file_records[index].id),
        _WORKERS,
    )

    assert not ContentRecord.objects.exists()
    assert not FileRecord.objects.exists()
    assert not local_backend.exists(storage_path)
    assert OwnerUsage.objects.get(owner=user).used_bytes == 0
