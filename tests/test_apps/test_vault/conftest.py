"""Shared fixtures for vault app tests."""

import functools
import threading
from typing import Final

import pytest
from django.contrib.auth import get_user_model
from django.core.files.storage import storages
from moto import mock_aws

from server.apps.vault.infrastructure.backends import VAULT_STORAGE_ALIAS

User = get_user_model()

_TEST_BUCKET: Final = 'vault-test'
_LOCAL_BACKEND: Final = 'server.apps.vault.infrastructure.backends.local.LocalBackend'
_S3_BACKEND: Final = 'server.apps.vault.infrastructure.backends.s3.S3Backend'


def _storages_with_vault(settings, vault_entry):
    return {**settings.STORAGES, VAULT_STORAGE_ALIAS: vault_entry}


@pytest.fixture(autouse=True)
def local_backend(settings, tmp_path):
    """Point the vault backend at a temporary directory.

    Applied to every test so nothing is written into the project tree.

    Returns:
        LocalBackend instance rooted at tmp_path.
    """
    settings.STORAGES = _storages_with_vault(settings, {
        'BACKEND': _LOCAL_BACKEND,
        'OPTIONS': {'location': str(tmp_path / 'vault')},
    })
    return storages[VAULT_STORAGE_ALIAS]


@pytest.fixture
def s3_backend(settings):
    """Switch the vault backend to S3 against a mocked AWS.

    The bucket is not created up front; the backend creates it on
    first write.

    Yields:
        S3Backend instance.
    """
    with mock_aws():
        settings.STORAGES = _storages_with_vault(settings, {
            'BACKEND': _S3_BACKEND,
            'OPTIONS': {
                'bucket_name': _TEST_BUCKET,
                'access_key': 'testing',
                'secret_key': 'testing',
                'region_name': 'us-east-1',
            },
        })
        yield storages[VAULT_STORAGE_ALIAS]


@pytest.fixture
def store_calls(monkeypatch):
    """Count store() calls on the active vault backend.

    Thread-safe, for use in concurrency tests.

    Returns:
        List that receives one path per store() call.
    """
    backend = storages[VAULT_STORAGE_ALIAS]
    original_store = backend.store
    calls = []
    lock = threading.Lock()

    def counting_store(path, data, mime_type):
        with lock:
            calls.append(path)
        original_store(path, data, mime_type)

    monkeypatch.setattr(backend, 'store', counting_store)
    return calls


@pytest.fixture
def user(db):
    """Create test user.

    Returns:
        User instance for testing.
    """
    return User.objects.create_user(
        username='testuser',
        password='testpass123',
        email='test@example.com',
    )


@pytest.fixture
def other_user(db):
    """Create second test user for isolation tests.

    Returns:
        Second user instance.
    """
    return User.objects.create_user(
        username='otheruser',
        password='testpass123',
        email='other@example.com',
    )


@pytest.fixture
def sample_bytes():
    """Sample upload content.

    Returns:
        Bytes to upload.
    """
    return b'test file content'


@pytest.fixture
def committed(django_capture_on_commit_callbacks):
    """Run on-commit hooks registered inside the block on exit.

    Tests run inside a transaction that is never committed, so work
    deferred to commit (like ledger releases after a delete) needs
    this to happen.

    Returns:
        Context manager factory.
    """
    return functools.partial(django_capture_on_commit_callbacks, execute=True)
