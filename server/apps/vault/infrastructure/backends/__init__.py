"""Storage backends for vault blobs.

The active backend is configured once in ``STORAGES['vault']``
(see ``server/settings/components/storages.py``).
"""

from typing import Final

from django.core.exceptions import ImproperlyConfigured
from django.core.files.storage import storages

from server.apps.vault.infrastructure.backends.base import BlobStat, StorageBackend

VAULT_STORAGE_ALIAS: Final = 'vault'

__all__ = ['VAULT_STORAGE_ALIAS', 'BlobStat', 'StorageBackend', 'get_backend']


def get_backend() -> StorageBackend:
    """Get the configured vault storage backend.

    Returns:
        StorageBackend instance, shared for the process.

    Raises:
        ImproperlyConfigured: If the configured class is not a vault backend.
    """
    backend = storages[VAULT_STORAGE_ALIAS]
    if not isinstance(backend, StorageBackend):
        raise ImproperlyConfigured(
            f'STORAGES[{VAULT_STORAGE_ALIAS!r}] must be a StorageBackend, '
            f'got {type(backend).__name__}',
        )
    return backend
