"""Django storage configuration for vault blobs.

The vault backend is chosen once here from ``VAULT_STORAGE_BACKEND``:
- ``local``: filesystem storage rooted at ``VAULT_LOCAL_ROOT``
- ``s3``: S3-compatible storage (AWS, MinIO, R2) via django-storages

Code reads the selected backend from ``storages['vault']`` and never
checks which variant is active.
"""

from typing import Any, Final

from django.core.exceptions import ImproperlyConfigured

from server.settings.components import BASE_DIR, config

_VAULT_BACKENDS: Final[dict[str, dict[str, Any]]] = {
    'local': {
        'BACKEND': 'server.apps.vault.infrastructure.backends.local.LocalBackend',
        'OPTIONS': {
            'location': config(
                'VAULT_LOCAL_ROOT',
                default=str(BASE_DIR.joinpath('media', 'vault')),
            ),
        },
    },
    's3': {
        'BACKEND': 'server.apps.vault.infrastructure.backends.s3.S3Backend',
        'OPTIONS': {
            'bucket_name': config('AWS_STORAGE_BUCKET_NAME', default='vault'),
            'access_key': config('AWS_ACCESS_KEY_ID', default=None),
            'secret_key': config('AWS_SECRET_ACCESS_KEY', default=None),
            'endpoint_url': config('AWS_S3_ENDPOINT_URL', default=None),
            'region_name': config('AWS_S3_REGION_NAME', default='us-east-1'),
            'addressing_style': config(
                'AWS_S3_ADDRESSING_STYLE',
                default='auto',
            ),
            'server_side_encryption': config(
                'AWS_S3_SERVER_SIDE_ENCRYPTION',
                default='AES256',
            ),
            'connect_timeout': config(
                'AWS_S3_CONNECT_TIMEOUT',
                cast=float,
                default=5,
            ),
            'read_timeout': config('AWS_S3_READ_TIMEOUT', cast=float, default=30),
            'max_attempts': config('AWS_S3_MAX_ATTEMPTS', cast=int, default=3),
            'auto_create_bucket': config(
                'AWS_S3_AUTO_CREATE_BUCKET',
                cast=bool,
                default=True,
            ),
        },
    },
}

VAULT_STORAGE_BACKEND = config('VAULT_STORAGE_BACKEND', default='local')

if VAULT_STORAGE_BACKEND not in _VAULT_BACKENDS:
    raise ImproperlyConfigured(
        f'Unknown VAULT_STORAGE_BACKEND: {VAULT_STORAGE_BACKEND!r} '
        f'(expected one of {sorted(_VAULT_BACKENDS)})',
    )

STORAGES: Final[dict[str, dict[str, Any]]] = {
    'default': {
        'BACKEND': 'django.core.files.storage.FileSystemStorage',
    },
    'staticfiles': {
        # Keep static files separate from vault blobs
        'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage',
    },
    'vault': _VAULT_BACKENDS[VAULT_STORAGE_BACKEND],
}
