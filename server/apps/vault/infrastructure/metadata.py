"""Metadata extraction and validation utilities for uploads."""

import mimetypes
from typing import BinaryIO, Final

from django.core.exceptions import ValidationError
from django.core.validators import validate_slug

from server.apps.vault.infrastructure.hashing import CONTENT_HASH_LENGTH

_DISPLAY_NAME_MAX_LENGTH: Final = 255
_SCOPE_MAX_LENGTH: Final = 100
_DEFAULT_MIME_TYPE: Final = 'application/octet-stream'


def detect_mime_type(display_name: str) -> str:
    """Detect MIME type from a display name.

    Uses Python's built-in mimetypes module to guess MIME type
    from the filename extension.

    Args:
        display_name: Filename with extension.

    Returns:
        MIME type string (e.g., 'image/jpeg', 'application/pdf').
        Returns 'application/octet-stream' if type cannot be determined.
    """
    mime_type, _ = mimetypes.guess_type(display_name)
    if mime_type is None:
        return _DEFAULT_MIME_TYPE
    return mime_type


def read_content(content: bytes | BinaryIO) -> bytes:
    """Materialize upload content as bytes.

    Args:
        content: Raw bytes or a binary file-like object.

    Returns:
        Content bytes.
    """
    if isinstance(content, (bytes, bytearray, memoryview)):
        return bytes(content)
    content.seek(0)
    data = content.read()
    content.seek(0)
    return data


def validate_display_name(display_name: str) -> None:
    """Validate a user-visible file name.

    Args:
        display_name: Proposed display name.

    Raises:
        ValidationError: If the name is blank, too long or contains a
            path separator.
    """
    if not display_name or not display_name.strip():
        raise ValidationError('Display name cannot be empty')

    if len(display_name) > _DISPLAY_NAME_MAX_LENGTH:
        raise ValidationError(
            f'Display name is longer than {_DISPLAY_NAME_MAX_LENGTH} characters',
        )

    if '/' in display_name or '\\' in display_name:
        raise ValidationError('Display name cannot contain path separators')


def validate_scope(scope: str) -> None:
    """Validate a tenancy scope used in storage paths.

    Scope is ``personal`` or a tenant identifier made of letters,
    digits, hyphens and underscores.

    Args:
        scope: Proposed scope.

    Raises:
        ValidationError: If the scope is empty, too long or not a slug.
    """
    if not scope:
        raise ValidationError('Scope cannot be empty')

    if len(scope) > _SCOPE_MAX_LENGTH:
        raise ValidationError(
            f'Scope is longer than {_SCOPE_MAX_LENGTH} characters',
        )

    validate_slug(scope)


def build_storage_path(scope: str, owner_id: object, content_hash: str) -> str:
    """Build the backend path for a blob.

    Example: ('personal', 42, 'ab12...') -> 'personal/42/ab12...'

    Scope only decides where bytes land; the dedup key is the hash.

    Args:
        scope: ``personal`` or a tenant identifier.
        owner_id: ID of the first uploader.
        content_hash: SHA256 hex digest of the content.

    Returns:
        Storage path.

    Raises:
        ValidationError: If the content hash is malformed.
    """
    if len(content_hash) != CONTENT_HASH_LENGTH:
        raise ValidationError(f'Malformed content hash: {content_hash!r}')
    return f'{scope}/{owner_id}/{content_hash}'
