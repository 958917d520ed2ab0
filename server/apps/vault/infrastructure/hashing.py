"""Content hashing for deduplication."""

import hashlib
import hmac
from typing import BinaryIO, Final

_CHUNK_SIZE: Final = 8192  # 8KB chunks for hashing streams

#: Length of a rendered content hash (SHA256 hex).
CONTENT_HASH_LENGTH: Final = 64


def compute_content_hash(content: bytes | BinaryIO) -> str:
    """Calculate the SHA256 content hash used as the dedup key.

    Streams are read in chunks and rewound before and after hashing.

    Args:
        content: Raw bytes or a seekable binary file-like object.

    Returns:
        Hex-encoded SHA256 digest.
    """
    sha256_hash = hashlib.sha256()

    if isinstance(content, (bytes, bytearray, memoryview)):
        sha256_hash.update(content)
        return sha256_hash.hexdigest()

    content.seek(0)
    for chunk in iter(lambda: content.read(_CHUNK_SIZE), b''):
        sha256_hash.update(chunk)
    content.seek(0)

    return sha256_hash.hexdigest()


def verify_content_hash(content: bytes | BinaryIO, expected: str) -> bool:
    """Check that content matches an expected hash.

    Args:
        content: Raw bytes or a seekable binary file-like object.
        expected: Expected hex digest.

    Returns:
        True if the digests match.
    """
    return hmac.compare_digest(compute_content_hash(content), expected)
