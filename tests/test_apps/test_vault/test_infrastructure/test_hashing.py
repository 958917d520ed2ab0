"""Tests for content hashing."""

import hashlib
from io import BytesIO

from server.apps.vault.infrastructure.hashing import (
    CONTENT_HASH_LENGTH,
    compute_content_hash,
    verify_content_hash,
)


def test_compute_content_hash_bytes():
    """Test hash of raw bytes is the SHA256 hex digest."""
    content_hash = compute_content_hash(b'hello world')

    assert content_hash == hashlib.sha256(b'hello world').hexdigest()
    assert len(content_hash) == CONTENT_HASH_LENGTH


def test_compute_content_hash_stream_matches_bytes():
    """Test streamed content hashes the same as the same bytes."""
    data = b'x' * 20000  # Spans several chunks

    assert compute_content_hash(BytesIO(data)) == compute_content_hash(data)


def test_compute_content_hash_rewinds_stream():
    """Test stream position is reset after hashing."""
    stream = BytesIO(b'abc')
    stream.read()

    compute_content_hash(stream)

    assert stream.tell() == 0
    assert stream.read() == b'abc'


def test_compute_content_hash_differs_for_different_content():
    """Test different bytes produce different hashes."""
    assert compute_content_hash(b'a') != compute_content_hash(b'b')


def test_compute_content_hash_empty():
    """Test hashing empty content is well defined."""
    assert compute_content_hash(b'') == hashlib.sha256(b'').hexdigest()


def test_verify_content_hash():
    """Test verification accepts the right hash and rejects others."""
    data = b'payload'

    assert verify_content_hash(data, compute_content_hash(data))
    assert not verify_content_hash(data, '0' * CONTENT_HASH_LENGTH)
