"""Tests for the S3 backend against mocked AWS."""

import pytest
from django.core.files.storage import storages

from server.apps.vault.exceptions import BlobNotFoundError, StorageBackendError
from server.apps.vault.infrastructure.backends.s3 import S3Backend

_HASH = 'ef' * 32
_PATH = f'personal/1/{_HASH}'


def test_store_creates_bucket_and_object(s3_backend):
    """Test first store creates the bucket and writes the object."""
    s3_backend.store(_PATH, b'content', 'text/plain')

    body = s3_backend.client.get_object(
        Bucket=s3_backend.bucket_name,
        Key=_PATH,
    )['Body'].read()
    assert body == b'content'


def test_store_applies_server_side_encryption(s3_backend):
    """Test every object is written with server-side encryption."""
    s3_backend.store(_PATH, b'content', 'text/plain')

    head = s3_backend.client.head_object(
        Bucket=s3_backend.bucket_name,
        Key=_PATH,
    )
    assert head['ServerSideEncryption'] == 'AES256'
    assert head['ContentType'] == 'text/plain'
    assert head['Metadata']['content-hash'] == _HASH


def test_get_returns_stream(s3_backend):
    """Test get returns a readable stream."""
    s3_backend.store(_PATH, b'content', 'text/plain')

    assert s3_backend.get(_PATH).read() == b'content'


def test_get_missing_raises_blob_not_found(s3_backend):
    """Test reading an absent key raises BlobNotFoundError."""
    s3_backend.ensure_bucket()

    with pytest.raises(BlobNotFoundError):
        s3_backend.get(_PATH)


def test_delete_is_idempotent(s3_backend):
    """Test deleting twice is not an error."""
    s3_backend.store(_PATH, b'content', 'text/plain')

    s3_backend.delete(_PATH)
    s3_backend.delete(_PATH)

    assert not s3_backend.exists(_PATH)


def test_exists(s3_backend):
    """Test exists reflects stored state."""
    s3_backend.ensure_bucket()
    assert not s3_backend.exists(_PATH)

    s3_backend.store(_PATH, b'content', 'text/plain')

    assert s3_backend.exists(_PATH)


def test_stat(s3_backend):
    """Test stat reports size and MIME type."""
    s3_backend.store(_PATH, b'12345', 'image/png')

    stat = s3_backend.stat(_PATH)

    assert stat.size == 5
    assert stat.mime_type == 'image/png'
    assert stat.modified_at is not None


def test_stat_missing_raises_blob_not_found(s3_backend):
    """Test stat of an absent key raises BlobNotFoundError."""
    s3_backend.ensure_bucket()

    with pytest.raises(BlobNotFoundError):
        s3_backend.stat(_PATH)


def test_list_blobs_filters_by_prefix(s3_backend):
    """Test listing returns keys under the prefix."""
    s3_backend.store('personal/1/aaa', b'a', 'text/plain')
    s3_backend.store('personal/1/bbb', b'b', 'text/plain')
    s3_backend.store('tenant-1/1/ccc', b'c', 'text/plain')

    listed = [stat.path for stat in s3_backend.list_blobs('personal/')]

    assert listed == ['personal/1/aaa', 'personal/1/bbb']


def test_presigned_url(s3_backend):
    """Test presigned GET URL names the key and carries a signature."""
    assert s3_backend.supports_presigned_urls

    url = s3_backend.presigned_url(_PATH, 300)

    assert _HASH in url
    assert 'X-Amz-Expires=300' in url


def test_client_config_bounds_timeouts(s3_backend):
    """Test timeouts and retries are configured on the client."""
    config = s3_backend.client_config

    assert config.connect_timeout == 5
    assert config.read_timeout == 30
    assert config.retries == {'max_attempts': 3, 'mode': 'standard'}


def test_bucket_created_with_location_constraint(s3_backend):
    """Test buckets outside us-east-1 get a location constraint."""
    backend = S3Backend(
        bucket_name='vault-eu',
        access_key='testing',
        secret_key='testing',
        region_name='eu-west-1',
    )

    backend.store(_PATH, b'content', 'text/plain')

    location = backend.client.get_bucket_location(Bucket='vault-eu')
    assert location['LocationConstraint'] == 'eu-west-1'


def test_missing_bucket_without_auto_create_fails(s3_backend):
    """Test store fails cleanly when the bucket may not be created."""
    backend = S3Backend(
        bucket_name='vault-missing',
        access_key='testing',
        secret_key='testing',
        region_name='us-east-1',
        auto_create_bucket=False,
    )

    with pytest.raises(StorageBackendError):
        backend.store(_PATH, b'content', 'text/plain')


def test_backend_is_shared_instance(s3_backend):
    """Test the configured backend is reused for the process."""
    assert storages['vault'] is s3_backend
