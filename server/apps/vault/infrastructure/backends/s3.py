"""S3-compatible storage backend for vault blobs."""

import logging
from typing import Any, Final, final, override

from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from django.utils import timezone
from storages.backends.s3 import S3Storage

from server.apps.vault.exceptions import BlobNotFoundError, StorageBackendError
from server.apps.vault.infrastructure.backends.base import BlobStat, StorageBackend

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES: Final = frozenset(('404', 'NoSuchKey', 'NoSuchBucket', 'NotFound'))
_DEFAULT_REGION: Final = 'us-east-1'
# Regions that must not be sent as a bucket location constraint
_IMPLICIT_REGIONS: Final = frozenset((_DEFAULT_REGION, 'auto'))

_S3Errors = (BotoCoreError, ClientError)


def _is_not_found(error: ClientError) -> bool:
    return error.response.get('Error', {}).get('Code') in _NOT_FOUND_CODES


@final
class S3Backend(StorageBackend, S3Storage):
    """Blob store on S3-compatible object storage (AWS, MinIO, R2).

    Extends django-storages S3Storage with:
    - Bucket auto-creation on first use
    - Server-side encryption on every write
    - Bounded connect/read timeouts and retry attempts
    - Error wrapping into StorageBackendError / BlobNotFoundError
    """

    supports_presigned_urls = True

    def __init__(self, **settings: Any) -> None:
        """Split vault options from django-storages settings.

        Args:
            settings: S3Storage settings plus ``server_side_encryption``,
                ``auto_create_bucket``, ``connect_timeout``,
                ``read_timeout`` and ``max_attempts``.
        """
        self.server_side_encryption = settings.pop(
            'server_side_encryption',
            'AES256',
        )
        self.auto_create_bucket = settings.pop('auto_create_bucket', True)
        connect_timeout = settings.pop('connect_timeout', 5)
        read_timeout = settings.pop('read_timeout', 30)
        max_attempts = settings.pop('max_attempts', 3)

        settings.setdefault('client_config', Config(
            s3={'addressing_style': settings.get('addressing_style') or 'auto'},
            signature_version='s3v4',
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            retries={'max_attempts': max_attempts, 'mode': 'standard'},
        ))
        # Content-addressed paths are written exactly where asked
        settings.setdefault('file_overwrite', True)
        settings.setdefault('default_acl', None)  # Inherit bucket ACL
        super().__init__(**settings)
        self._bucket_ready = False

    @property
    def client(self) -> Any:
        """Low-level boto3 S3 client (per-thread, like the connection)."""
        return self.connection.meta.client

    def ensure_bucket(self) -> None:
        """Create the bucket if it does not exist yet.

        Raises:
            StorageBackendError: If the bucket can't be checked or created.
        """
        if self._bucket_ready or not self.auto_create_bucket:
            return

        try:
            self.client.head_bucket(Bucket=self.bucket_name)
        except ClientError as error:
            if not _is_not_found(error):
                logger.exception('Failed to check bucket: %s', self.bucket_name)
                raise StorageBackendError(
                    'ensure_bucket',
                    self.bucket_name,
                    str(error),
                ) from error
            self._create_bucket()
        except BotoCoreError as error:
            logger.exception('Failed to check bucket: %s', self.bucket_name)
            raise StorageBackendError(
                'ensure_bucket',
                self.bucket_name,
                str(error),
            ) from error

        self._bucket_ready = True

    @override
    def store(self, path: str, data: bytes, mime_type: str) -> None:
        """Upload blob with server-side encryption.

        Args:
            path: Object key.
            data: Blob bytes.
            mime_type: Content type stored with the object.

        Raises:
            StorageBackendError: If the upload fails.
        """
        self.ensure_bucket()
        params: dict[str, Any] = {
            'Bucket': self.bucket_name,
            'Key': path,
            'Body': data,
            'ContentType': mime_type,
            'ContentLength': len(data),
            'Metadata': {
                'content-hash': path.rsplit('/', 1)[-1],
                'uploaded-at': timezone.now().isoformat(),
            },
        }
        if self.server_side_encryption:
            params['ServerSideEncryption'] = self.server_side_encryption

        try:
            logger.info(
                'Storing blob in S3: %s (%s, %d bytes, bucket %s)',
                path,
                mime_type,
                len(data),
                self.bucket_name,
            )
            self.client.put_object(**params)
        except _S3Errors as error:
            logger.exception('Failed to store blob in S3: %s', path)
            raise StorageBackendError('store', path, str(error)) from error

    @override
    def get(self, path: str) -> Any:
        """Open blob for streaming download.

        Args:
            path: Object key.

        Returns:
            botocore StreamingBody.

        Raises:
            BlobNotFoundError: If the object does not exist.
            StorageBackendError: If the download fails.
        """
        try:
            response = self.client.get_object(Bucket=self.bucket_name, Key=path)
        except ClientError as error:
            if _is_not_found(error):
                raise BlobNotFoundError(path) from error
            logger.exception('Failed to get blob from S3: %s', path)
            raise StorageBackendError('get', path, str(error)) from error
        except BotoCoreError as error:
            logger.exception('Failed to get blob from S3: %s', path)
            raise StorageBackendError('get', path, str(error)) from error
        return response['Body']

    @override
    def delete(self, name: str) -> None:
        """Delete object; a missing object is not an error.

        Args:
            name: Object key.

        Raises:
            StorageBackendError: If S3 delete fails.
        """
        try:
            logger.info('Deleting blob from S3: %s', name)
            self.client.delete_object(Bucket=self.bucket_name, Key=name)
        except ClientError as error:
            if _is_not_found(error):
                return
            logger.exception('Failed to delete blob from S3: %s', name)
            raise StorageBackendError('delete', name, str(error)) from error
        except BotoCoreError as error:
            logger.exception('Failed to delete blob from S3: %s', name)
            raise StorageBackendError('delete', name, str(error)) from error

    @override
    def exists(self, name: str) -> bool:
        """Check object existence with a HEAD request.

        Raises:
            StorageBackendError: If the check itself fails.
        """
        try:
            self.client.head_object(Bucket=self.bucket_name, Key=name)
        except ClientError as error:
            if _is_not_found(error):
                return False
            raise StorageBackendError('exists', name, str(error)) from error
        except BotoCoreError as error:
            raise StorageBackendError('exists', name, str(error)) from error
        return True

    @override
    def stat(self, path: str) -> BlobStat:
        """Return object metadata from a HEAD request.

        Raises:
            BlobNotFoundError: If the object does not exist.
            StorageBackendError: If the request fails.
        """
        try:
            response = self.client.head_object(Bucket=self.bucket_name, Key=path)
        except ClientError as error:
            if _is_not_found(error):
                raise BlobNotFoundError(path) from error
            raise StorageBackendError('stat', path, str(error)) from error
        except BotoCoreError as error:
            raise StorageBackendError('stat', path, str(error)) from error

        return BlobStat(
            path=path,
            size=response['ContentLength'],
            modified_at=response['LastModified'],
            mime_type=response.get('ContentType'),
        )

    @override
    def list_blobs(self, prefix: str = '') -> list[BlobStat]:
        """List objects under a prefix, following pagination.

        Args:
            prefix: Key prefix.

        Returns:
            Blob stats in key order.

        Raises:
            StorageBackendError: If listing fails.
        """
        self.ensure_bucket()
        paginator = self.client.get_paginator('list_objects_v2')
        blobs = []
        try:
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                blobs.extend(
                    BlobStat(
                        path=obj['Key'],
                        size=obj['Size'],
                        modified_at=obj['LastModified'],
                    )
                    for obj in page.get('Contents', [])
                )
        except _S3Errors as error:
            logger.exception('Failed to list blobs in S3: %s', prefix)
            raise StorageBackendError('list', prefix, str(error)) from error

        logger.debug('Listed %d blobs under %r', len(blobs), prefix)
        return blobs

    @override
    def presigned_url(self, path: str, ttl: int) -> str:
        """Generate a presigned GET URL.

        Args:
            path: Object key.
            ttl: URL lifetime in seconds.

        Returns:
            Presigned URL.

        Raises:
            StorageBackendError: If signing fails.
        """
        try:
            return self.client.generate_presigned_url(
                'get_object',
                Params={'Bucket': self.bucket_name, 'Key': path},
                ExpiresIn=int(ttl),
            )
        except _S3Errors as error:
            raise StorageBackendError('presign', path, str(error)) from error

    def _create_bucket(self) -> None:
        params: dict[str, Any] = {'Bucket': self.bucket_name}
        region = self.region_name or _DEFAULT_REGION
        if region not in _IMPLICIT_REGIONS:
            params['CreateBucketConfiguration'] = {'LocationConstraint': region}

        try:
            logger.info('Creating bucket: %s (%s)', self.bucket_name, region)
            self.client.create_bucket(**params)
        except ClientError as error:
            code = error.response.get('Error', {}).get('Code')
            if code in {'BucketAlreadyOwnedByYou', 'BucketAlreadyExists'}:
                return
            logger.exception('Failed to create bucket: %s', self.bucket_name)
            raise StorageBackendError(
                'ensure_bucket',
                self.bucket_name,
                str(error),
            ) from error
