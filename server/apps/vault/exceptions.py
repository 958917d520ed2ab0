"""Exceptions for vault app.

Input validation errors use Django's ``ValidationError``. Everything the
storage engine raises itself derives from ``VaultError``.
"""


class VaultError(Exception):
    """Base class for storage engine errors."""

    #: Whether a caller may retry the failed operation with backoff.
    retryable = False


class QuotaExceededError(VaultError):
    """Raised when upload would exceed owner's storage quota."""

    def __init__(
        self,
        quota_bytes: int,
        used_bytes: int,
        required_bytes: int,
    ) -> None:
        """Initialize QuotaExceededError.

        Args:
            quota_bytes: Total quota limit in bytes.
            used_bytes: Currently used bytes.
            required_bytes: Bytes needed for the operation.
        """
        self.quota_bytes = quota_bytes
        self.used_bytes = used_bytes
        self.required_bytes = required_bytes

        available = quota_bytes - used_bytes
        super().__init__(
            f'Quota exceeded: need {required_bytes} bytes, '
            f'only {available} bytes available '
            f'(quota: {quota_bytes}, used: {used_bytes})',
        )


class StorageBackendError(VaultError):
    """Transient storage I/O failure."""

    retryable = True

    def __init__(self, operation: str, path: str, detail: str = '') -> None:
        """Initialize StorageBackendError.

        Args:
            operation: Backend operation that failed (store, get, ...).
            path: Storage path the operation was applied to.
            detail: Optional description of the underlying failure.
        """
        self.operation = operation
        self.path = path
        message = f'Storage {operation} failed for {path}'
        if detail:
            message = f'{message}: {detail}'
        super().__init__(message)


class UnsupportedOperationError(VaultError):
    """Raised when a backend lacks an optional capability."""


class ContentNotFoundError(VaultError):
    """Content was assumed present but the ledger or blob is missing."""

    def __init__(self, content_hash: str, detail: str = '') -> None:
        """Initialize ContentNotFoundError.

        Args:
            content_hash: Content hash that was looked up.
            detail: Optional context about the lookup.
        """
        self.content_hash = content_hash
        message = f'Content not found: {content_hash}'
        if detail:
            message = f'{message} ({detail})'
        super().__init__(message)


class BlobNotFoundError(ContentNotFoundError):
    """No blob is stored at the requested path."""

    def __init__(self, path: str) -> None:
        """Initialize BlobNotFoundError.

        Args:
            path: Storage path that does not exist.
        """
        self.path = path
        super().__init__(
            content_hash=path.rsplit('/', 1)[-1],
            detail=f'no blob at {path}',
        )


class ReferenceIntegrityError(VaultError):
    """Reference count bookkeeping is inconsistent.

    Raised for a decrement with nothing left to release, an increment on
    an absent hash, or a ledger row that disagrees with file records.
    Signals a programming bug or an unhandled race.
    """

    def __init__(self, content_hash: str, detail: str) -> None:
        """Initialize ReferenceIntegrityError.

        Args:
            content_hash: Content hash whose bookkeeping is broken.
            detail: What was inconsistent.
        """
        self.content_hash = content_hash
        super().__init__(f'Reference integrity violated for {content_hash}: {detail}')
