"""Exceptions for the upload/store/serve pipeline.

Low-level errors (OSError, binascii.Error, SQLAlchemyError) are caught at
component boundaries and re-raised as one of these.
"""


class EarlBoxError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(EarlBoxError):
    """Raised when an upload payload is oversized or malformed. Nothing is written."""


class StorageWriteError(EarlBoxError):
    """Raised when a blob cannot be persisted."""

    def __init__(self, filename: str, reason: str) -> None:
        self.filename = filename
        self.reason = reason
        super().__init__(f'Failed to write blob {filename!r}: {reason}')


class StorageUnavailableError(EarlBoxError):
    """Raised at startup when the storage root is missing and cannot be created, or is not writable."""


class MetadataStoreError(EarlBoxError):
    """Raised when the metadata backend fails."""


class ConflictError(MetadataStoreError):
    """Raised when a record with the same id already exists."""

    def __init__(self, file_id: str) -> None:
        self.file_id = file_id
        super().__init__(f'File record {file_id!r} already exists')


class MetadataWriteError(EarlBoxError):
    """Raised when the metadata insert fails after the blob was written.

    Triggers the compensating blob delete.
    """


class NotFoundError(EarlBoxError):
    """Raised for an unknown id or a record whose blob is missing."""


class StreamError(EarlBoxError):
    """Raised when reading a blob fails mid-transfer."""


class StatsUnavailableError(EarlBoxError):
    """Raised when statistics cannot be computed because the store is unreachable."""
