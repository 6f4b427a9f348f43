"""Upload pipeline: decode -> write blob -> insert metadata -> roll back on failure.

The blob is always written before its metadata row, so any reader that sees a
row for an id also finds that id's blob. A crash or insert failure between the
two steps can leave an orphan blob; the compensating delete below and the
startup sweep in ``reconciler`` clean those up. A row without a blob is never
produced by this path.

Every call returns an ``UploadResult``. Per-request failures are never raised.
"""
import base64
import binascii
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Literal, Optional

from earlbox.exceptions import (
    MetadataStoreError,
    MetadataWriteError,
    StorageWriteError,
    ValidationError,
)
from earlbox.models.base import utcnow
from earlbox.models.file_record import FileRecord
from earlbox.repositories.files_repo import FilesRepository
from earlbox.services import allocator
from earlbox.services.file_storage import FileStorageService

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 209_715_200

ErrorKind = Literal["validation", "storage", "metadata"]


@dataclass(frozen=True)
class UploadHandle:
    id: str
    filename: str
    download_url: str


@dataclass(frozen=True)
class UploadError:
    kind: ErrorKind
    message: str


@dataclass(frozen=True)
class UploadResult:
    success: bool
    handle: Optional[UploadHandle] = None
    error: Optional[UploadError] = None

    @classmethod
    def ok(cls, handle: UploadHandle) -> "UploadResult":
        return cls(success=True, handle=handle)

    @classmethod
    def failed(cls, kind: ErrorKind, message: str) -> "UploadResult":
        return cls(success=False, error=UploadError(kind=kind, message=message))

    def to_response(self) -> dict:
        """Wire shape. Failures carry empty strings, never partial data."""
        if self.success and self.handle is not None:
            return {
                "id": self.handle.id,
                "filename": self.handle.filename,
                "download_url": self.handle.download_url,
                "success": True,
            }
        return {
            "id": "",
            "filename": "",
            "download_url": "",
            "success": False,
            "error": self.error.message if self.error else None,
        }


def download_url_for(file_id: str) -> str:
    return f"/file/{file_id}"


def decode_payload(file_data: str, max_bytes: int = MAX_UPLOAD_BYTES) -> bytes:
    """Strict base64 decode, bounded by max_bytes.

    The decoded size implied by the encoded length is checked first so that an
    oversized payload is rejected without decoding it.
    """
    encoded_len = len(file_data)
    if encoded_len % 4:
        raise ValidationError("file_data is not valid base64 (length not a multiple of 4)")
    padding = file_data[-2:].count("=") if encoded_len else 0
    implied = (encoded_len // 4) * 3 - padding
    if implied > max_bytes:
        raise ValidationError(f"File exceeds the {max_bytes} byte limit ({implied} bytes)")
    try:
        data = base64.b64decode(file_data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"file_data is not valid base64: {e}") from e
    if len(data) > max_bytes:
        raise ValidationError(f"File exceeds the {max_bytes} byte limit ({len(data)} bytes)")
    return data


class UploadCoordinator:
    """Coordinates one upload across the blob store and the metadata repository."""

    def __init__(
        self,
        blob_store: FileStorageService,
        repository: FilesRepository,
        max_bytes: int = MAX_UPLOAD_BYTES,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.blob_store = blob_store
        self.repository = repository
        self.max_bytes = max_bytes
        self.clock = clock

    async def upload(
        self,
        original_name: str,
        mime_type: str,
        declared_size: int,
        file_data: str,
    ) -> UploadResult:
        file_id = allocator.allocate()
        filename = allocator.derive_filename(file_id, original_name)

        if declared_size > self.max_bytes:
            logger.info("Rejected upload %r: declared size %d over limit", original_name, declared_size)
            return UploadResult.failed(
                "validation", f"File exceeds the {self.max_bytes} byte limit (declared {declared_size} bytes)"
            )

        try:
            data = decode_payload(file_data, self.max_bytes)
        except ValidationError as e:
            logger.info("Rejected upload %r: %s", original_name, e)
            return UploadResult.failed("validation", str(e))

        if declared_size != len(data):
            logger.warning(
                "Declared size %d for %r differs from decoded size %d; storing decoded size",
                declared_size, original_name, len(data),
            )

        try:
            await self.blob_store.write(filename, data)
        except StorageWriteError as e:
            logger.error("Upload %s aborted: %s", file_id, e)
            return UploadResult.failed("storage", "Failed to store file")

        record = FileRecord(
            id=file_id,
            filename=filename,
            original_name=original_name,
            mime_type=mime_type,
            file_size=len(data),
            file_path=filename,
            created_at=self.clock(),
        )
        try:
            await self._commit(record)
        except MetadataWriteError as e:
            logger.error("Upload %s rolled back: %s", file_id, e)
            if not await self.blob_store.delete(filename):
                logger.error("Orphan blob %s left behind after failed upload %s", filename, file_id)
            return UploadResult.failed("metadata", "Failed to record file metadata")
        except BaseException:
            # cancelled or crashed mid-insert: still compensate, then propagate
            await self.blob_store.delete(filename)
            raise

        logger.info("Stored upload %s as %s (%d bytes)", file_id, filename, len(data))
        return UploadResult.ok(
            UploadHandle(id=file_id, filename=filename, download_url=download_url_for(file_id))
        )

    async def _commit(self, record: FileRecord) -> None:
        try:
            await self.repository.insert(record)
        except MetadataStoreError as e:
            raise MetadataWriteError(str(e)) from e
