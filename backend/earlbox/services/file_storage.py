"""Blob storage on the local filesystem, addressed by server filename."""
import logging
import os
import stat
from datetime import datetime, timezone
from pathlib import Path

import aiofiles
import aiofiles.os

from earlbox.exceptions import NotFoundError, StorageUnavailableError, StorageWriteError, StreamError

logger = logging.getLogger(__name__)


class BlobReadStream:
    """Lazy, finite, non-restartable async iterator over a blob's bytes.

    Reopen the blob to read it again. The file handle is released when the
    stream is exhausted, fails, or is closed with ``aclose()``.
    """

    def __init__(self, handle, filename: str, chunk_size: int):
        self._handle = handle
        self._chunk_size = chunk_size
        self.filename = filename
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        if self.closed:
            raise StopAsyncIteration
        try:
            chunk = await self._handle.read(self._chunk_size)
        except OSError as e:
            await self.aclose()
            raise StreamError(f"Read failed for blob {self.filename!r}: {e}") from e
        if not chunk:
            await self.aclose()
            raise StopAsyncIteration
        return chunk

    async def aclose(self) -> None:
        if not self.closed:
            self.closed = True
            await self._handle.close()


class FileStorageService:
    """Handles blob write/read/delete under a single storage root."""

    def __init__(self, base_path: str | Path):
        self.base_path = Path(base_path)

    def ensure_root(self) -> None:
        """Create the storage root if absent. Raises if it cannot be written to."""
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailableError(f"Cannot create storage root {self.base_path}: {e}") from e
        if not os.access(self.base_path, os.W_OK | os.X_OK):
            raise StorageUnavailableError(f"Storage root {self.base_path} is not writable")

    def _resolve(self, filename: str) -> Path | None:
        """Map a server filename to its path, or None if it would leave the root."""
        if (
            not filename
            or filename in (".", "..")
            or "/" in filename
            or "\\" in filename
            or "\x00" in filename
        ):
            return None
        return self.base_path / filename

    async def write(self, filename: str, data: bytes) -> Path:
        """Persist bytes under filename. Overwrites silently if the name exists."""
        path = self._resolve(filename)
        if path is None:
            raise StorageWriteError(filename, "unsafe filename")
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(data)
        except OSError as e:
            raise StorageWriteError(filename, str(e)) from e
        return path

    async def open_read_stream(self, filename: str, chunk_size: int = 64 * 1024) -> BlobReadStream:
        """Open a blob for streaming. The handle is opened eagerly so open errors surface here."""
        path = self._resolve(filename)
        if path is None:
            raise NotFoundError(f"Blob {filename!r} not found")
        try:
            handle = await aiofiles.open(path, "rb")
        except FileNotFoundError as e:
            raise NotFoundError(f"Blob {filename!r} not found") from e
        except OSError as e:
            raise StreamError(f"Cannot open blob {filename!r}: {e}") from e
        return BlobReadStream(handle, filename, chunk_size)

    async def exists(self, filename: str) -> bool:
        path = self._resolve(filename)
        if path is None:
            return False
        return await aiofiles.os.path.isfile(path)

    async def delete(self, filename: str) -> bool:
        """Best-effort delete. Failures are logged, never raised."""
        path = self._resolve(filename)
        if path is None:
            logger.error("Refusing to delete unsafe blob name %r", filename)
            return False
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            logger.debug("Blob %s already absent", filename)
            return False
        except OSError as e:
            logger.error("Failed to delete blob %s: %s", filename, e)
            return False
        return True

    async def list_blobs(self) -> list[tuple[str, datetime]]:
        """Every blob under the root with its last-modified time (UTC)."""
        blobs = []
        for name in await aiofiles.os.listdir(self.base_path):
            try:
                st = await aiofiles.os.stat(self.base_path / name)
            except FileNotFoundError:
                continue
            if not stat.S_ISREG(st.st_mode):
                continue
            blobs.append((name, datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)))
        return blobs
