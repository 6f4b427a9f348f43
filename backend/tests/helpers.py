"""Shared test helpers: a throwaway SQLite metadata store and blob root."""
import base64
import tempfile
from pathlib import Path
from unittest import IsolatedAsyncioTestCase

from earlbox.database import build_engine, build_session_factory
from earlbox.models import Base
from earlbox.models.base import utcnow
from earlbox.models.file_record import FileRecord
from earlbox.services.file_storage import FileStorageService


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def make_record(file_id: str, size: int = 10, ext: str = ".txt") -> FileRecord:
    return FileRecord(
        id=file_id,
        filename=f"{file_id}{ext}",
        original_name=f"original{ext}",
        mime_type="text/plain",
        file_size=size,
        file_path=f"{file_id}{ext}",
        created_at=utcnow(),
    )


class RecordingBlobStore(FileStorageService):
    """Real blob store that also records every delete it is asked to do."""

    def __init__(self, base_path):
        super().__init__(base_path)
        self.deleted: list[str] = []

    async def delete(self, filename: str) -> bool:
        self.deleted.append(filename)
        return await super().delete(filename)


class StorageTestCase(IsolatedAsyncioTestCase):
    """Gives each test a fresh SQLite database and an empty blob root."""

    async def asyncSetUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp_path = Path(self._tmp.name)
        self.engine = build_engine(f"sqlite+aiosqlite:///{self.tmp_path / 'earlbox.db'}")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self.session_factory = build_session_factory(self.engine)
        self.blob_store = RecordingBlobStore(self.tmp_path / "uploads")
        self.blob_store.ensure_root()

    async def asyncTearDown(self):
        await self.engine.dispose()
        self._tmp.cleanup()

    def stored_blobs(self) -> list[str]:
        return sorted(p.name for p in self.blob_store.base_path.iterdir())
