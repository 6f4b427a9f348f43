"""CRUD and aggregate queries over the files table."""
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from earlbox.exceptions import ConflictError, MetadataStoreError
from earlbox.models.file_record import FileRecord


@dataclass(frozen=True)
class FileAggregate:
    count: int
    total_bytes: int


class FilesRepository:
    """Metadata access for file records. Rows are inserted once and never updated."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def insert(self, record: FileRecord) -> FileRecord:
        """Commit exactly one row keyed by record.id."""
        self.db.add(record)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError(record.id) from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise MetadataStoreError(f"Insert of file record {record.id} failed: {e}") from e
        return record

    async def find_by_id(self, file_id: str) -> Optional[FileRecord]:
        try:
            result = await self.db.execute(
                select(FileRecord).where(FileRecord.id == file_id)
            )
        except SQLAlchemyError as e:
            raise MetadataStoreError(f"Lookup of file record {file_id} failed: {e}") from e
        return result.scalar_one_or_none()

    async def aggregate(self) -> FileAggregate:
        """Row count and byte total. The total is 0, not NULL, for an empty table."""
        try:
            result = await self.db.execute(
                select(
                    func.count(FileRecord.id),
                    func.coalesce(func.sum(FileRecord.file_size), 0),
                )
            )
        except SQLAlchemyError as e:
            raise MetadataStoreError(f"Aggregate over file records failed: {e}") from e
        count, total = result.one()
        return FileAggregate(count=int(count or 0), total_bytes=int(total or 0))

    async def existing_filenames(self, filenames: Iterable[str]) -> set[str]:
        """Subset of the given server filenames that have a committed row."""
        names = list(filenames)
        if not names:
            return set()
        try:
            result = await self.db.execute(
                select(FileRecord.filename).where(FileRecord.filename.in_(names))
            )
        except SQLAlchemyError as e:
            raise MetadataStoreError(f"Filename lookup failed: {e}") from e
        return set(result.scalars().all())
