"""Startup sweep for orphan blobs.

An upload that crashed between writing its blob and inserting its row leaves
a blob with no metadata. On startup, blobs older than the grace period with no
matching row are deleted. Rows are never touched.
"""
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from earlbox.repositories.files_repo import FilesRepository
from earlbox.services.file_storage import FileStorageService

logger = logging.getLogger(__name__)

_LOOKUP_BATCH = 500


async def reconcile_orphan_blobs(
    blob_store: FileStorageService,
    session_factory: async_sessionmaker[AsyncSession],
    grace_minutes: int = 60,
) -> int:
    """Delete orphan blobs older than `grace_minutes`. Returns how many were removed.

    The grace period keeps in-flight uploads (blob written, row not yet
    committed) out of the sweep.
    """
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=grace_minutes)
    candidates = [name for name, mtime in await blob_store.list_blobs() if mtime < cutoff]
    if not candidates:
        return 0

    committed: set[str] = set()
    async with session_factory() as db:
        repo = FilesRepository(db)
        for i in range(0, len(candidates), _LOOKUP_BATCH):
            committed |= await repo.existing_filenames(candidates[i:i + _LOOKUP_BATCH])

    removed = 0
    for name in candidates:
        if name in committed:
            continue
        if await blob_store.delete(name):
            removed += 1
            logger.warning(f"Removed orphan blob {name}")
    if removed:
        logger.info(f"Removed {removed} orphan blob(s)")
    return removed
