"""Aggregate statistics over stored files."""
import logging
from dataclasses import dataclass

from earlbox.exceptions import MetadataStoreError, StatsUnavailableError
from earlbox.repositories.files_repo import FilesRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileStats:
    total_files: int
    total_size_bytes: int


class StatsAggregator:
    def __init__(self, repository: FilesRepository):
        self.repository = repository

    async def snapshot(self) -> FileStats:
        """Current totals. An empty store is {0, 0}; an unreachable one raises."""
        try:
            agg = await self.repository.aggregate()
        except MetadataStoreError as e:
            logger.error("File stats unavailable: %s", e)
            raise StatsUnavailableError("File statistics are temporarily unavailable") from e
        return FileStats(total_files=agg.count, total_size_bytes=agg.total_bytes)
