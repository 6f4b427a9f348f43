"""FastAPI dependencies over the process-wide state built in the lifespan."""
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from earlbox.config import Settings
from earlbox.database import get_db
from earlbox.repositories.files_repo import FilesRepository
from earlbox.services.file_storage import FileStorageService
from earlbox.services.stats import StatsAggregator
from earlbox.services.upload_coordinator import UploadCoordinator


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_blob_store(request: Request) -> FileStorageService:
    return request.app.state.blob_store


def get_files_repo(db: AsyncSession = Depends(get_db)) -> FilesRepository:
    return FilesRepository(db)


def get_upload_coordinator(
    blob_store: FileStorageService = Depends(get_blob_store),
    repo: FilesRepository = Depends(get_files_repo),
    settings: Settings = Depends(get_settings),
) -> UploadCoordinator:
    return UploadCoordinator(blob_store, repo, max_bytes=settings.MAX_UPLOAD_BYTES)


def get_stats_aggregator(repo: FilesRepository = Depends(get_files_repo)) -> StatsAggregator:
    return StatsAggregator(repo)
