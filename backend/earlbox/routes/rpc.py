"""RPC procedures: uploadFile, getFileStats, getFileMetadata, healthcheck."""
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from earlbox.dependencies import get_files_repo, get_stats_aggregator, get_upload_coordinator
from earlbox.exceptions import MetadataStoreError, StatsUnavailableError
from earlbox.repositories.files_repo import FilesRepository
from earlbox.schemas.file import (
    FileRecordResponse,
    FileStatsResponse,
    HealthResponse,
    UploadFileRequest,
    UploadFileResponse,
)
from earlbox.services.stats import StatsAggregator
from earlbox.services.upload_coordinator import UploadCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rpc", tags=["rpc"])


@router.get("/healthcheck", response_model=HealthResponse)
async def healthcheck():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc)}


@router.post("/uploadFile", response_model=UploadFileResponse, response_model_exclude_none=True)
async def upload_file(
    body: UploadFileRequest,
    coordinator: UploadCoordinator = Depends(get_upload_coordinator),
):
    """Store a base64-encoded file and return its download handle.

    Oversized or malformed payloads get 400. Storage failures get 200 with
    success=false. Both carry empty id/filename/download_url.
    """
    result = await coordinator.upload(
        original_name=body.original_name,
        mime_type=body.mime_type,
        declared_size=body.file_size,
        file_data=body.file_data,
    )
    if result.error is not None and result.error.kind == "validation":
        return JSONResponse(status_code=400, content=result.to_response())
    return result.to_response()


@router.get("/getFileStats", response_model=FileStatsResponse)
async def get_file_stats(stats: StatsAggregator = Depends(get_stats_aggregator)):
    """Total number of stored files and their combined size in bytes."""
    try:
        snapshot = await stats.snapshot()
    except StatsUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"total_files": snapshot.total_files, "total_size": snapshot.total_size_bytes}


@router.get("/getFileMetadata", response_model=Optional[FileRecordResponse])
async def get_file_metadata(
    id: str = Query(...),
    repo: FilesRepository = Depends(get_files_repo),
):
    """Metadata for one file, or null if the id is unknown."""
    try:
        return await repo.find_by_id(id)
    except MetadataStoreError as e:
        logger.error(f"Metadata lookup for {id} failed: {e}")
        raise HTTPException(status_code=503, detail="Metadata store unavailable")
