"""File serving route: GET /file/{id}.

id -> metadata row -> blob existence -> If-None-Match -> streamed body.
"""
import logging
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import PlainTextResponse, StreamingResponse
from starlette.background import BackgroundTask

from earlbox.config import Settings
from earlbox.dependencies import get_blob_store, get_files_repo, get_settings
from earlbox.exceptions import MetadataStoreError, NotFoundError, StreamError
from earlbox.repositories.files_repo import FilesRepository
from earlbox.services.file_storage import BlobReadStream, FileStorageService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["files"])


def etag_for(file_id: str) -> str:
    return f'"{file_id}"'


def etag_matches(if_none_match: Optional[str], etag: str) -> bool:
    """Weak comparison of an If-None-Match list against our strong ETag."""
    if not if_none_match:
        return False
    for candidate in if_none_match.split(","):
        candidate = candidate.strip()
        if candidate == "*":
            return True
        if candidate.startswith("W/"):
            candidate = candidate[2:]
        if candidate == etag:
            return True
    return False


async def _pipe(stream: BlobReadStream, file_id: str) -> AsyncIterator[bytes]:
    """Yield blob chunks. A read error after headers truncates the body."""
    try:
        async for chunk in stream:
            yield chunk
    except StreamError as e:
        logger.error(f"Stream for file {file_id} truncated: {e}")
    finally:
        await stream.aclose()


@router.get("/file/{file_id}")
async def serve_file(
    file_id: str,
    request: Request,
    repo: FilesRepository = Depends(get_files_repo),
    blob_store: FileStorageService = Depends(get_blob_store),
    settings: Settings = Depends(get_settings),
):
    """Stream a stored file with long-lived cache headers."""
    try:
        record = await repo.find_by_id(file_id)
    except MetadataStoreError as e:
        logger.error(f"File serving error for {file_id}: {e}")
        return PlainTextResponse("Internal server error", status_code=500)
    if record is None:
        return PlainTextResponse("File not found", status_code=404)

    if not await blob_store.exists(record.file_path):
        logger.error(f"File {file_id} has metadata but no blob at {record.file_path}")
        return PlainTextResponse("File not found on server", status_code=404)

    etag = etag_for(record.id)
    cache_headers = {
        "Cache-Control": f"public, max-age={settings.CACHE_MAX_AGE}",
        "ETag": etag,
    }
    if etag_matches(request.headers.get("if-none-match"), etag):
        return Response(status_code=304, headers=cache_headers)

    try:
        stream = await blob_store.open_read_stream(record.file_path, settings.STREAM_CHUNK_SIZE)
    except NotFoundError:
        logger.error(f"Blob for file {file_id} vanished before streaming")
        return PlainTextResponse("File not found on server", status_code=404)
    except StreamError as e:
        logger.error(f"File serving error for {file_id}: {e}")
        return PlainTextResponse("Internal server error", status_code=500)

    headers = {
        **cache_headers,
        "Content-Type": record.mime_type or "application/octet-stream",
        "Content-Length": str(record.file_size),
    }
    # closes the handle even if the body iterator never starts
    return StreamingResponse(
        _pipe(stream, record.id),
        headers=headers,
        background=BackgroundTask(stream.aclose),
    )
