"""File request/response schemas."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from earlbox.schemas.base import ORMModel, RequestModel


class UploadFileRequest(RequestModel):
    filename: Optional[str] = None  # accepted for client compatibility; the server assigns its own
    original_name: str
    mime_type: str
    file_size: int  # declared by the client; bounded against MAX_UPLOAD_BYTES by the coordinator
    file_data: str  # base64


class UploadFileResponse(BaseModel):
    id: str
    filename: str
    download_url: str
    success: bool
    error: Optional[str] = None


class FileStatsResponse(BaseModel):
    total_files: int = Field(ge=0)
    total_size: int = Field(ge=0)


class FileRecordResponse(ORMModel):
    id: str
    filename: str
    original_name: str
    mime_type: str
    file_size: int
    file_path: str
    created_at: datetime


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
