from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from guptify.core.config import settings


class FileInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    name: str
    size: int
    type: str
    path: str
    folder_id: str | None = None
    public_url: str | None = None
    is_deleted: bool
    created_at: datetime
    updated_at: datetime | None = None


class FileResponse(BaseModel):
    file: FileInfo


class TrashResponse(BaseModel):
    file: FileInfo
    message: str


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


class FileListResponse(BaseModel):
    files: list[FileInfo]
    pagination: Pagination


class FileSearchResponse(BaseModel):
    files: list[FileInfo]


class FileMetadataCreate(BaseModel):
    name: str = Field(min_length=1)
    size: int = Field(ge=0)
    type: str = "application/octet-stream"
    path: str = Field(min_length=1)
    folder_id: str | None = None


class ShareRequest(BaseModel):
    expiresIn: int = settings.SHARE_DEFAULT_EXPIRES_SECONDS


class ShareInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    file_id: str
    created_by: str
    token: str
    created_at: datetime | None = None
    expires_at: datetime


class ShareResponse(BaseModel):
    signedUrl: str
    share: ShareInfo


class SharedFileResponse(BaseModel):
    file: FileInfo
    downloadUrl: str


class PreviewResponse(BaseModel):
    previewUrl: str
    fileType: str
    fileName: str


class EmptyTrashResponse(BaseModel):
    message: str
    count: int


class MessageResponse(BaseModel):
    message: str
