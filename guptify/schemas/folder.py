from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class FolderInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    name: str
    parent_id: str | None = None
    is_deleted: bool
    created_at: datetime


class FolderCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    parent_id: str | None = None


class FolderUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    parent_id: str | None = None


class FolderResponse(BaseModel):
    folder: FolderInfo


class FolderListResponse(BaseModel):
    folders: list[FolderInfo]
