from __future__ import annotations

import math

from fastapi import APIRouter, Depends, Form, Query, UploadFile
from fastapi import File as FastAPIFile

from guptify.core.config import settings
from guptify.core.errors import UploadRejected
from guptify.core.security import get_current_user
from guptify.dependencies import get_file_manager, get_share_manager
from guptify.models.user import User
from guptify.schemas.file import (
    EmptyTrashResponse,
    FileInfo,
    FileListResponse,
    FileMetadataCreate,
    FileResponse,
    FileSearchResponse,
    MessageResponse,
    Pagination,
    PreviewResponse,
    SharedFileResponse,
    ShareInfo,
    ShareRequest,
    ShareResponse,
    TrashResponse,
)
from guptify.services.file_service import FileLifecycleManager, SearchFilters
from guptify.services.share_service import ShareManager

router = APIRouter(prefix="/files", tags=["Files"])


@router.post("/upload", response_model=FileResponse)
async def upload_file(
    file: UploadFile | None = FastAPIFile(None),
    folderId: str | None = Form(None),
    manager: FileLifecycleManager = Depends(get_file_manager),
    current_user: User = Depends(get_current_user),
):
    if file is None:
        raise UploadRejected("No file provided")
    if file.size is not None and file.size > settings.MAX_FILE_SIZE:
        raise UploadRejected("File exceeds the maximum allowed size")

    content = await file.read()
    f = await manager.upload(
        current_user.id,
        content,
        file.filename or "file.bin",
        file.content_type,
        folderId,
    )
    return FileResponse(file=FileInfo.model_validate(f))


@router.get("", response_model=FileListResponse)
async def list_files(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    folder_id: str | None = Query(None, description="Folder id, or 'root' for files outside any folder"),
    manager: FileLifecycleManager = Depends(get_file_manager),
    current_user: User = Depends(get_current_user),
):
    rows, total = await manager.list_files(current_user.id, page, limit, folder_id)
    return FileListResponse(
        files=[FileInfo.model_validate(r) for r in rows],
        pagination=Pagination(page=page, limit=limit, total=total, totalPages=math.ceil(total / limit)),
    )


@router.post("", response_model=FileResponse)
async def create_file_metadata(
    body: FileMetadataCreate,
    manager: FileLifecycleManager = Depends(get_file_manager),
    current_user: User = Depends(get_current_user),
):
    f = await manager.register_metadata(
        current_user.id, body.name, body.size, body.type, body.path, body.folder_id
    )
    return FileResponse(file=FileInfo.model_validate(f))


@router.get("/search", response_model=FileSearchResponse)
async def search_files(
    query: str | None = Query(None, description="Case-insensitive substring of the file name"),
    type: str | None = Query(None, description="image, pdf, document, video or audio"),
    sizeMin: float | None = Query(None, ge=0, description="Minimum size in MB"),
    sizeMax: float | None = Query(None, ge=0, description="Maximum size in MB"),
    dateFrom: str | None = Query(None, description="created_at >= (ISO date or datetime)"),
    dateTo: str | None = Query(None, description="created_at <= (ISO date or datetime)"),
    manager: FileLifecycleManager = Depends(get_file_manager),
    current_user: User = Depends(get_current_user),
):
    filters = SearchFilters(type=type, size_min=sizeMin, size_max=sizeMax, date_from=dateFrom, date_to=dateTo)
    rows = await manager.search(current_user.id, query, filters)
    return FileSearchResponse(files=[FileInfo.model_validate(r) for r in rows])


@router.get("/trash", response_model=FileSearchResponse)
async def list_trash(
    manager: FileLifecycleManager = Depends(get_file_manager),
    current_user: User = Depends(get_current_user),
):
    rows = await manager.list_trash(current_user.id)
    return FileSearchResponse(files=[FileInfo.model_validate(r) for r in rows])


@router.delete("/trash/empty", response_model=EmptyTrashResponse)
async def empty_trash(
    manager: FileLifecycleManager = Depends(get_file_manager),
    current_user: User = Depends(get_current_user),
):
    count = await manager.empty_trash(current_user.id)
    return EmptyTrashResponse(message="Trash emptied successfully", count=count)


@router.get("/shared/{token}", response_model=SharedFileResponse)
async def access_shared_file(token: str, shares: ShareManager = Depends(get_share_manager)):
    f, download_url = await shares.redeem_share(token)
    return SharedFileResponse(file=FileInfo.model_validate(f), downloadUrl=download_url)


@router.delete("/{file_id}", response_model=TrashResponse)
async def move_to_trash(
    file_id: str,
    manager: FileLifecycleManager = Depends(get_file_manager),
    current_user: User = Depends(get_current_user),
):
    f = await manager.trash(current_user.id, file_id)
    return TrashResponse(file=FileInfo.model_validate(f), message="File moved to trash")


@router.post("/{file_id}/restore", response_model=FileResponse)
async def restore_file(
    file_id: str,
    manager: FileLifecycleManager = Depends(get_file_manager),
    current_user: User = Depends(get_current_user),
):
    f = await manager.restore(current_user.id, file_id)
    return FileResponse(file=FileInfo.model_validate(f))


@router.delete("/{file_id}/permanent", response_model=MessageResponse)
async def delete_permanently(
    file_id: str,
    manager: FileLifecycleManager = Depends(get_file_manager),
    current_user: User = Depends(get_current_user),
):
    await manager.permanently_delete(current_user.id, file_id)
    return MessageResponse(message="File permanently deleted")


@router.post("/{file_id}/share", response_model=ShareResponse)
async def create_share(
    file_id: str,
    body: ShareRequest | None = None,
    shares: ShareManager = Depends(get_share_manager),
    current_user: User = Depends(get_current_user),
):
    expires_in = body.expiresIn if body else settings.SHARE_DEFAULT_EXPIRES_SECONDS
    signed_url, share = await shares.create_share(current_user.id, file_id, expires_in)
    return ShareResponse(signedUrl=signed_url, share=ShareInfo.model_validate(share))


@router.get("/{file_id}/preview", response_model=PreviewResponse)
async def preview_file(
    file_id: str,
    manager: FileLifecycleManager = Depends(get_file_manager),
    current_user: User = Depends(get_current_user),
):
    url, kind, name = await manager.preview(current_user.id, file_id)
    return PreviewResponse(previewUrl=url, fileType=kind, fileName=name)
