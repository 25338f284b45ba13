from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from guptify.core.database import get_db, rollback_and_reload
from guptify.core.errors import MetadataWriteError, NotFound, QueryError, ValidationError
from guptify.core.security import get_current_user
from guptify.models.folder import Folder
from guptify.models.user import User
from guptify.schemas.file import MessageResponse
from guptify.schemas.folder import (
    FolderCreate,
    FolderInfo,
    FolderListResponse,
    FolderResponse,
    FolderUpdate,
)

router = APIRouter(prefix="/folders", tags=["Folders"])


async def _owned_folder(db: AsyncSession, owner_id: str, folder_id: str, include_deleted: bool = False) -> Folder:
    stmt = select(Folder).where(Folder.id == folder_id, Folder.user_id == owner_id)
    if not include_deleted:
        stmt = stmt.where(Folder.is_deleted.is_(False))
    try:
        res = await db.execute(stmt)
    except SQLAlchemyError as e:
        raise QueryError(str(e))
    folder = res.scalars().first()
    if folder is None:
        raise NotFound("Folder not found")
    return folder


async def _ensure_not_descendant(db: AsyncSession, owner_id: str, folder_id: str, new_parent_id: str) -> None:
    """Reject moves that would make a folder its own ancestor."""
    current = new_parent_id
    seen = set()
    while current is not None and current not in seen:
        if current == folder_id:
            raise ValidationError("A folder cannot be moved into itself or one of its subfolders")
        seen.add(current)
        try:
            res = await db.execute(
                select(Folder.parent_id).where(Folder.id == current, Folder.user_id == owner_id)
            )
        except SQLAlchemyError as e:
            raise QueryError(str(e))
        current = res.scalar_one_or_none()


async def _commit(db: AsyncSession) -> None:
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await rollback_and_reload(db)
        raise MetadataWriteError(str(e))


@router.get("", response_model=FolderListResponse)
async def list_folders(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        res = await db.execute(
            select(Folder)
            .where(Folder.user_id == current_user.id, Folder.is_deleted.is_(False))
            .order_by(Folder.created_at.desc())
        )
    except SQLAlchemyError as e:
        raise QueryError(str(e))
    return FolderListResponse(folders=[FolderInfo.model_validate(f) for f in res.scalars().all()])


@router.post("", response_model=FolderResponse)
async def create_folder(
    body: FolderCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if body.parent_id:
        await _owned_folder(db, current_user.id, body.parent_id)

    folder = Folder(name=body.name, parent_id=body.parent_id or None, user_id=current_user.id)
    db.add(folder)
    await _commit(db)
    await db.refresh(folder)
    return FolderResponse(folder=FolderInfo.model_validate(folder))


@router.put("/{folder_id}", response_model=FolderResponse)
async def update_folder(
    folder_id: str,
    body: FolderUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    folder = await _owned_folder(db, current_user.id, folder_id, include_deleted=True)

    if body.name is not None:
        folder.name = body.name
    if "parent_id" in body.model_fields_set:
        if body.parent_id:
            await _owned_folder(db, current_user.id, body.parent_id)
            await _ensure_not_descendant(db, current_user.id, folder.id, body.parent_id)
        folder.parent_id = body.parent_id or None

    await _commit(db)
    return FolderResponse(folder=FolderInfo.model_validate(folder))


@router.delete("/{folder_id}", response_model=MessageResponse)
async def delete_folder(
    folder_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        result = await db.execute(
            update(Folder)
            .where(Folder.id == folder_id, Folder.user_id == current_user.id)
            .values(is_deleted=True)
            .execution_options(synchronize_session=False)
        )
    except SQLAlchemyError as e:
        await rollback_and_reload(db)
        raise MetadataWriteError(str(e))
    await _commit(db)
    if result.rowcount == 0:
        raise NotFound("Folder not found")
    return MessageResponse(message="Folder moved to trash")
