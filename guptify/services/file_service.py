"""File lifecycle: upload, listing, search, trash, restore and permanent deletion.

Every operation touches two stores, the relational metadata (``files`` table)
and the object store holding the blobs. There is no transaction spanning both:

* an upload writes the blob first and the row second, so a failed insert
  leaves an orphaned blob behind (removed later by ``guptify.tasks.cleanup``);
* deletions remove blobs first and always go on to remove rows, logging blob
  failures instead of raising them.
"""
import logging
import os
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from guptify.core.config import settings
from guptify.core.database import rollback_and_reload
from guptify.core.errors import (
    MetadataWriteError,
    NotFound,
    QueryError,
    StorageReadError,
    StorageWriteError,
    UploadRejected,
    ValidationError,
)
from guptify.core.minio_client import ObjectStore, ObjectStoreError
from guptify.models.file import File
from guptify.models.file_share import FileShare
from guptify.models.folder import Folder
from guptify.monitoring.setup import report_deletion, report_upload

logger = logging.getLogger("guptify")

BYTES_PER_MB = 1024 * 1024
DOCUMENT_MARKERS = ("word", "excel", "powerpoint", "officedocument")
TEXT_PREVIEW_TYPES = ("application/json", "application/javascript")


@dataclass
class SearchFilters:
    type: str | None = None
    size_min: float | None = None
    size_max: float | None = None
    date_from: str | None = None
    date_to: str | None = None


def build_storage_path(owner_id: str, original_name: str) -> str:
    ext = os.path.splitext(original_name or "")[1]
    return f"{settings.UPLOAD_PREFIX}/{owner_id}/{int(time.time() * 1000)}_{uuid.uuid4().hex}{ext}"


def preview_kind(content_type: str | None) -> str:
    ct = (content_type or "").lower()
    if ct.startswith("image/"):
        return "image"
    if ct == "application/pdf":
        return "pdf"
    if ct.startswith("text/") or ct in TEXT_PREVIEW_TYPES:
        return "text"
    return "other"


def _type_predicate(kind: str):
    if kind == "image":
        return File.type.like("image/%")
    if kind == "pdf":
        return File.type == "application/pdf"
    if kind == "document":
        return or_(*[File.type.ilike(f"%{marker}%") for marker in DOCUMENT_MARKERS])
    if kind == "video":
        return File.type.like("video/%")
    if kind == "audio":
        return File.type.like("audio/%")
    return None


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _parse_date(s: str, end: bool = False) -> datetime:
    s2 = s.strip()
    if s2.endswith(("Z", "z")):
        # fromisoformat only accepts a "Z" suffix from Python 3.11 on.
        s2 = s2[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s2)
    except ValueError:
        raise ValidationError(f"Invalid date: {s}")
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    if end and len(s2) == 10:
        return dt.replace(hour=23, minute=59, second=59, microsecond=999999)
    return dt


class FileLifecycleManager:
    def __init__(self, db: AsyncSession, store: ObjectStore, clock: Callable[[], datetime] = datetime.utcnow):
        self.db = db
        self.store = store
        self.clock = clock

    async def _get_owned(self, owner_id: str, file_id: str) -> File | None:
        try:
            res = await self.db.execute(
                select(File)
                .where(File.id == file_id, File.user_id == owner_id)
                .execution_options(populate_existing=True)
            )
        except SQLAlchemyError as e:
            raise QueryError(str(e))
        return res.scalars().first()

    async def _require_owned(self, owner_id: str, file_id: str) -> File:
        file = await self._get_owned(owner_id, file_id)
        if file is None:
            raise NotFound("File not found")
        return file

    async def _commit(self, error_cls=MetadataWriteError) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await rollback_and_reload(self.db)
            raise error_cls(str(e))

    async def _require_folder(self, owner_id: str, folder_id: str | None) -> None:
        if not folder_id:
            return
        try:
            res = await self.db.execute(
                select(Folder.id).where(
                    Folder.id == folder_id, Folder.user_id == owner_id, Folder.is_deleted.is_(False)
                )
            )
        except SQLAlchemyError as e:
            raise QueryError(str(e))
        if res.scalar_one_or_none() is None:
            raise NotFound("Folder not found")

    async def upload(
        self,
        owner_id: str,
        content: bytes | None,
        original_name: str,
        mime_type: str | None,
        folder_id: str | None = None,
    ) -> File:
        if content is None:
            raise UploadRejected("No file provided")
        if len(content) > settings.MAX_FILE_SIZE:
            raise UploadRejected("File exceeds the maximum allowed size")
        await self._require_folder(owner_id, folder_id)

        content_type = mime_type or "application/octet-stream"
        path = build_storage_path(owner_id, original_name)

        try:
            await run_in_threadpool(self.store.upload, path, content, content_type)
        except ObjectStoreError as e:
            logger.error("Blob upload failed for %s: %s", path, e)
            raise StorageWriteError(str(e))

        now = self.clock()
        file = File(
            id=str(uuid.uuid4()),
            user_id=owner_id,
            name=original_name or os.path.basename(path),
            size=len(content),
            type=content_type,
            path=path,
            folder_id=folder_id or None,
            public_url=self.store.public_url(path),
            is_deleted=False,
            created_at=now,
            updated_at=now,
        )
        self.db.add(file)
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await rollback_and_reload(self.db)
            logger.error("Metadata insert failed, blob %s is now orphaned: %s", path, e)
            raise MetadataWriteError(str(e))

        report_upload(file.size)
        logger.info("Uploaded file %s (%s bytes) for user %s", file.id, file.size, owner_id)
        return file

    async def register_metadata(
        self,
        owner_id: str,
        name: str,
        size: int,
        content_type: str,
        path: str,
        folder_id: str | None = None,
    ) -> File:
        """Record a blob that was written to the store out of band."""
        prefix = f"{settings.UPLOAD_PREFIX}/{owner_id}/"
        if not path.startswith(prefix) or ".." in path.split("/"):
            raise ValidationError(f"Path must be inside {prefix}")
        await self._require_folder(owner_id, folder_id)
        try:
            exists = await run_in_threadpool(self.store.exists, path)
        except ObjectStoreError as e:
            raise StorageReadError(str(e))
        if not exists:
            raise ValidationError("Object not found in storage")

        now = self.clock()
        file = File(
            id=str(uuid.uuid4()),
            user_id=owner_id,
            name=name,
            size=size,
            type=content_type,
            path=path,
            folder_id=folder_id or None,
            public_url=self.store.public_url(path),
            is_deleted=False,
            created_at=now,
            updated_at=now,
        )
        self.db.add(file)
        try:
            await self.db.commit()
        except IntegrityError:
            await rollback_and_reload(self.db)
            raise MetadataWriteError("A file is already registered at this path")
        except SQLAlchemyError as e:
            await rollback_and_reload(self.db)
            raise MetadataWriteError(str(e))
        return file

    async def list_files(
        self,
        owner_id: str,
        page: int = 1,
        page_size: int = settings.DEFAULT_PAGE_SIZE,
        folder_filter: str | None = None,
    ) -> tuple[list[File], int]:
        if page < 1 or page_size < 1:
            raise ValidationError("page and limit must be positive")

        conditions = [File.user_id == owner_id, File.is_deleted.is_(False)]
        if folder_filter:
            if folder_filter == "root":
                conditions.append(File.folder_id.is_(None))
            else:
                conditions.append(File.folder_id == folder_filter)
        where_clause = and_(*conditions)

        offset = (page - 1) * page_size
        try:
            total = (await self.db.execute(select(func.count()).select_from(File).where(where_clause))).scalar_one()
            rows = (
                await self.db.execute(
                    select(File)
                    .where(where_clause)
                    .order_by(File.created_at.desc())
                    .offset(offset)
                    .limit(page_size)
                )
            ).scalars().all()
        except SQLAlchemyError as e:
            raise QueryError(str(e))
        return list(rows), total

    async def search(self, owner_id: str, query: str | None, filters: SearchFilters | None = None) -> list[File]:
        if not query or not query.strip():
            raise ValidationError("Search query required")
        filters = filters or SearchFilters()

        conditions = [
            File.user_id == owner_id,
            File.is_deleted.is_(False),
            File.name.ilike(f"%{_escape_like(query)}%", escape="\\"),
        ]
        if filters.type:
            predicate = _type_predicate(filters.type)
            if predicate is not None:
                conditions.append(predicate)
        if filters.size_min is not None:
            conditions.append(File.size >= int(filters.size_min * BYTES_PER_MB))
        if filters.size_max is not None:
            conditions.append(File.size <= int(filters.size_max * BYTES_PER_MB))
        if filters.date_from:
            conditions.append(File.created_at >= _parse_date(filters.date_from))
        if filters.date_to:
            conditions.append(File.created_at <= _parse_date(filters.date_to, end=True))

        try:
            rows = (
                await self.db.execute(select(File).where(and_(*conditions)).order_by(File.created_at.desc()))
            ).scalars().all()
        except SQLAlchemyError as e:
            raise QueryError(str(e))
        return list(rows)

    async def list_trash(self, owner_id: str) -> list[File]:
        try:
            rows = (
                await self.db.execute(
                    select(File)
                    .where(File.user_id == owner_id, File.is_deleted.is_(True))
                    .order_by(File.updated_at.desc())
                )
            ).scalars().all()
        except SQLAlchemyError as e:
            raise QueryError(str(e))
        return list(rows)

    async def _set_deleted(self, owner_id: str, file_id: str, flag: bool) -> File:
        try:
            result = await self.db.execute(
                update(File)
                .where(File.id == file_id, File.user_id == owner_id)
                .values(is_deleted=flag, updated_at=self.clock())
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            await rollback_and_reload(self.db)
            raise MetadataWriteError(str(e))
        await self._commit()
        if result.rowcount == 0:
            raise NotFound("File not found")
        return await self._require_owned(owner_id, file_id)

    async def trash(self, owner_id: str, file_id: str) -> File:
        file = await self._set_deleted(owner_id, file_id, True)
        logger.info("File %s moved to trash by %s", file_id, owner_id)
        return file

    async def restore(self, owner_id: str, file_id: str) -> File:
        file = await self._set_deleted(owner_id, file_id, False)
        logger.info("File %s restored by %s", file_id, owner_id)
        return file

    async def permanently_delete(self, owner_id: str, file_id: str) -> None:
        file = await self._require_owned(owner_id, file_id)

        failed = 0
        try:
            await run_in_threadpool(self.store.remove, file.path)
        except ObjectStoreError as e:
            failed = 1
            logger.error("Error deleting from storage: %s (%s)", file.path, e)

        try:
            await self.db.execute(delete(FileShare).where(FileShare.file_id == file.id))
            await self.db.execute(delete(File).where(File.id == file.id, File.user_id == owner_id))
        except SQLAlchemyError as e:
            await rollback_and_reload(self.db)
            raise MetadataWriteError(str(e))
        await self._commit()

        report_deletion(1, failed)
        logger.info("File %s permanently deleted by %s", file_id, owner_id)

    async def empty_trash(self, owner_id: str) -> int:
        """Delete every trashed file of ``owner_id``; returns how many were listed."""
        files = await self.list_trash(owner_id)
        if not files:
            return 0

        ids = [f.id for f in files]
        paths = [f.path for f in files]
        failed = 0
        try:
            errors = await run_in_threadpool(self.store.remove_many, paths)
        except ObjectStoreError as e:
            errors = [str(e)]
            failed = len(paths)
        else:
            failed = len(errors)
        if errors:
            logger.error("Error deleting from storage while emptying trash for %s: %s", owner_id, "; ".join(errors))

        try:
            # Restored in the meantime: keep the row and its shares.
            still_trashed = select(File.id).where(
                File.user_id == owner_id, File.is_deleted.is_(True), File.id.in_(ids)
            )
            await self.db.execute(
                delete(FileShare)
                .where(FileShare.file_id.in_(still_trashed))
                .execution_options(synchronize_session=False)
            )
            await self.db.execute(
                delete(File).where(File.user_id == owner_id, File.is_deleted.is_(True), File.id.in_(ids))
            )
        except SQLAlchemyError as e:
            await rollback_and_reload(self.db)
            raise MetadataWriteError(str(e))
        await self._commit()

        report_deletion(len(files), failed)
        logger.info("Trash emptied for %s: %s files", owner_id, len(files))
        return len(files)

    async def preview(self, owner_id: str, file_id: str) -> tuple[str, str, str]:
        file = await self._require_owned(owner_id, file_id)
        try:
            url = await run_in_threadpool(self.store.signed_url, file.path, settings.PREVIEW_URL_EXPIRES_SECONDS)
        except ObjectStoreError as e:
            raise StorageReadError(str(e))
        return url, preview_kind(file.type), file.name
