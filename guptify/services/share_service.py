import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from guptify.core.config import settings
from guptify.core.database import rollback_and_reload
from guptify.core.errors import (
    NotFound,
    QueryError,
    ShareCreationError,
    ShareInvalidOrExpired,
    StorageReadError,
    ValidationError,
)
from guptify.core.minio_client import ObjectStore, ObjectStoreError
from guptify.models.file import File
from guptify.models.file_share import FileShare
from guptify.monitoring.setup import report_share_created, report_share_redeemed

logger = logging.getLogger("guptify")

TOKEN_BYTES = 16


def generate_share_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


class ShareManager:
    """Issues and redeems time-bounded share tokens for single files.

    A token is looked up only by exact match and only while ``expires_at`` lies
    in the future. Unknown and expired tokens produce the same error so callers
    cannot probe which tokens once existed.
    """

    def __init__(self, db: AsyncSession, store: ObjectStore, clock: Callable[[], datetime] = datetime.utcnow):
        self.db = db
        self.store = store
        self.clock = clock

    async def create_share(
        self,
        owner_id: str,
        file_id: str,
        expires_in: int = settings.SHARE_DEFAULT_EXPIRES_SECONDS,
    ) -> tuple[str, FileShare]:
        if expires_in < 1 or expires_in > settings.SHARE_MAX_EXPIRES_SECONDS:
            raise ValidationError(f"expiresIn must be between 1 and {settings.SHARE_MAX_EXPIRES_SECONDS} seconds")

        try:
            res = await self.db.execute(select(File).where(File.id == file_id, File.user_id == owner_id))
        except SQLAlchemyError as e:
            raise QueryError(str(e))
        file = res.scalars().first()
        if file is None:
            raise NotFound("File not found")

        try:
            signed_url = await run_in_threadpool(self.store.signed_url, file.path, expires_in)
        except ObjectStoreError as e:
            raise ShareCreationError(str(e))

        now = self.clock()
        share = FileShare(
            file_id=file.id,
            created_by=owner_id,
            token=generate_share_token(),
            created_at=now,
            expires_at=now + timedelta(seconds=expires_in),
        )
        self.db.add(share)
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await rollback_and_reload(self.db)
            raise ShareCreationError(str(e))

        report_share_created()
        logger.info("Share %s created for file %s, expires %s", share.id, file.id, share.expires_at.isoformat())
        return signed_url, share

    async def redeem_share(self, token: str) -> tuple[File, str]:
        try:
            res = await self.db.execute(
                select(FileShare, File)
                .join(File, File.id == FileShare.file_id)
                .where(FileShare.token == token, FileShare.expires_at > self.clock())
            )
        except SQLAlchemyError as e:
            raise QueryError(str(e))
        row = res.first()
        if row is None:
            report_share_redeemed(False)
            raise ShareInvalidOrExpired()

        _, file = row
        try:
            download_url = await run_in_threadpool(
                self.store.signed_url, file.path, settings.SHARE_DOWNLOAD_URL_EXPIRES_SECONDS
            )
        except ObjectStoreError as e:
            raise StorageReadError(str(e))

        report_share_redeemed(True)
        return file, download_url
