import asyncio
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select
from starlette.concurrency import run_in_threadpool

from guptify.core.config import settings
from guptify.core.database import SessionLocal
from guptify.core.minio_client import ObjectStore, ObjectStoreError, get_object_store
from guptify.models.file import File
from guptify.models.file_share import FileShare
from guptify.models.revoked_token import RevokedToken
from guptify.monitoring.setup import report_cleanup

logger = logging.getLogger(__name__)

CLEANED_ORPHANS = 0
PURGED_SHARES = 0
FAILED_OBJECT_DELETES = 0


async def _retry_remove(store: ObjectStore, path: str) -> bool:
    """Retry wrapper for object deletion."""
    attempts = settings.CLEANUP_RETRY_ATTEMPTS
    for attempt in range(1, attempts + 1):
        try:
            await run_in_threadpool(store.remove, path)
            return True
        except ObjectStoreError as e:
            logger.warning(f"Object delete failed (attempt {attempt}/{attempts}) "
                           f"object={path} err={e}")
            if attempt < attempts:
                await asyncio.sleep(settings.CLEANUP_RETRY_BACKOFF_SECS * attempt)
    return False


def _as_naive_utc(value) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


async def remove_orphaned_objects(db, store: ObjectStore, now: datetime) -> tuple[int, int]:
    """Delete blobs under the upload prefix that no file row references.

    Objects younger than ``ORPHAN_GRACE_SECONDS`` are left alone so an upload
    whose row is still being inserted is never touched.
    """
    cutoff = now - timedelta(seconds=settings.ORPHAN_GRACE_SECONDS)
    objects = await run_in_threadpool(lambda: list(store.list_objects(f"{settings.UPLOAD_PREFIX}/")))
    candidates = [path for path, modified in objects if (_as_naive_utc(modified) or now) < cutoff]
    if not candidates:
        return 0, 0

    res = await db.execute(select(File.path).where(File.path.in_(candidates)))
    known = set(res.scalars().all())

    removed = failed = 0
    for path in candidates:
        if path in known:
            continue
        if await _retry_remove(store, path):
            removed += 1
            logger.info("Removed orphaned object %s", path)
        else:
            failed += 1
            logger.error("Failed to delete orphaned object after retries: %s", path)
    return removed, failed


async def purge_expired_rows(db, now: datetime) -> int:
    """Drop share rows long past expiry and revoked tokens that have expired."""
    share_cutoff = now - timedelta(seconds=settings.SHARE_RETENTION_SECONDS)
    res = await db.execute(delete(FileShare).where(FileShare.expires_at < share_cutoff))
    await db.execute(delete(RevokedToken).where(RevokedToken.expires_at < now))
    await db.commit()
    return res.rowcount or 0


async def run_cleanup_once(store: ObjectStore | None = None, session_factory=SessionLocal) -> tuple[int, int, int]:
    store = store or get_object_store()
    now = datetime.utcnow()
    async with session_factory() as db:
        removed, failed = await remove_orphaned_objects(db, store, now)
        purged = await purge_expired_rows(db, now)
    return removed, purged, failed


async def cleanup_loop():
    global CLEANED_ORPHANS, PURGED_SHARES, FAILED_OBJECT_DELETES
    logger.info("Cleanup task started: interval=%s grace=%s", settings.CLEANUP_INTERVAL_SECONDS,
                settings.ORPHAN_GRACE_SECONDS)

    while True:
        started = datetime.utcnow()
        try:
            removed, purged, failed = await run_cleanup_once()

            CLEANED_ORPHANS += removed
            PURGED_SHARES += purged
            FAILED_OBJECT_DELETES += failed

            duration = (datetime.utcnow() - started).total_seconds()
            report_cleanup(removed, purged, failed, duration)
            logger.info("cleanup_summary orphans_removed=%s shares_purged=%s failed_deletes=%s duration=%.3fs "
                        "total_orphans=%s total_shares=%s",
                        removed, purged, failed, duration, CLEANED_ORPHANS, PURGED_SHARES)

            await asyncio.sleep(settings.CLEANUP_INTERVAL_SECONDS)

        except asyncio.CancelledError:
            logger.info("Cleanup task cancelled by shutdown")
            raise
        except Exception as e:
            logger.exception("Cleanup loop error: %s", e)
            await asyncio.sleep(min(60, settings.CLEANUP_INTERVAL_SECONDS))


async def start_cleanup_task():
    return await cleanup_loop()
