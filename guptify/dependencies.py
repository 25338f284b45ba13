"""
Dependency wiring for the routers.

Stores and the clock are resolved through FastAPI dependencies so tests can
swap them with ``app.dependency_overrides``.
"""
from datetime import datetime
from typing import Callable

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from guptify.core.database import get_db
from guptify.core.minio_client import ObjectStore, get_object_store
from guptify.services.file_service import FileLifecycleManager
from guptify.services.share_service import ShareManager


def get_clock() -> Callable[[], datetime]:
    return datetime.utcnow


def get_file_manager(
    db: AsyncSession = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> FileLifecycleManager:
    return FileLifecycleManager(db, store, clock)


def get_share_manager(
    db: AsyncSession = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> ShareManager:
    return ShareManager(db, store, clock)
