from sqlalchemy.exc import InvalidRequestError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from .config import settings

DATABASE_URL = settings.DATABASE_URL

_engine_kwargs = {"echo": settings.DATABASE_ECHO}
if DATABASE_URL.startswith("sqlite"):
    _engine_kwargs["connect_args"] = {"check_same_thread": False}
    _engine_kwargs["poolclass"] = NullPool

engine = create_async_engine(DATABASE_URL, **_engine_kwargs)

SessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False
)

Base = declarative_base()

async def get_db():
    async with SessionLocal() as session:
        yield session


async def rollback_and_reload(session: AsyncSession) -> None:
    """Roll back, then reload every instance the session still holds.

    A rollback expires loaded instances and lazy loads cannot run outside the
    async context, so objects such as ``current_user`` must be refreshed here.
    """
    held = list(session.identity_map.values())
    await session.rollback()
    for obj in held:
        if obj not in session:
            continue
        try:
            await session.refresh(obj)
        except InvalidRequestError:
            session.expunge(obj)
