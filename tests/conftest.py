"""
Shared pytest fixtures for the Guptify test suite.

This module provides:
- an in-memory SQLite database per test
- an in-memory object store standing in for MinIO
- a controllable clock
- an HTTP client wired to the app through dependency overrides
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("CLEANUP_ENABLED", "false")

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import guptify.models  # noqa: F401
from guptify.core.database import Base, get_db
from guptify.core.minio_client import ObjectStoreError, get_object_store
from guptify.dependencies import get_clock
from guptify.main import app


class InMemoryObjectStore:
    """Test double for the MinIO-backed ObjectStore."""

    def __init__(self, bucket: str = "files", base_url: str = "https://storage.test"):
        self.bucket = bucket
        self.base_url = base_url
        self.objects: dict[str, dict] = {}
        self.fail_uploads = False
        self.fail_removals = False
        self.fail_signing = False
        self.removed: list[str] = []

    def put_raw(self, path: str, data: bytes, modified: datetime | None = None, content_type: str = "application/octet-stream"):
        self.objects[path] = {
            "data": data,
            "content_type": content_type,
            "modified": modified or datetime.now(timezone.utc),
        }

    def ensure_bucket(self) -> None:
        pass

    def ping(self) -> None:
        pass

    def exists(self, path: str) -> bool:
        return path in self.objects

    def upload(self, path: str, data: bytes, content_type: str) -> None:
        if self.fail_uploads:
            raise ObjectStoreError("connection refused")
        if path in self.objects:
            raise ObjectStoreError(f"The resource already exists: {path}")
        self.put_raw(path, data, content_type=content_type)

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{self.bucket}/{path}"

    def signed_url(self, path: str, expires_in: int) -> str:
        if self.fail_signing:
            raise ObjectStoreError("signing failed")
        return f"{self.base_url}/{self.bucket}/{path}?X-Amz-Expires={expires_in}&X-Amz-Signature=deadbeef"

    def remove(self, path: str) -> None:
        if self.fail_removals:
            raise ObjectStoreError("access denied")
        self.objects.pop(path, None)
        self.removed.append(path)

    def remove_many(self, paths: list[str]) -> list[str]:
        if self.fail_removals:
            return [f"{p}: access denied" for p in paths]
        for p in paths:
            self.objects.pop(p, None)
            self.removed.append(p)
        return []

    def list_objects(self, prefix: str):
        for path, obj in list(self.objects.items()):
            if path.startswith(prefix):
                yield path, obj["modified"]


class FakeClock:
    """Naive-UTC clock that moves forward one millisecond per reading."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime.utcnow()

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + timedelta(milliseconds=1)
        return current

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def client(session_factory, store, clock):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_object_store] = lambda: store
    app.dependency_overrides[get_clock] = lambda: clock

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def sign_up(client: AsyncClient, email: str, password: str = "s3cret-pass") -> dict:
    """Create an account and return its id plus ready-to-use auth headers."""
    resp = await client.post("/auth/signup", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    body = resp.json()
    return {
        "id": body["user"]["id"],
        "token": body["session"]["access_token"],
        "headers": {"Authorization": f"Bearer {body['session']['access_token']}"},
    }


@pytest_asyncio.fixture
async def alice(client) -> dict:
    return await sign_up(client, "alice@example.com")


@pytest_asyncio.fixture
async def bob(client) -> dict:
    return await sign_up(client, "bob@example.com")
