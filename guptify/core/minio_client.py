import io
import logging
from datetime import timedelta
from typing import Iterator
from urllib.parse import quote

from minio import Minio
from minio.deleteobjects import DeleteObject
from minio.error import MinioException, S3Error
from urllib3.exceptions import HTTPError

from .config import settings

logger = logging.getLogger("guptify")

_MISSING_CODES = {"NoSuchKey", "NoSuchObject", "ResourceNotFound"}


class ObjectStoreError(Exception):
    """Raised for any failure reported by, or on the way to, the object store."""


class ObjectStore:
    """Blob storage addressed by path inside a single bucket.

    Calls are blocking; async callers run them through the thread pool.
    """

    def __init__(self, client: Minio, bucket: str, public_base_url: str):
        self.client = client
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")

    def ensure_bucket(self) -> None:
        try:
            if not self.client.bucket_exists(self.bucket):
                self.client.make_bucket(self.bucket)
                logger.info(f"Bucket '{self.bucket}' created successfully")
            else:
                logger.info(f"Bucket '{self.bucket}' already exists")
        except (MinioException, HTTPError) as e:
            logger.error(f"MinIO error: {e}")
            raise RuntimeError(f"Failed to initialize MinIO bucket: {e}")

    def ping(self) -> None:
        try:
            self.client.bucket_exists(self.bucket)
        except (MinioException, HTTPError) as e:
            raise ObjectStoreError(str(e)) from e

    def exists(self, path: str) -> bool:
        try:
            self.client.stat_object(bucket_name=self.bucket, object_name=path)
            return True
        except S3Error as e:
            if e.code in _MISSING_CODES:
                return False
            raise ObjectStoreError(str(e)) from e
        except (MinioException, HTTPError) as e:
            raise ObjectStoreError(str(e)) from e

    def upload(self, path: str, data: bytes, content_type: str) -> None:
        """Write ``data`` at ``path``; refuses to overwrite an existing object."""
        if self.exists(path):
            raise ObjectStoreError(f"The resource already exists: {path}")
        try:
            self.client.put_object(
                bucket_name=self.bucket,
                object_name=path,
                data=io.BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except (MinioException, HTTPError) as e:
            raise ObjectStoreError(str(e)) from e

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}/{self.bucket}/{quote(path)}"

    def signed_url(self, path: str, expires_in: int) -> str:
        try:
            return self.client.presigned_get_object(
                bucket_name=self.bucket,
                object_name=path,
                expires=timedelta(seconds=expires_in),
            )
        except (MinioException, HTTPError, ValueError) as e:
            raise ObjectStoreError(str(e)) from e

    def remove(self, path: str) -> None:
        try:
            self.client.remove_object(bucket_name=self.bucket, object_name=path)
        except (MinioException, HTTPError) as e:
            raise ObjectStoreError(str(e)) from e

    def remove_many(self, paths: list[str]) -> list[str]:
        """Batch delete. Returns one message per object that could not be removed."""
        if not paths:
            return []
        try:
            errors = self.client.remove_objects(
                bucket_name=self.bucket,
                delete_object_list=[DeleteObject(p) for p in paths],
            )
            # remove_objects is lazy; nothing is deleted until iterated
            return [f"{err.name}: {err.message}" for err in errors]
        except (MinioException, HTTPError) as e:
            raise ObjectStoreError(str(e)) from e

    def list_objects(self, prefix: str) -> Iterator[tuple[str, object]]:
        """Yield ``(path, last_modified)`` for every object under ``prefix``."""
        try:
            for obj in self.client.list_objects(self.bucket, prefix=prefix, recursive=True):
                yield obj.object_name, obj.last_modified
        except (MinioException, HTTPError) as e:
            raise ObjectStoreError(str(e)) from e


minio_client = Minio(
    settings.MINIO_ENDPOINT,
    access_key=settings.MINIO_ACCESS_KEY,
    secret_key=settings.MINIO_SECRET_KEY,
    secure=settings.MINIO_SECURE
)

object_store = ObjectStore(
    minio_client,
    settings.MINIO_BUCKET,
    settings.MINIO_PUBLIC_URL
    or f"{'https' if settings.MINIO_SECURE else 'http'}://{settings.MINIO_ENDPOINT}",
)


def get_object_store() -> ObjectStore:
    return object_store


def initialize_minio_bucket():
    object_store.ensure_bucket()
