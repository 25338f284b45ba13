import os


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Settings:
    PROJECT_NAME: str = "Guptify API"
    VERSION: str = "1.0.0"

    SECRET_KEY: str = os.getenv("SECRET_KEY", "your-secret-key")
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./guptify.db")
    DATABASE_ECHO: bool = _env_bool("DATABASE_ECHO", "false")

    MINIO_ENDPOINT: str = os.getenv("MINIO_ENDPOINT", "minio:9000")
    MINIO_ACCESS_KEY: str = os.getenv("MINIO_ACCESS_KEY", "minioadmin")
    MINIO_SECRET_KEY: str = os.getenv("MINIO_SECRET_KEY", "minioadmin")
    MINIO_BUCKET: str = os.getenv("MINIO_BUCKET", "files")
    MINIO_SECURE: bool = _env_bool("MINIO_SECURE", "false")
    # Base used for File.public_url; defaults to the MinIO endpoint itself.
    MINIO_PUBLIC_URL: str = os.getenv("MINIO_PUBLIC_URL", "")

    MAX_FILE_SIZE: int = int(os.getenv("MAX_FILE_SIZE", str(1024 * 1024 * 1024)))
    UPLOAD_PREFIX: str = "uploads"
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    PREVIEW_URL_EXPIRES_SECONDS: int = 60
    SHARE_DEFAULT_EXPIRES_SECONDS: int = 3600
    SHARE_DOWNLOAD_URL_EXPIRES_SECONDS: int = 60
    # S3 presigned URLs cannot outlive seven days.
    SHARE_MAX_EXPIRES_SECONDS: int = 7 * 24 * 3600

    CORS_ORIGINS: list = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    CLEANUP_ENABLED: bool = _env_bool("CLEANUP_ENABLED", "true")
    CLEANUP_INTERVAL_SECONDS: int = int(os.getenv("CLEANUP_INTERVAL_SECONDS", "300"))
    CLEANUP_RETRY_ATTEMPTS: int = int(os.getenv("CLEANUP_RETRY_ATTEMPTS", "3"))
    CLEANUP_RETRY_BACKOFF_SECS: float = float(os.getenv("CLEANUP_RETRY_BACKOFF_SECS", "0.5"))
    ORPHAN_GRACE_SECONDS: int = int(os.getenv("ORPHAN_GRACE_SECONDS", "3600"))
    SHARE_RETENTION_SECONDS: int = int(os.getenv("SHARE_RETENTION_SECONDS", str(7 * 24 * 3600)))


settings = Settings()
