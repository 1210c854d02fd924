"""Application configuration settings.

All configuration values are loaded from environment variables (.env file).
No sensitive values should be hardcoded here.
"""

from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    PROJECT_NAME: str = "Learning Platform API"
    VERSION: str = "0.1.0"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    APP_URL: str = "http://localhost:3000"

    # Database - REQUIRED
    DATABASE_URL: str

    # Redis - REQUIRED
    REDIS_URL: str

    # Security - REQUIRED (no defaults for sensitive values)
    SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15

    # CORS
    CORS_ORIGINS: list[str] = []

    # Storage Configuration
    # STORAGE_BACKEND: local, s3, minio
    STORAGE_BACKEND: str = "local"

    # Local Storage (when STORAGE_BACKEND=local)
    LOCAL_STORAGE_PATH: str = "./storage"

    # S3/MinIO/Compatible Storage (when STORAGE_BACKEND=s3 or minio)
    STORAGE_BUCKET: str = ""
    STORAGE_REGION: str = ""
    STORAGE_ACCESS_KEY: str = ""
    STORAGE_SECRET_KEY: str = ""
    STORAGE_ENDPOINT_URL: Optional[str] = None  # Required for MinIO
    STORAGE_USE_SSL: bool = True

    # Celery (falls back to REDIS_URL when empty)
    CELERY_BROKER_URL: str = ""
    CELERY_RESULT_BACKEND: str = ""

    # Worker pools
    VIDEO_WORKER_CONCURRENCY: int = 3
    CERTIFICATE_WORKER_CONCURRENCY: int = 3

    # Video processing
    VIDEO_MAX_UPLOAD_SIZE: int = 2 * 1024 * 1024 * 1024  # 2 GB
    FFMPEG_PATH: str = "ffmpeg"
    FFPROBE_PATH: str = "ffprobe"
    VIDEO_THUMBNAIL_TIMESTAMP_SECONDS: float = 1.0
    # A job is killed after JOB_TIME_LIMIT_SECONDS; the stale threshold must be longer
    JOB_TIME_LIMIT_SECONDS: int = 3600
    VIDEO_STALE_PROCESSING_MINUTES: int = 90
    VIDEO_MAX_PROCESSING_ATTEMPTS: int = 3

    # Progress feed and streaming
    VIDEO_PROGRESS_POLL_INTERVAL_SECONDS: float = 2.0
    STREAM_CHUNK_SIZE: int = 64 * 1024
    STREAM_SPEED_HEADROOM: float = 0.8

    # Email (for notifications)
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM_EMAIL: str = ""
    SMTP_TLS: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @model_validator(mode="after")
    def check_stale_threshold(self) -> "Settings":
        if self.VIDEO_STALE_PROCESSING_MINUTES * 60 <= self.JOB_TIME_LIMIT_SECONDS:
            raise ValueError(
                "VIDEO_STALE_PROCESSING_MINUTES must be longer than JOB_TIME_LIMIT_SECONDS"
            )
        return self

    @property
    def broker_url(self) -> str:
        return self.CELERY_BROKER_URL or self.REDIS_URL

    @property
    def result_backend(self) -> str:
        return self.CELERY_RESULT_BACKEND or self.REDIS_URL


settings = Settings()
