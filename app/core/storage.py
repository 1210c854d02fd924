"""Blob storage adapter for videos, renditions and thumbnails.

Supports the local filesystem and S3/MinIO. Every object is addressed by
a slash-separated key such as ``videos/processed/720p/<video_id>.mp4``.
"""

import io
import logging
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


class StorageError(Exception):
    """Base exception for storage errors."""

    pass


class StorageNotFoundError(StorageError):
    """Raised when a key does not exist in the store."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Object not found in storage: {key}")


@dataclass
class StorageResult:
    """Result of a write operation."""
    success: bool
    key: str
    url: str = ""
    file_size: int = 0
    etag: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class StorageConfig:
    """Storage configuration."""
    backend: str  # local, s3, minio
    bucket: str = ""
    region: str = ""
    access_key: str = ""
    secret_key: str = ""
    endpoint_url: Optional[str] = None
    use_ssl: bool = True
    local_path: str = "./storage"


class StorageBackend(ABC):
    """Abstract base class for storage backends.

    Writes report failure through ``StorageResult.success``; reads of a
    missing key raise ``StorageNotFoundError``.
    """

    @abstractmethod
    def upload(self, file_path: str, key: str, content_type: str = "application/octet-stream") -> StorageResult:
        """Copy a local file into the store."""

    @abstractmethod
    def upload_fileobj(self, fileobj: BinaryIO, key: str, content_type: str = "application/octet-stream") -> StorageResult:
        """Write a readable binary stream into the store."""

    @abstractmethod
    def download(self, key: str, destination: str) -> bool:
        """Copy an object to a local path. Returns False if it is missing."""

    @abstractmethod
    def get_size(self, key: str) -> int:
        """Size in bytes of an object."""

    @abstractmethod
    def open_range(self, key: str, start: int, end: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        """Yield bytes ``start`` through ``end`` inclusive."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove an object. Returns False if nothing was removed."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Whether the key exists."""

    @abstractmethod
    def get_url(self, key: str, expires_in: int = 3600) -> str:
        """URL for an object (presigned for private buckets)."""

    def save_bytes(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> StorageResult:
        return self.upload_fileobj(io.BytesIO(data), key, content_type)

    def read_bytes(self, key: str) -> bytes:
        size = self.get_size(key)
        if size == 0:
            return b""
        return b"".join(self.open_range(key, 0, size - 1))


class LocalStorage(StorageBackend):
    """Local filesystem storage backend."""

    def __init__(self, config: StorageConfig):
        self.base_path = Path(config.local_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if self.base_path.resolve() not in path.parents:
            raise StorageError(f"Key escapes storage root: {key}")
        return path

    def upload(self, file_path: str, key: str, content_type: str = "application/octet-stream") -> StorageResult:
        try:
            dest_path = self._get_full_path(key)
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(file_path, dest_path)
            return StorageResult(
                success=True,
                key=key,
                url=self.get_url(key),
                file_size=dest_path.stat().st_size,
            )
        except (OSError, StorageError) as e:
            logger.error("Local upload failed", extra={"key": key, "error": str(e)})
            return StorageResult(success=False, key=key, error_message=str(e))

    def upload_fileobj(self, fileobj: BinaryIO, key: str, content_type: str = "application/octet-stream") -> StorageResult:
        try:
            dest_path = self._get_full_path(key)
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            with open(dest_path, "wb") as f:
                shutil.copyfileobj(fileobj, f)
            return StorageResult(
                success=True,
                key=key,
                url=self.get_url(key),
                file_size=dest_path.stat().st_size,
            )
        except (OSError, StorageError) as e:
            logger.error("Local upload failed", extra={"key": key, "error": str(e)})
            return StorageResult(success=False, key=key, error_message=str(e))

    def download(self, key: str, destination: str) -> bool:
        src_path = self._get_full_path(key)
        if not src_path.is_file():
            return False
        shutil.copyfile(src_path, destination)
        return True

    def get_size(self, key: str) -> int:
        path = self._get_full_path(key)
        if not path.is_file():
            raise StorageNotFoundError(key)
        return path.stat().st_size

    def open_range(self, key: str, start: int, end: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        path = self._get_full_path(key)
        if not path.is_file():
            raise StorageNotFoundError(key)
        return self._iter_file(path, start, end, chunk_size)

    @staticmethod
    def _iter_file(path: Path, start: int, end: int, chunk_size: int) -> Iterator[bytes]:
        remaining = end - start + 1
        with open(path, "rb") as f:
            f.seek(start)
            while remaining > 0:
                chunk = f.read(min(chunk_size, remaining))
                if not chunk:
                    break
                remaining -= len(chunk)
                yield chunk

    def delete(self, key: str) -> bool:
        path = self._get_full_path(key)
        if path.is_file():
            path.unlink()
            return True
        return False

    def exists(self, key: str) -> bool:
        return self._get_full_path(key).is_file()

    def get_url(self, key: str, expires_in: int = 3600) -> str:
        return f"file://{self._get_full_path(key)}"


class S3Storage(StorageBackend):
    """S3/MinIO compatible storage backend."""

    def __init__(self, config: StorageConfig):
        self.config = config
        self._client = None

    def _get_client(self):
        if self._client is None:
            client_kwargs = {
                "service_name": "s3",
                "region_name": self.config.region or "us-east-1",
                "aws_access_key_id": self.config.access_key or None,
                "aws_secret_access_key": self.config.secret_key or None,
            }

            # MinIO and other S3-compatible endpoints need path-style addressing
            if self.config.endpoint_url:
                client_kwargs["endpoint_url"] = self.config.endpoint_url
                client_kwargs["config"] = BotoConfig(
                    signature_version="s3v4",
                    s3={"addressing_style": "path"},
                )
                if not self.config.use_ssl:
                    client_kwargs["use_ssl"] = False

            self._client = boto3.client(**client_kwargs)
        return self._client

    @staticmethod
    def _is_missing(error: ClientError) -> bool:
        code = error.response.get("Error", {}).get("Code", "")
        return code in ("404", "NoSuchKey", "NotFound")

    def upload(self, file_path: str, key: str, content_type: str = "application/octet-stream") -> StorageResult:
        try:
            with open(file_path, "rb") as f:
                return self.upload_fileobj(f, key, content_type)
        except OSError as e:
            return StorageResult(success=False, key=key, error_message=str(e))

    def upload_fileobj(self, fileobj: BinaryIO, key: str, content_type: str = "application/octet-stream") -> StorageResult:
        try:
            fileobj.seek(0, 2)
            file_size = fileobj.tell()
            fileobj.seek(0)

            response = self._get_client().put_object(
                Bucket=self.config.bucket,
                Key=key,
                Body=fileobj,
                ContentType=content_type,
            )
            return StorageResult(
                success=True,
                key=key,
                url=self.get_url(key),
                file_size=file_size,
                etag=response.get("ETag", "").strip('"'),
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("S3 upload failed", extra={"key": key, "error": str(e)})
            return StorageResult(success=False, key=key, error_message=str(e))

    def download(self, key: str, destination: str) -> bool:
        try:
            self._get_client().download_file(self.config.bucket, key, destination)
            return True
        except ClientError as e:
            if self._is_missing(e):
                return False
            raise

    def get_size(self, key: str) -> int:
        try:
            head = self._get_client().head_object(Bucket=self.config.bucket, Key=key)
        except ClientError as e:
            if self._is_missing(e):
                raise StorageNotFoundError(key) from e
            raise
        return int(head["ContentLength"])

    def open_range(self, key: str, start: int, end: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        try:
            response = self._get_client().get_object(
                Bucket=self.config.bucket,
                Key=key,
                Range=f"bytes={start}-{end}",
            )
        except ClientError as e:
            if self._is_missing(e):
                raise StorageNotFoundError(key) from e
            raise
        return response["Body"].iter_chunks(chunk_size=chunk_size)

    def delete(self, key: str) -> bool:
        try:
            self._get_client().delete_object(Bucket=self.config.bucket, Key=key)
            return True
        except ClientError as e:
            logger.warning("S3 delete failed", extra={"key": key, "error": str(e)})
            return False

    def exists(self, key: str) -> bool:
        try:
            self._get_client().head_object(Bucket=self.config.bucket, Key=key)
            return True
        except ClientError as e:
            if self._is_missing(e):
                return False
            raise

    def get_url(self, key: str, expires_in: int = 3600) -> str:
        return self._get_client().generate_presigned_url(
            "get_object",
            Params={"Bucket": self.config.bucket, "Key": key},
            ExpiresIn=expires_in,
        )


class Storage:
    """Storage facade that picks a backend from configuration."""

    _instance: Optional["Storage"] = None

    def __init__(self, config: Optional[StorageConfig] = None):
        if config is None:
            config = StorageConfig(
                backend=settings.STORAGE_BACKEND,
                bucket=settings.STORAGE_BUCKET,
                region=settings.STORAGE_REGION,
                access_key=settings.STORAGE_ACCESS_KEY,
                secret_key=settings.STORAGE_SECRET_KEY,
                endpoint_url=settings.STORAGE_ENDPOINT_URL,
                use_ssl=settings.STORAGE_USE_SSL,
                local_path=settings.LOCAL_STORAGE_PATH,
            )
        self.config = config
        self._backend = self._create_backend(config)

    @staticmethod
    def _create_backend(config: StorageConfig) -> StorageBackend:
        backend_type = config.backend.lower()
        if backend_type == "local":
            return LocalStorage(config)
        elif backend_type in ("s3", "minio", "aws"):
            return S3Storage(config)
        raise ValueError(f"Unsupported storage backend: {backend_type}")

    @classmethod
    def get_instance(cls) -> "Storage":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def upload(self, file_path: str, key: str, content_type: str = "application/octet-stream") -> StorageResult:
        return self._backend.upload(file_path, key, content_type)

    def upload_fileobj(self, fileobj: BinaryIO, key: str, content_type: str = "application/octet-stream") -> StorageResult:
        return self._backend.upload_fileobj(fileobj, key, content_type)

    def save_bytes(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> StorageResult:
        return self._backend.save_bytes(key, data, content_type)

    def download(self, key: str, destination: str) -> bool:
        return self._backend.download(key, destination)

    def read_bytes(self, key: str) -> bytes:
        return self._backend.read_bytes(key)

    def get_size(self, key: str) -> int:
        return self._backend.get_size(key)

    def open_range(self, key: str, start: int, end: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        return self._backend.open_range(key, start, end, chunk_size)

    def delete(self, key: str) -> bool:
        return self._backend.delete(key)

    def exists(self, key: str) -> bool:
        return self._backend.exists(key)

    def get_url(self, key: str, expires_in: int = 3600) -> str:
        return self._backend.get_url(key, expires_in)


def get_storage() -> Storage:
    """Process-wide storage instance, also used as a FastAPI dependency."""
    return Storage.get_instance()
