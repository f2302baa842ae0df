"""Universal storage module supporting multiple backends.

Supports: local filesystem, S3, MinIO, and other S3-compatible storage.
"""

import logging
import os
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from tubely.core.config import settings
from tubely.core.exceptions import StorageError

logger = logging.getLogger(__name__)

_MISSING_OBJECT_CODES = ("404", "NoSuchKey", "NotFound")


@dataclass
class StorageResult:
    """Result of a storage operation."""
    success: bool
    key: str
    url: str
    file_size: int = 0
    content_type: str = "application/octet-stream"
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
    local_path: str = "./assets"
    public_url: str = "http://localhost:8091"
    cdn_domain: Optional[str] = None
    cdn_enabled: bool = False


class StorageBackend(ABC):
    """Abstract base class for storage backends."""

    @abstractmethod
    def upload(
        self,
        file_path: str,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        """Upload a file to storage."""
        pass

    @abstractmethod
    def read(self, key: str) -> Optional[bytes]:
        """Read an object's bytes, None if it does not exist.

        Raises:
            StorageError: the backend could not be reached or read
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete a file from storage."""
        pass

    @abstractmethod
    def get_url(self, key: str, expires_in: int = 300) -> str:
        """Get URL for a file (presigned for private storage)."""
        pass


class LocalStorage(StorageBackend):
    """Local filesystem storage backend.

    Objects are served by the application under ``/assets``.
    """

    def __init__(self, config: StorageConfig):
        self.base_path = Path(config.local_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.public_url = config.public_url.rstrip("/")
        self.cdn_domain = config.cdn_domain
        self.cdn_enabled = config.cdn_enabled

    def _get_full_path(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if self.base_path.resolve() not in path.parents:
            raise ValueError(f"Key escapes storage root: {key}")
        return path

    def upload(
        self,
        file_path: str,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        """Upload a file to local storage."""
        try:
            dest_path = self._get_full_path(key)
            dest_path.parent.mkdir(parents=True, exist_ok=True)

            shutil.copyfile(file_path, dest_path)
            file_size = dest_path.stat().st_size

            return StorageResult(
                success=True,
                key=key,
                url=self.get_url(key),
                file_size=file_size,
                content_type=content_type,
            )
        except (OSError, ValueError) as e:
            return StorageResult(
                success=False,
                key=key,
                url="",
                content_type=content_type,
                error_message=str(e),
            )

    def read(self, key: str) -> Optional[bytes]:
        path = self._get_full_path(key)
        if not path.is_file():
            return None
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageError(f"Could not read {key}: {e}") from e

    def delete(self, key: str) -> bool:
        """Delete a file from local storage."""
        try:
            file_path = self._get_full_path(key)
            if file_path.exists():
                file_path.unlink()
                return True
            return False
        except (OSError, ValueError):
            logger.warning("Failed to delete local object", extra={"key": key}, exc_info=True)
            return False

    def get_url(self, key: str, expires_in: int = 300) -> str:
        """Get URL for a file. Local objects do not expire."""
        if self.cdn_enabled and self.cdn_domain:
            return f"https://{self.cdn_domain}/{key}"
        return f"{self.public_url}/assets/{key}"


class S3Storage(StorageBackend):
    """S3/MinIO compatible storage backend."""

    def __init__(self, config: StorageConfig, client=None):
        self.config = config
        self._client = client

    def _get_client(self):
        """Get or create S3 client."""
        if self._client is None:
            client_kwargs = {
                "service_name": "s3",
                "region_name": self.config.region or "us-east-1",
                "aws_access_key_id": self.config.access_key or None,
                "aws_secret_access_key": self.config.secret_key or None,
                "config": BotoConfig(signature_version="s3v4"),
            }

            # For MinIO or other S3-compatible storage
            if self.config.endpoint_url:
                client_kwargs["endpoint_url"] = self.config.endpoint_url
                client_kwargs["config"] = BotoConfig(
                    signature_version="s3v4",
                    s3={"addressing_style": "path"},
                )

            if not self.config.use_ssl and self.config.endpoint_url:
                # Allow non-SSL for local MinIO
                client_kwargs["use_ssl"] = False

            self._client = boto3.client(**client_kwargs)

        return self._client

    def upload(
        self,
        file_path: str,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        """Upload a file to S3/MinIO."""
        try:
            client = self._get_client()
            file_size = os.path.getsize(file_path)

            with open(file_path, "rb") as f:
                response = client.put_object(
                    Bucket=self.config.bucket,
                    Key=key,
                    Body=f,
                    ContentType=content_type,
                )

            etag = response.get("ETag", "").strip('"')

            return StorageResult(
                success=True,
                key=key,
                url=self.get_url(key),
                file_size=file_size,
                content_type=content_type,
                etag=etag,
            )
        except (BotoCoreError, ClientError, OSError) as e:
            return StorageResult(
                success=False,
                key=key,
                url="",
                content_type=content_type,
                error_message=str(e),
            )

    def read(self, key: str) -> Optional[bytes]:
        client = self._get_client()
        try:
            response = client.get_object(Bucket=self.config.bucket, Key=key)
            return response["Body"].read()
        except ClientError as e:
            code = (e.response or {}).get("Error", {}).get("Code", "")
            if code in _MISSING_OBJECT_CODES:
                return None
            raise StorageError(f"Could not read {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Could not read {key}: {e}") from e

    def delete(self, key: str) -> bool:
        """Delete a file from S3/MinIO."""
        try:
            client = self._get_client()
            client.delete_object(Bucket=self.config.bucket, Key=key)
            return True
        except (BotoCoreError, ClientError):
            logger.warning("Failed to delete S3 object", extra={"key": key}, exc_info=True)
            return False

    def get_url(self, key: str, expires_in: int = 300) -> str:
        """Get URL for a file (presigned URL)."""
        if self.config.cdn_enabled and self.config.cdn_domain:
            return f"https://{self.config.cdn_domain}/{key}"

        client = self._get_client()
        return client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.config.bucket, "Key": key},
            ExpiresIn=expires_in,
        )


class Storage:
    """Universal storage interface.

    Automatically selects the appropriate backend based on configuration.
    """

    _instance: Optional["Storage"] = None

    def __init__(
        self,
        config: Optional[StorageConfig] = None,
        backend: Optional[StorageBackend] = None,
    ):
        """Initialize storage with configuration.

        Args:
            config: Storage configuration (uses settings if not provided)
            backend: Explicit backend, bypasses backend selection
        """
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
                public_url=settings.PUBLIC_BASE_URL,
                cdn_domain=settings.CDN_DOMAIN,
                cdn_enabled=settings.CDN_ENABLED,
            )

        self.config = config
        self._backend = backend or self._create_backend(config)

    def _create_backend(self, config: StorageConfig) -> StorageBackend:
        backend_type = config.backend.lower()

        if backend_type == "local":
            return LocalStorage(config)
        elif backend_type in ("s3", "minio", "aws"):
            return S3Storage(config)
        else:
            raise ValueError(f"Unsupported storage backend: {backend_type}")

    @property
    def is_local(self) -> bool:
        return isinstance(self._backend, LocalStorage)

    @classmethod
    def get_instance(cls) -> "Storage":
        """Get singleton storage instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def upload(
        self,
        file_path: str,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        return self._backend.upload(file_path, key, content_type)

    def read(self, key: str) -> Optional[bytes]:
        return self._backend.read(key)

    def delete(self, key: str) -> bool:
        return self._backend.delete(key)

    def get_url(self, key: str, expires_in: int = 300) -> str:
        return self._backend.get_url(key, expires_in)


def get_storage() -> Storage:
    """Get the default storage instance."""
    return Storage.get_instance()
