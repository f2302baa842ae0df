"""Object store upload and presigned URL issuing for media assets."""

import logging
import secrets
from typing import Optional

from tubely.core.exceptions import StorageError
from tubely.core.storage import Storage, get_storage
from tubely.modules.media.models import AspectClass, StorageObject, media_type_to_ext

logger = logging.getLogger(__name__)

KEY_RANDOM_BYTES = 32
THUMBNAIL_PREFIX = "thumbnails"


class UploadError(StorageError):
    """Object store rejected or failed the write."""
    pass


def random_key_segment() -> str:
    """256 bits of randomness, base64url encoded."""
    return secrets.token_urlsafe(KEY_RANDOM_BYTES)


def generate_video_key(aspect: AspectClass, media_type: str) -> str:
    """Key layout for videos: ``{aspect}/{random}.{ext}``."""
    return f"{aspect.value}/{random_key_segment()}.{media_type_to_ext(media_type)}"


def generate_thumbnail_key(media_type: str) -> str:
    return f"{THUMBNAIL_PREFIX}/{random_key_segment()}.{media_type_to_ext(media_type)}"


class ObjectStoreUploader:
    """Pushes a finished local file to the object store.

    One attempt per call; retry policy belongs to the caller.
    """

    def __init__(self, storage: Optional[Storage] = None):
        self.storage = storage or get_storage()

    def upload(self, local_path: str, key: str, content_type: str) -> StorageObject:
        result = self.storage.upload(local_path, key, content_type)
        if not result.success:
            raise UploadError(f"Upload of {key} failed: {result.error_message}")

        logger.info(
            "Uploaded object",
            extra={"key": key, "content_type": content_type, "size_bytes": result.file_size},
        )
        return StorageObject(key=key, content_type=content_type, size_bytes=result.file_size)

    def discard(self, key: str) -> None:
        """Best-effort removal of an object no record references."""
        if not self.storage.delete(key):
            logger.warning("Orphaned object left in storage", extra={"key": key})


class PresignedURLIssuer:
    """Issues time-limited read URLs for stored objects.

    URLs are computed on every call and never cached, so the validity window
    starts at read time.
    """

    def __init__(self, storage: Optional[Storage] = None, default_ttl_seconds: int = 300):
        self.storage = storage or get_storage()
        self.default_ttl_seconds = default_ttl_seconds

    def issue_presigned_url(self, key: str, ttl_seconds: Optional[int] = None) -> str:
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds
        if ttl <= 0:
            raise ValueError("ttl_seconds must be positive")
        return self.storage.get_url(key, expires_in=ttl)
