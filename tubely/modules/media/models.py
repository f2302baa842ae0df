"""Value types for the media ingestion pipeline."""

from dataclasses import dataclass
from enum import Enum


class AspectClass(str, Enum):
    """Coarse aspect ratio bucket of a video."""
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"
    OTHER = "other"


# Ratios rounded to 4 decimals, as produced by round(width / height, 4)
ASPECT_RATIOS = {
    AspectClass.LANDSCAPE: 1.7778,  # 16:9
    AspectClass.PORTRAIT: 0.5625,  # 9:16
}


class IngestionState(str, Enum):
    """States of one ingestion run."""
    VALIDATING = "validating"
    STAGED = "staged"
    PROBED = "probed"
    REMUXED = "remuxed"
    UPLOADED = "uploaded"
    LINKED = "linked"
    DONE = "done"
    FAILED = "failed"


class AssetKind(str, Enum):
    VIDEO = "video"
    THUMBNAIL = "thumbnail"


ALLOWED_MEDIA_TYPES = {
    AssetKind.VIDEO: frozenset({"video/mp4"}),
    AssetKind.THUMBNAIL: frozenset({"image/jpeg", "image/png"}),
}

MEDIA_TYPE_EXTENSIONS = {
    "video/mp4": "mp4",
    "image/jpeg": "jpg",
    "image/png": "png",
}


def media_type_to_ext(media_type: str) -> str:
    """Map a media type to a file extension, ``bin`` when unknown."""
    return MEDIA_TYPE_EXTENSIONS.get(media_type, "bin")


def ext_to_media_type(ext: str) -> str:
    for media_type, known_ext in MEDIA_TYPE_EXTENSIONS.items():
        if known_ext == ext.lower().lstrip("."):
            return media_type
    return "application/octet-stream"


@dataclass(frozen=True)
class StagedFile:
    """Upload written to local disk for random access."""
    path: str
    size_bytes: int


@dataclass(frozen=True)
class ProcessedFile:
    """Fast-start remux output of a staged file."""
    path: str
    size_bytes: int


@dataclass(frozen=True)
class StorageObject:
    """Object written to the object store."""
    key: str
    content_type: str
    size_bytes: int = 0


@dataclass(frozen=True)
class VideoDimensions:
    width: int
    height: int

    @property
    def ratio(self) -> float:
        return round(self.width / self.height, 4)
