"""Media ingestion module.

Stages uploads locally, probes and remuxes videos with FFmpeg, and pushes
the result to object storage.
"""

from tubely.modules.media.ffmpeg import (
    FastStartRemuxer,
    MediaProber,
    ProbeError,
    RemuxError,
    classify_aspect_ratio,
)
from tubely.modules.media.models import AspectClass, ProcessedFile, StagedFile, StorageObject
from tubely.modules.media.runner import SubprocessToolRunner, ToolResult, ToolTimeoutError
from tubely.modules.media.storage import ObjectStoreUploader, PresignedURLIssuer, UploadError

__all__ = [
    "AspectClass",
    "StagedFile",
    "ProcessedFile",
    "StorageObject",
    "MediaProber",
    "FastStartRemuxer",
    "ProbeError",
    "RemuxError",
    "classify_aspect_ratio",
    "SubprocessToolRunner",
    "ToolResult",
    "ToolTimeoutError",
    "ObjectStoreUploader",
    "PresignedURLIssuer",
    "UploadError",
]
