"""Video management module."""

from tubely.modules.video.models import Video
from tubely.modules.video.repository import RecordStoreError, VideoRepository
from tubely.modules.video.service import VideoService, parse_video_id

__all__ = [
    # Models
    "Video",
    # Repositories
    "VideoRepository",
    "RecordStoreError",
    # Service
    "VideoService",
    "parse_video_id",
]
