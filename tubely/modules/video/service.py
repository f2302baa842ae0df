"""Video service for record lookup, ownership checks and response building."""

import uuid
from typing import Optional

from tubely.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from tubely.modules.media.storage import PresignedURLIssuer
from tubely.modules.video.models import Video
from tubely.modules.video.repository import VideoRepository
from tubely.modules.video.schemas import VideoCreateRequest, VideoResponse


def parse_video_id(raw: Optional[str]) -> uuid.UUID:
    """Parse a path parameter into a video UUID.

    Raises:
        BadRequestError: If the id is missing or malformed
    """
    if not raw:
        raise BadRequestError("Invalid video ID")
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise BadRequestError("Invalid video ID")


class VideoService:
    """Service for video record operations."""

    def __init__(
        self,
        repository: VideoRepository,
        url_issuer: PresignedURLIssuer,
        thumbnail_base_url: str,
    ):
        self.repository = repository
        self.url_issuer = url_issuer
        self.thumbnail_base_url = thumbnail_base_url.rstrip("/")

    async def get_video(self, video_id: uuid.UUID) -> Video:
        """Get video by ID.

        Raises:
            NotFoundError: If video not found
        """
        video = await self.repository.get_by_id(video_id)
        if video is None:
            raise NotFoundError("Couldn't find video")
        return video

    async def get_owned_video(self, video_id: uuid.UUID, user_id: uuid.UUID) -> Video:
        """Get a video the caller owns.

        Raises:
            NotFoundError: If video not found
            ForbiddenError: If the caller is not the owner
        """
        video = await self.get_video(video_id)
        if not video.is_owned_by(user_id):
            raise ForbiddenError("Not the owner of the video")
        return video

    async def create_video(self, user_id: uuid.UUID, request: VideoCreateRequest) -> Video:
        return await self.repository.create(
            user_id=user_id,
            title=request.title,
            description=request.description,
        )

    async def list_videos(
        self, user_id: uuid.UUID, limit: int = 100, offset: int = 0
    ) -> list[Video]:
        return await self.repository.get_by_user_id(user_id, limit, offset)

    def thumbnail_url(self, video: Video) -> Optional[str]:
        if not video.thumbnail_key:
            return None
        return f"{self.thumbnail_base_url}/{video.id}"

    def to_response(self, video: Video) -> VideoResponse:
        """Build the API view of a video, signing its URL now."""
        video_url = None
        if video.video_key:
            video_url = self.url_issuer.issue_presigned_url(video.video_key)

        return VideoResponse(
            id=video.id,
            user_id=video.user_id,
            title=video.title,
            description=video.description,
            video_url=video_url,
            thumbnail_url=self.thumbnail_url(video),
            aspect_class=video.aspect_class,
            created_at=video.created_at,
            updated_at=video.updated_at,
        )
