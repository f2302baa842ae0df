"""Video API router.

Record endpoints. Uploading a video file to an existing record lives in
the media router.
"""

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tubely.core.config import settings
from tubely.core.database import get_db
from tubely.core.storage import get_storage
from tubely.modules.auth.jwt import get_current_user_id
from tubely.modules.media.storage import PresignedURLIssuer
from tubely.modules.video.repository import VideoRepository
from tubely.modules.video.schemas import VideoCreateRequest, VideoResponse
from tubely.modules.video.service import VideoService, parse_video_id

router = APIRouter(prefix="/videos", tags=["videos"])


def get_video_service(db: AsyncSession = Depends(get_db)) -> VideoService:
    return VideoService(
        repository=VideoRepository(db),
        url_issuer=PresignedURLIssuer(
            get_storage(), default_ttl_seconds=settings.PRESIGNED_URL_TTL_SECONDS
        ),
        thumbnail_base_url=f"{settings.PUBLIC_BASE_URL}{settings.API_V1_PREFIX}/thumbnails",
    )


@router.post("", response_model=VideoResponse, status_code=status.HTTP_201_CREATED)
async def create_video(
    request: VideoCreateRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: VideoService = Depends(get_video_service),
):
    """Create an empty video record owned by the caller."""
    video = await service.create_video(user_id, request)
    return service.to_response(video)


@router.get("", response_model=list[VideoResponse])
async def list_videos(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: VideoService = Depends(get_video_service),
):
    """List the caller's videos, newest first."""
    videos = await service.list_videos(user_id, limit, offset)
    return [service.to_response(video) for video in videos]


@router.get("/{video_id}", response_model=VideoResponse)
async def get_video(
    video_id: str,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: VideoService = Depends(get_video_service),
):
    """Get one of the caller's videos with a freshly signed URL."""
    video = await service.get_owned_video(parse_video_id(video_id), user_id)
    return service.to_response(video)
