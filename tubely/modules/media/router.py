"""Media upload API router.

Implements video and thumbnail upload plus thumbnail retrieval.
"""

import uuid

from fastapi import APIRouter, Depends, File, Response, UploadFile

from tubely.core.config import settings
from tubely.core.storage import get_storage
from tubely.modules.auth.jwt import get_current_user_id
from tubely.modules.media.ffmpeg import FastStartRemuxer, MediaProber, ToolTimeouts
from tubely.modules.media.runner import SubprocessToolRunner
from tubely.modules.media.service import IngestionService
from tubely.modules.media.storage import ObjectStoreUploader
from tubely.modules.video.router import get_video_service
from tubely.modules.video.schemas import VideoResponse
from tubely.modules.video.service import VideoService

router = APIRouter(tags=["media"])


def get_ingestion_service(
    videos: VideoService = Depends(get_video_service),
) -> IngestionService:
    runner = SubprocessToolRunner()
    timeouts = ToolTimeouts(
        base_seconds=settings.TOOL_TIMEOUT_BASE_SECONDS,
        seconds_per_mb=settings.TOOL_TIMEOUT_SECONDS_PER_MB,
        max_seconds=settings.TOOL_TIMEOUT_MAX_SECONDS,
    )
    storage = get_storage()

    return IngestionService(
        videos=videos,
        prober=MediaProber(
            runner,
            ffprobe_path=settings.FFPROBE_PATH,
            timeouts=timeouts,
            aspect_tolerance=settings.ASPECT_RATIO_TOLERANCE,
        ),
        remuxer=FastStartRemuxer(
            runner,
            ffmpeg_path=settings.FFMPEG_PATH,
            timeouts=timeouts,
            temp_dir=settings.MEDIA_TEMP_DIR,
        ),
        uploader=ObjectStoreUploader(storage),
        storage=storage,
        temp_dir=settings.MEDIA_TEMP_DIR,
        max_video_bytes=settings.MAX_VIDEO_UPLOAD_BYTES,
        max_thumbnail_bytes=settings.MAX_THUMBNAIL_UPLOAD_BYTES,
    )


@router.post("/videos/{video_id}", response_model=VideoResponse)
async def upload_video(
    video_id: str,
    video: UploadFile = File(...),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: IngestionService = Depends(get_ingestion_service),
):
    """Upload an MP4 for an existing video record."""
    return await service.ingest_video(user_id, video_id, video)


@router.post("/thumbnails/{video_id}", response_model=VideoResponse)
async def upload_thumbnail(
    video_id: str,
    thumbnail: UploadFile = File(...),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: IngestionService = Depends(get_ingestion_service),
):
    """Upload a JPEG or PNG thumbnail for an existing video record."""
    return await service.ingest_thumbnail(user_id, video_id, thumbnail)


@router.get("/thumbnails/{video_id}")
async def get_thumbnail(
    video_id: str,
    service: IngestionService = Depends(get_ingestion_service),
):
    """Serve a thumbnail. Thumbnails can be replaced, so never cache."""
    data, media_type = await service.fetch_thumbnail(video_id)
    return Response(
        content=data,
        media_type=media_type,
        headers={"Cache-Control": "no-store"},
    )
