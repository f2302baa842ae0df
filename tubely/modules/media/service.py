"""Media ingestion orchestrator.

Sequences validation, staging, probing, fast-start remuxing, upload and
record linking for one upload. Every temp file is registered on an
``ExitStack`` as soon as it exists, so it is deleted on every exit path.
The video record is touched only after the object is in storage.
"""

import asyncio
import logging
import os
import threading
import time
import uuid
from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol, TypeVar

from tubely.core.exceptions import (
    BadRequestError,
    NotFoundError,
    PayloadTooLargeError,
    StagingError,
    TubelyError,
)
from tubely.core.logging import log_error, log_info, log_warning
from tubely.core.storage import Storage
from tubely.modules.media.ffmpeg import PROCESSED_SUFFIX, FastStartRemuxer, MediaProber
from tubely.modules.media.models import (
    ALLOWED_MEDIA_TYPES,
    AssetKind,
    IngestionState,
    StorageObject,
    ext_to_media_type,
    media_type_to_ext,
)
from tubely.modules.media.staging import new_temp_path, stage_upload, temp_file_guard
from tubely.modules.media.storage import (
    ObjectStoreUploader,
    generate_thumbnail_key,
    generate_video_key,
)
from tubely.modules.video.models import Video
from tubely.modules.video.schemas import VideoResponse
from tubely.modules.video.service import VideoService, parse_video_id

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UploadStream(Protocol):
    """The parts of an uploaded multipart file the pipeline relies on."""

    content_type: Optional[str]
    size: Optional[int]

    async def read(self, size: int = -1) -> bytes:
        ...


@dataclass
class IngestionRun:
    """Tracks and logs the state transitions of one ingestion."""

    kind: AssetKind
    user_id: uuid.UUID
    raw_video_id: str
    state: IngestionState = IngestionState.VALIDATING
    started_at: float = field(default_factory=time.monotonic)

    def _context(self) -> dict:
        return {
            "asset": self.kind.value,
            "video_id": self.raw_video_id,
            "user_id": str(self.user_id),
            "state": self.state.value,
            "elapsed_ms": round((time.monotonic() - self.started_at) * 1000, 2),
        }

    def advance(self, state: IngestionState, **extra) -> None:
        self.state = state
        log_info(logger, "Ingestion state changed", **self._context(), **extra)

    def fail(self, exc: BaseException) -> None:
        failed_in = self.state.value
        self.state = IngestionState.FAILED
        context = self._context()
        context["failed_in"] = failed_in
        if isinstance(exc, TubelyError) and exc.status_code < 500:
            log_warning(logger, f"Ingestion rejected: {exc}", **context)
        else:
            log_error(logger, "Ingestion failed", exception=exc, **context)

    def cancelled(self) -> None:
        context = self._context()
        context["failed_in"] = context["state"]
        self.state = IngestionState.FAILED
        log_warning(logger, "Ingestion cancelled", **context)


class IngestionService:
    """Runs the validate, stage, probe, remux, upload, link pipeline."""

    def __init__(
        self,
        videos: VideoService,
        prober: MediaProber,
        remuxer: FastStartRemuxer,
        uploader: ObjectStoreUploader,
        storage: Storage,
        temp_dir: Optional[str] = None,
        max_video_bytes: int = 1 << 30,
        max_thumbnail_bytes: int = 10 << 20,
    ):
        self.videos = videos
        self.prober = prober
        self.remuxer = remuxer
        self.uploader = uploader
        self.storage = storage
        self.temp_dir = temp_dir
        self.max_bytes = {
            AssetKind.VIDEO: max_video_bytes,
            AssetKind.THUMBNAIL: max_thumbnail_bytes,
        }

    def validate_upload(self, upload: UploadStream, kind: AssetKind) -> str:
        """Check the declared media type and size before anything is staged.

        Returns:
            The accepted media type
        """
        media_type = (upload.content_type or "").split(";")[0].strip().lower()
        allowed = ALLOWED_MEDIA_TYPES[kind]
        if media_type not in allowed:
            raise BadRequestError(
                f"Missing or wrong Content-Type for {kind.value}; "
                f"expected one of {', '.join(sorted(allowed))}"
            )

        max_bytes = self.max_bytes[kind]
        if upload.size is not None and upload.size > max_bytes:
            raise PayloadTooLargeError(
                f"{kind.value.capitalize()} exceeds maximum size of {max_bytes} bytes"
            )
        return media_type

    async def ingest_video(
        self,
        user_id: uuid.UUID,
        raw_video_id: str,
        upload: UploadStream,
    ) -> VideoResponse:
        """Ingest an MP4 upload and point the video record at it."""
        run = IngestionRun(AssetKind.VIDEO, user_id, raw_video_id)
        try:
            video = await self._authorize(user_id, raw_video_id)
            media_type = self.validate_upload(upload, AssetKind.VIDEO)

            with ExitStack() as cleanup:
                staged = await stage_upload(
                    upload,
                    self.max_bytes[AssetKind.VIDEO],
                    self.temp_dir,
                    suffix=f".{media_type_to_ext(media_type)}",
                )
                cleanup.enter_context(temp_file_guard(staged.path))
                run.advance(IngestionState.STAGED, size_bytes=staged.size_bytes)

                aspect = await self._run_tool(self.prober.probe, staged.path)
                run.advance(IngestionState.PROBED, aspect=aspect.value)

                output_path = cleanup.enter_context(temp_file_guard(self._new_output_path()))
                processed = await self._run_tool(self.remuxer.remux, staged.path, output_path)
                run.advance(IngestionState.REMUXED, size_bytes=processed.size_bytes)

                key = generate_video_key(aspect, media_type)
                stored = await self._upload(processed.path, key, media_type)
                run.advance(IngestionState.UPLOADED, key=stored.key)

                video = await self._link(
                    video, stored, video_key=stored.key, aspect_class=aspect.value
                )
                run.advance(IngestionState.LINKED)

            response = self.videos.to_response(video)
            run.advance(IngestionState.DONE)
            return response
        except asyncio.CancelledError:
            run.cancelled()
            raise
        except Exception as e:
            run.fail(e)
            raise

    async def ingest_thumbnail(
        self,
        user_id: uuid.UUID,
        raw_video_id: str,
        upload: UploadStream,
    ) -> VideoResponse:
        """Store a JPEG/PNG thumbnail and point the video record at it.

        Thumbnails are uploaded as staged; they are not probed or remuxed.
        """
        run = IngestionRun(AssetKind.THUMBNAIL, user_id, raw_video_id)
        try:
            video = await self._authorize(user_id, raw_video_id)
            media_type = self.validate_upload(upload, AssetKind.THUMBNAIL)

            with ExitStack() as cleanup:
                staged = await stage_upload(
                    upload,
                    self.max_bytes[AssetKind.THUMBNAIL],
                    self.temp_dir,
                    suffix=f".{media_type_to_ext(media_type)}",
                )
                cleanup.enter_context(temp_file_guard(staged.path))
                run.advance(IngestionState.STAGED, size_bytes=staged.size_bytes)

                key = generate_thumbnail_key(media_type)
                stored = await self._upload(staged.path, key, media_type)
                run.advance(IngestionState.UPLOADED, key=stored.key)

                video = await self._link(video, stored, thumbnail_key=stored.key)
                run.advance(IngestionState.LINKED)

            response = self.videos.to_response(video)
            run.advance(IngestionState.DONE)
            return response
        except asyncio.CancelledError:
            run.cancelled()
            raise
        except Exception as e:
            run.fail(e)
            raise

    async def fetch_thumbnail(self, raw_video_id: str) -> tuple[bytes, str]:
        """Return a video's thumbnail bytes and media type.

        Raises:
            NotFoundError: If the video or its thumbnail does not exist
        """
        video = await self.videos.get_video(parse_video_id(raw_video_id))
        if not video.thumbnail_key:
            raise NotFoundError("Thumbnail not found")

        data = await asyncio.to_thread(self.storage.read, video.thumbnail_key)
        if data is None:
            raise NotFoundError("Thumbnail not found")

        ext = os.path.splitext(video.thumbnail_key)[1]
        return data, ext_to_media_type(ext)

    async def _authorize(self, user_id: uuid.UUID, raw_video_id: str) -> Video:
        video_id = parse_video_id(raw_video_id)
        return await self.videos.get_owned_video(video_id, user_id)

    def _new_output_path(self) -> str:
        try:
            return new_temp_path(self.temp_dir, suffix=PROCESSED_SUFFIX)
        except OSError as e:
            raise StagingError(f"Could not create temp file: {e}") from e

    async def _run_tool(self, func: Callable[..., T], *args) -> T:
        """Run a blocking prober or remuxer call in a worker thread.

        If the ingestion is cancelled meanwhile, the tool is signalled to kill
        its child process and the worker is awaited before the cancellation
        propagates, so nothing writes into a temp file after its guard ran.
        """
        cancel = threading.Event()
        worker = asyncio.ensure_future(asyncio.to_thread(func, *args, cancel=cancel))
        try:
            return await asyncio.shield(worker)
        except asyncio.CancelledError:
            cancel.set()
            await asyncio.wait({worker})
            if not worker.cancelled() and worker.exception() is not None:
                logger.debug("Tool stopped after cancellation", extra={"error": str(worker.exception())})
            raise

    async def _upload(self, path: str, key: str, media_type: str) -> StorageObject:
        """Upload in a worker thread. On cancellation the object is dropped."""
        worker = asyncio.ensure_future(
            asyncio.to_thread(self.uploader.upload, path, key, media_type)
        )
        try:
            return await asyncio.shield(worker)
        except asyncio.CancelledError:
            await asyncio.wait({worker})
            if not worker.cancelled() and worker.exception() is None:
                await asyncio.to_thread(self.uploader.discard, key)
            raise

    async def _link(self, video: Video, stored: StorageObject, **fields) -> Video:
        """Point the record at ``stored``; drop the object if that fails."""
        try:
            return await self.videos.repository.update(video, **fields)
        except BaseException:
            await asyncio.shield(asyncio.to_thread(self.uploader.discard, stored.key))
            raise
