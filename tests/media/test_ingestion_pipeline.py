"""End-to-end tests for the ingestion orchestrator.

The pipeline runs against fake tools, an in-memory record store and local
storage under ``tmp_path``. Each failure case checks three things: the
error raised, no temp files left, and the record left untouched.
"""

import asyncio
import os
import threading
import uuid
from unittest.mock import MagicMock

import pytest

from fakes import FakeUpload, fake_media_bytes, stored_keys
from tubely.core.exceptions import (
    BadRequestError,
    ForbiddenError,
    NotFoundError,
    PayloadTooLargeError,
    ToolError,
)
from tubely.modules.media.ffmpeg import ProbeError, RemuxError
from tubely.modules.media.storage import UploadError
from tubely.modules.video.repository import RecordStoreError


def mp4_upload(width: int = 1920, height: int = 1080, size: int = 4096, **kwargs) -> FakeUpload:
    return FakeUpload(fake_media_bytes(width, height, size), "video/mp4", **kwargs)


class TestIngestVideo:
    """Happy paths."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "width,height,aspect",
        [(1920, 1080, "landscape"), (1080, 1920, "portrait"), (1000, 1000, "other")],
    )
    async def test_video_is_stored_under_aspect_prefix(
        self, ingestion_service, repository, storage, staging_dir, user_id, width, height, aspect
    ) -> None:
        video = repository.add(user_id)

        response = await ingestion_service.ingest_video(user_id, str(video.id), mp4_upload(width, height))

        assert video.aspect_class == aspect
        assert video.video_key.startswith(f"{aspect}/")
        assert video.video_key.endswith(".mp4")
        assert stored_keys(storage) == [video.video_key]
        assert response.aspect_class == aspect
        assert response.video_url.endswith(video.video_key)
        assert os.listdir(staging_dir) == []

    @pytest.mark.asyncio
    async def test_pipeline_order(self, ingestion_service, repository, runner, user_id) -> None:
        video = repository.add(user_id)

        await ingestion_service.ingest_video(user_id, str(video.id), mp4_upload())

        tools = [os.path.basename(call[0]) for call in runner.calls]
        assert tools == ["ffprobe", "ffmpeg"]
        # Probe reads the staged upload, remux reads the same file
        probe_input = runner.calls[0][-1]
        remux = runner.calls[1]
        assert remux[remux.index("-i") + 1] == probe_input
        assert remux[-1] != probe_input
        assert repository.update_calls == 1

    @pytest.mark.asyncio
    async def test_stored_bytes_match_remux_output(self, ingestion_service, repository, storage, user_id) -> None:
        video = repository.add(user_id)
        data = fake_media_bytes(1080, 1920, 10_000)

        await ingestion_service.ingest_video(user_id, str(video.id), FakeUpload(data, "video/mp4"))

        assert storage.read(video.video_key) == data

    @pytest.mark.asyncio
    async def test_reupload_gets_new_key(self, ingestion_service, repository, storage, user_id) -> None:
        video = repository.add(user_id)

        await ingestion_service.ingest_video(user_id, str(video.id), mp4_upload())
        first_key = video.video_key
        await ingestion_service.ingest_video(user_id, str(video.id), mp4_upload())

        assert video.video_key != first_key
        assert first_key in stored_keys(storage)

    @pytest.mark.asyncio
    async def test_content_type_parameters_are_ignored(self, ingestion_service, repository, user_id) -> None:
        video = repository.add(user_id)
        upload = mp4_upload()
        upload.content_type = "Video/MP4; codecs=avc1"

        response = await ingestion_service.ingest_video(user_id, str(video.id), upload)

        assert response.aspect_class == "landscape"


class TestIngestVideoRejections:
    """Requests refused before anything is staged."""

    @pytest.mark.asyncio
    async def test_non_owner_is_forbidden(self, ingestion_service, repository, runner, staging_dir, storage) -> None:
        owner = uuid.uuid4()
        video = repository.add(owner)
        upload = mp4_upload()

        with pytest.raises(ForbiddenError):
            await ingestion_service.ingest_video(uuid.uuid4(), str(video.id), upload)

        assert upload.bytes_read == 0
        assert runner.calls == []
        assert os.listdir(staging_dir) == []
        assert stored_keys(storage) == []
        assert video.video_key is None

    @pytest.mark.asyncio
    async def test_unknown_video_is_not_found(self, ingestion_service, user_id) -> None:
        with pytest.raises(NotFoundError):
            await ingestion_service.ingest_video(user_id, str(uuid.uuid4()), mp4_upload())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw_id", ["", "not-a-uuid", "1234"])
    async def test_malformed_id_is_bad_request(self, ingestion_service, user_id, raw_id) -> None:
        with pytest.raises(BadRequestError, match="Invalid video ID"):
            await ingestion_service.ingest_video(user_id, raw_id, mp4_upload())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content_type", ["image/gif", "video/quicktime", "", None])
    async def test_disallowed_type_rejected_before_staging(
        self, ingestion_service, repository, runner, staging_dir, user_id, content_type
    ) -> None:
        video = repository.add(user_id)
        upload = FakeUpload(fake_media_bytes(1920, 1080), content_type)

        with pytest.raises(BadRequestError):
            await ingestion_service.ingest_video(user_id, str(video.id), upload)

        assert upload.bytes_read == 0
        assert runner.calls == []
        assert os.listdir(staging_dir) == []

    @pytest.mark.asyncio
    async def test_declared_size_over_limit(self, ingestion_service, repository, staging_dir, user_id) -> None:
        video = repository.add(user_id)
        upload = mp4_upload(size=(1 << 20) + 1)

        with pytest.raises(PayloadTooLargeError):
            await ingestion_service.ingest_video(user_id, str(video.id), upload)

        assert upload.bytes_read == 0
        assert os.listdir(staging_dir) == []

    @pytest.mark.asyncio
    async def test_streamed_size_over_limit(self, ingestion_service, repository, runner, staging_dir, user_id) -> None:
        video = repository.add(user_id)
        upload = mp4_upload(size=(3 << 20), declare_size=False)

        with pytest.raises(PayloadTooLargeError) as exc_info:
            await ingestion_service.ingest_video(user_id, str(video.id), upload)

        assert exc_info.value.status_code == 400
        assert runner.calls == []
        assert os.listdir(staging_dir) == []
        assert video.video_key is None


class TestIngestVideoFailures:
    """Failures after staging leave no temp files, objects or record changes."""

    @pytest.mark.asyncio
    async def test_probe_failure(self, ingestion_service, repository, runner, staging_dir, storage, user_id) -> None:
        video = repository.add(user_id)
        runner.probe_returncode = 1

        with pytest.raises(ProbeError) as exc_info:
            await ingestion_service.ingest_video(user_id, str(video.id), mp4_upload())

        assert exc_info.value.status_code == 500
        assert runner.tool_calls("ffmpeg") == []
        assert os.listdir(staging_dir) == []
        assert stored_keys(storage) == []
        assert repository.update_calls == 0

    @pytest.mark.asyncio
    async def test_not_a_video(self, ingestion_service, repository, staging_dir, user_id) -> None:
        video = repository.add(user_id)
        upload = FakeUpload(b"GIF89a" + b"\0" * 100, "video/mp4")

        with pytest.raises(ToolError):
            await ingestion_service.ingest_video(user_id, str(video.id), upload)

        assert os.listdir(staging_dir) == []
        assert video.video_key is None

    @pytest.mark.asyncio
    async def test_remux_failure(self, ingestion_service, repository, runner, staging_dir, storage, user_id) -> None:
        video = repository.add(user_id)
        runner.remux_returncode = 1

        with pytest.raises(RemuxError):
            await ingestion_service.ingest_video(user_id, str(video.id), mp4_upload())

        assert os.listdir(staging_dir) == []
        assert stored_keys(storage) == []
        assert repository.update_calls == 0
        assert (video.video_key, video.aspect_class) == (None, None)

    @pytest.mark.asyncio
    async def test_remux_timeout(self, ingestion_service, repository, runner, staging_dir, user_id) -> None:
        video = repository.add(user_id)
        runner.remux_timeout = True

        with pytest.raises(RemuxError):
            await ingestion_service.ingest_video(user_id, str(video.id), mp4_upload())

        assert os.listdir(staging_dir) == []
        assert video.video_key is None

    @pytest.mark.asyncio
    async def test_upload_failure(self, ingestion_service, repository, staging_dir, user_id) -> None:
        video = repository.add(user_id)
        ingestion_service.uploader.upload = MagicMock(side_effect=UploadError("Upload failed: AccessDenied"))

        with pytest.raises(UploadError):
            await ingestion_service.ingest_video(user_id, str(video.id), mp4_upload())

        assert os.listdir(staging_dir) == []
        assert repository.update_calls == 0
        assert video.video_key is None

    @pytest.mark.asyncio
    async def test_record_update_failure_discards_object(
        self, ingestion_service, repository, staging_dir, storage, user_id
    ) -> None:
        video = repository.add(user_id)
        repository.fail_updates = True

        with pytest.raises(RecordStoreError):
            await ingestion_service.ingest_video(user_id, str(video.id), mp4_upload())

        assert stored_keys(storage) == []
        assert os.listdir(staging_dir) == []
        assert video.video_key is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [RuntimeError("session closed"), asyncio.CancelledError()])
    async def test_any_link_failure_discards_object(
        self, ingestion_service, repository, staging_dir, storage, user_id, error
    ) -> None:
        video = repository.add(user_id)
        repository.update_error = error

        with pytest.raises(type(error)):
            await ingestion_service.ingest_video(user_id, str(video.id), mp4_upload())

        assert stored_keys(storage) == []
        assert os.listdir(staging_dir) == []
        assert video.video_key is None

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_asset(self, ingestion_service, repository, runner, storage, user_id) -> None:
        video = repository.add(user_id)
        await ingestion_service.ingest_video(user_id, str(video.id), mp4_upload(1080, 1920))
        previous = (video.video_key, video.aspect_class)

        runner.remux_returncode = 1
        with pytest.raises(RemuxError):
            await ingestion_service.ingest_video(user_id, str(video.id), mp4_upload(1920, 1080))

        assert (video.video_key, video.aspect_class) == previous
        assert stored_keys(storage) == [previous[0]]


class TestIngestVideoCancellation:
    """A cancelled ingestion stops its tools before its temp files go."""

    @pytest.mark.asyncio
    async def test_cancel_during_remux(
        self, ingestion_service, repository, runner, staging_dir, storage, user_id
    ) -> None:
        video = repository.add(user_id)
        runner.remux_hold_seconds = 5.0
        task = asyncio.create_task(ingestion_service.ingest_video(user_id, str(video.id), mp4_upload()))

        assert await asyncio.to_thread(runner.remux_started.wait, 5)
        # ffmpeg has written its output and is still running
        assert any(name.endswith(".processed.mp4") for name in os.listdir(staging_dir))

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert runner.cancelled_tools == ["ffmpeg"]
        assert os.listdir(staging_dir) == []
        assert stored_keys(storage) == []
        assert repository.update_calls == 0
        assert video.video_key is None

    @pytest.mark.asyncio
    async def test_cancel_during_upload_drops_object(
        self, ingestion_service, repository, staging_dir, storage, user_id
    ) -> None:
        video = repository.add(user_id)
        uploader = ingestion_service.uploader
        started = threading.Event()
        release = threading.Event()
        real_upload = uploader.upload

        def slow_upload(path, key, media_type):
            stored = real_upload(path, key, media_type)
            started.set()
            release.wait(5)
            return stored

        uploader.upload = slow_upload
        task = asyncio.create_task(ingestion_service.ingest_video(user_id, str(video.id), mp4_upload()))
        assert await asyncio.to_thread(started.wait, 5)

        task.cancel()
        await asyncio.sleep(0)
        release.set()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert stored_keys(storage) == []
        assert os.listdir(staging_dir) == []
        assert repository.update_calls == 0

class TestThumbnails:
    """Thumbnail upload and retrieval."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("media_type,ext", [("image/png", "png"), ("image/jpeg", "jpg")])
    async def test_upload_and_fetch(
        self, ingestion_service, repository, runner, staging_dir, user_id, media_type, ext
    ) -> None:
        video = repository.add(user_id)
        data = b"\x89PNG\r\n\x1a\n" + os.urandom(512)

        response = await ingestion_service.ingest_thumbnail(user_id, str(video.id), FakeUpload(data, media_type))

        assert video.thumbnail_key.startswith("thumbnails/")
        assert video.thumbnail_key.endswith(f".{ext}")
        assert response.thumbnail_url == f"http://testserver/api/v1/thumbnails/{video.id}"
        assert runner.calls == []
        assert os.listdir(staging_dir) == []

        body, served_type = await ingestion_service.fetch_thumbnail(str(video.id))
        assert body == data
        assert served_type == media_type

    @pytest.mark.asyncio
    async def test_gif_rejected(self, ingestion_service, repository, storage, user_id) -> None:
        video = repository.add(user_id)

        with pytest.raises(BadRequestError):
            await ingestion_service.ingest_thumbnail(user_id, str(video.id), FakeUpload(b"GIF89a", "image/gif"))

        assert stored_keys(storage) == []
        assert video.thumbnail_key is None

    @pytest.mark.asyncio
    async def test_thumbnail_size_limit(self, ingestion_service, repository, staging_dir, user_id) -> None:
        video = repository.add(user_id)
        upload = FakeUpload(b"\xff" * (64 * 1024 + 1), "image/jpeg", declare_size=False)

        with pytest.raises(PayloadTooLargeError):
            await ingestion_service.ingest_thumbnail(user_id, str(video.id), upload)

        assert os.listdir(staging_dir) == []

    @pytest.mark.asyncio
    async def test_non_owner_cannot_replace_thumbnail(self, ingestion_service, repository) -> None:
        video = repository.add(uuid.uuid4())

        with pytest.raises(ForbiddenError):
            await ingestion_service.ingest_thumbnail(uuid.uuid4(), str(video.id), FakeUpload(b"x", "image/png"))

    @pytest.mark.asyncio
    async def test_replacing_thumbnail_serves_latest(self, ingestion_service, repository, user_id) -> None:
        video = repository.add(user_id)
        await ingestion_service.ingest_thumbnail(user_id, str(video.id), FakeUpload(b"first", "image/png"))
        await ingestion_service.ingest_thumbnail(user_id, str(video.id), FakeUpload(b"second", "image/jpeg"))

        body, media_type = await ingestion_service.fetch_thumbnail(str(video.id))

        assert (body, media_type) == (b"second", "image/jpeg")

    @pytest.mark.asyncio
    async def test_fetch_without_thumbnail(self, ingestion_service, repository, user_id) -> None:
        video = repository.add(user_id)
        with pytest.raises(NotFoundError):
            await ingestion_service.fetch_thumbnail(str(video.id))

    @pytest.mark.asyncio
    async def test_fetch_unknown_video(self, ingestion_service) -> None:
        with pytest.raises(NotFoundError):
            await ingestion_service.fetch_thumbnail(str(uuid.uuid4()))

    @pytest.mark.asyncio
    async def test_fetch_missing_object(self, ingestion_service, repository, user_id) -> None:
        video = repository.add(user_id)
        video.thumbnail_key = "thumbnails/deleted.png"
        with pytest.raises(NotFoundError):
            await ingestion_service.fetch_thumbnail(str(video.id))
