"""FFmpeg probing and fast-start remuxing.

The prober reads stream geometry with ffprobe and buckets the aspect ratio.
The remuxer moves the MP4 index (moov atom) to the front of the file without
re-encoding so playback can start before the download finishes.
"""

import json
import logging
import os
import threading
from dataclasses import dataclass
from typing import Optional

from tubely.core.exceptions import ToolError
from tubely.modules.media.models import (
    ASPECT_RATIOS,
    AspectClass,
    ProcessedFile,
    VideoDimensions,
)
from tubely.modules.media.runner import (
    SubprocessToolRunner,
    ToolResult,
    ToolRunner,
    compute_tool_timeout,
)
from tubely.modules.media.staging import new_temp_path, remove_quietly

logger = logging.getLogger(__name__)

PROCESSED_SUFFIX = ".processed.mp4"


class ProbeError(ToolError):
    """ffprobe failed or reported no usable video stream."""
    pass


class RemuxError(ToolError):
    """ffmpeg failed to produce the fast-start output."""
    pass


@dataclass
class ToolTimeouts:
    """Timeout policy: base + per-MiB allowance, capped."""
    base_seconds: float = 30.0
    seconds_per_mb: float = 0.5
    max_seconds: float = 600.0

    def for_file(self, path: str) -> float:
        try:
            size = os.path.getsize(path)
        except OSError:
            size = 0
        return compute_tool_timeout(
            size, self.base_seconds, self.seconds_per_mb, self.max_seconds
        )


def classify_aspect_ratio(
    width: int,
    height: int,
    tolerance: float = 0.0,
) -> AspectClass:
    """Bucket a frame size into portrait, landscape or other.

    The ratio is rounded to 4 decimals before comparison, so with the
    default tolerance only exact 16:9 and 9:16 frames are bucketed.

    Args:
        width: Frame width in pixels
        height: Frame height in pixels
        tolerance: Allowed absolute deviation from the reference ratio

    Returns:
        AspectClass
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid dimensions {width}x{height}")

    ratio = round(width / height, 4)
    for aspect, reference in ASPECT_RATIOS.items():
        if tolerance <= 0:
            if ratio == reference:
                return aspect
        elif abs(ratio - reference) <= tolerance:
            return aspect
    return AspectClass.OTHER


def parse_video_dimensions(probe_output: str) -> VideoDimensions:
    """Extract the first video stream's size from ffprobe JSON output.

    Raises:
        ProbeError: output is not JSON or has no video stream with a size
    """
    try:
        info = json.loads(probe_output)
    except json.JSONDecodeError as e:
        raise ProbeError(f"Unparseable ffprobe output: {e}") from e

    streams = info.get("streams") if isinstance(info, dict) else None
    for stream in streams or []:
        if stream.get("codec_type") != "video":
            continue
        width = stream.get("width")
        height = stream.get("height")
        if not isinstance(width, int) or not isinstance(height, int) or width <= 0 or height <= 0:
            raise ProbeError(f"Video stream has invalid dimensions {width}x{height}")
        return VideoDimensions(width=width, height=height)

    raise ProbeError("No video stream found")


class MediaProber:
    """Reads video geometry with ffprobe and classifies its aspect ratio."""

    def __init__(
        self,
        runner: Optional[ToolRunner] = None,
        ffprobe_path: str = "ffprobe",
        timeouts: Optional[ToolTimeouts] = None,
        aspect_tolerance: float = 0.0,
    ):
        self.runner = runner or SubprocessToolRunner()
        self.ffprobe_path = ffprobe_path
        self.timeouts = timeouts or ToolTimeouts()
        self.aspect_tolerance = aspect_tolerance

    def build_probe_command(self, input_path: str) -> list[str]:
        return [
            self.ffprobe_path,
            "-v", "error",
            "-print_format", "json",
            "-show_streams",
            input_path,
        ]

    def get_dimensions(
        self,
        input_path: str,
        cancel: Optional[threading.Event] = None,
    ) -> VideoDimensions:
        """Run ffprobe and return the first video stream's dimensions.

        Raises:
            ProbeError: ffprobe exited non-zero or its output is unusable
        """
        cmd = self.build_probe_command(input_path)
        try:
            result = self.runner.run(
                cmd, timeout=self.timeouts.for_file(input_path), cancel=cancel
            )
        except ToolError as e:
            raise ProbeError(f"ffprobe failed: {e}") from e

        _check_result(result, ProbeError, "ffprobe")
        return parse_video_dimensions(result.stdout)

    def probe(self, input_path: str, cancel: Optional[threading.Event] = None) -> AspectClass:
        """Classify the aspect ratio of the video at ``input_path``."""
        dims = self.get_dimensions(input_path, cancel)
        aspect = classify_aspect_ratio(dims.width, dims.height, self.aspect_tolerance)
        logger.info(
            "Probed video",
            extra={"width": dims.width, "height": dims.height, "ratio": dims.ratio, "aspect": aspect.value},
        )
        return aspect


class FastStartRemuxer:
    """Rewrites an MP4 with its index first, copying streams unchanged."""

    def __init__(
        self,
        runner: Optional[ToolRunner] = None,
        ffmpeg_path: str = "ffmpeg",
        timeouts: Optional[ToolTimeouts] = None,
        temp_dir: Optional[str] = None,
    ):
        self.runner = runner or SubprocessToolRunner()
        self.ffmpeg_path = ffmpeg_path
        self.timeouts = timeouts or ToolTimeouts()
        self.temp_dir = temp_dir

    def build_remux_command(self, input_path: str, output_path: str) -> list[str]:
        return [
            self.ffmpeg_path,
            "-y",  # output path is a pre-created empty temp file
            "-v", "error",
            "-i", input_path,
            "-movflags", "faststart",
            "-map_metadata", "0",
            "-codec", "copy",
            "-f", "mp4",
            output_path,
        ]

    def remux(
        self,
        input_path: str,
        output_path: Optional[str] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ProcessedFile:
        """Write a fast-start copy of ``input_path``.

        The output goes to ``output_path``, or to a new temp file when none is
        given. The input is never modified. On failure the partial output is
        deleted before ``RemuxError`` is raised.
        """
        if output_path is None:
            output_path = new_temp_path(self.temp_dir, suffix=PROCESSED_SUFFIX)
        cmd = self.build_remux_command(input_path, output_path)

        try:
            result = self.runner.run(
                cmd, timeout=self.timeouts.for_file(input_path), cancel=cancel
            )
            _check_result(result, RemuxError, "ffmpeg")

            size = os.path.getsize(output_path)
            if size == 0:
                raise RemuxError("ffmpeg produced an empty output file")
        except ToolError as e:
            remove_quietly(output_path)
            if isinstance(e, RemuxError):
                raise
            raise RemuxError(f"ffmpeg failed: {e}") from e
        except OSError as e:
            remove_quietly(output_path)
            raise RemuxError(f"ffmpeg output missing: {e}") from e

        return ProcessedFile(path=output_path, size_bytes=size)


def _check_result(result: ToolResult, error_cls: type, tool: str) -> None:
    """Raise ``error_cls`` when the tool exited non-zero.

    Success is decided by exit code alone. Diagnostics written to stderr by a
    successful run are logged.
    """
    stderr = (result.stderr or "").strip()
    if not result.ok:
        raise error_cls(f"{tool} exited with code {result.returncode}: {stderr[-2000:]}")
    if stderr:
        logger.warning(f"{tool} reported diagnostics", extra={"stderr": stderr[-2000:]})
