"""Local staging of uploads.

Probing and remuxing need random access, so an upload stream is first
written to a private temp file. Temp paths are random per call and never
derived from the video id.
"""

import logging
import os
import tempfile
from contextlib import contextmanager
from typing import Iterator, Optional, Protocol

from tubely.core.exceptions import PayloadTooLargeError, StagingError
from tubely.modules.media.models import StagedFile

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1 MiB
TEMP_PREFIX = "tubely-"


class AsyncReadable(Protocol):
    async def read(self, size: int = -1) -> bytes:
        ...


def new_temp_path(directory: Optional[str] = None, suffix: str = "") -> str:
    """Create an empty, uniquely named temp file and return its path."""
    fd, path = tempfile.mkstemp(prefix=TEMP_PREFIX, suffix=suffix, dir=directory)
    os.close(fd)
    return path


def remove_quietly(path: str) -> None:
    """Delete ``path`` if it exists. Failures are logged, not raised."""
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError:
        logger.warning("Could not delete temp file", extra={"path": path}, exc_info=True)


@contextmanager
def temp_file_guard(path: str) -> Iterator[str]:
    """Delete ``path`` when the block exits, whatever the exit path."""
    try:
        yield path
    finally:
        remove_quietly(path)


async def stage_upload(
    stream: AsyncReadable,
    max_bytes: int,
    directory: Optional[str] = None,
    suffix: str = "",
) -> StagedFile:
    """Write ``stream`` to a new temp file.

    The write is aborted and the partial file removed as soon as more than
    ``max_bytes`` have been read.

    Raises:
        PayloadTooLargeError: upload exceeds ``max_bytes``
        StagingError: the temp file could not be written
    """
    try:
        path = new_temp_path(directory, suffix)
    except OSError as e:
        raise StagingError(f"Could not create temp file: {e}") from e

    size = 0
    try:
        with open(path, "wb") as f:
            while chunk := await stream.read(CHUNK_SIZE):
                size += len(chunk)
                if size > max_bytes:
                    raise PayloadTooLargeError(
                        f"Upload exceeds maximum size of {max_bytes} bytes"
                    )
                f.write(chunk)
    except OSError as e:
        remove_quietly(path)
        raise StagingError(f"Could not write upload: {e}") from e
    except BaseException:
        remove_quietly(path)
        raise

    logger.debug("Upload staged", extra={"path": path, "size_bytes": size})
    return StagedFile(path=path, size_bytes=size)
