"""External tool invocation.

Tools are run through a ``ToolRunner`` so the prober and remuxer never spawn
processes themselves and tests can substitute a deterministic runner.
"""

import logging
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from tubely.core.exceptions import ToolError

logger = logging.getLogger(__name__)

# How often a running tool checks whether its ingestion was cancelled
CANCEL_POLL_SECONDS = 0.2


class ToolTimeoutError(ToolError):
    """Tool ran past its timeout and was killed."""
    pass


class ToolNotFoundError(ToolError):
    """Tool binary is not installed or not on PATH."""
    pass


class ToolCancelledError(ToolError):
    """Tool was killed because the ingestion that started it was cancelled."""
    pass


@dataclass
class ToolResult:
    """Captured outcome of one tool run."""
    args: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ToolRunner(Protocol):
    def run(
        self,
        args: Sequence[str],
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ToolResult:
        ...


class SubprocessToolRunner:
    """Runs tools as child processes.

    Arguments are passed as a vector, never through a shell. Output is
    decoded as UTF-8 with undecodable bytes replaced, since tools echo
    container tags verbatim. On timeout, or once ``cancel`` is set, the
    child is killed and drained before the error is raised.
    """

    def __init__(self, poll_interval: float = CANCEL_POLL_SECONDS):
        self.poll_interval = poll_interval

    def run(
        self,
        args: Sequence[str],
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ToolResult:
        cmd = [str(arg) for arg in args]
        logger.debug("Running tool", extra={"cmd": cmd, "timeout": timeout})

        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                encoding="utf-8",
                errors="replace",
            )
        except FileNotFoundError as e:
            raise ToolNotFoundError(f"Tool not found: {cmd[0]}") from e

        with process:
            stdout, stderr = self._communicate(process, cmd[0], timeout, cancel)

        return ToolResult(
            args=cmd,
            returncode=process.returncode,
            stdout=stdout,
            stderr=stderr,
        )

    def _communicate(
        self,
        process: subprocess.Popen,
        tool: str,
        timeout: Optional[float],
        cancel: Optional[threading.Event],
    ) -> tuple[str, str]:
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            wait = self.poll_interval if cancel is not None else None
            if deadline is not None:
                remaining = max(deadline - time.monotonic(), 0)
                wait = remaining if wait is None else min(wait, remaining)
            try:
                return process.communicate(timeout=wait)
            except subprocess.TimeoutExpired as e:
                if cancel is not None and cancel.is_set():
                    _kill(process)
                    raise ToolCancelledError(f"{tool} cancelled") from e
                if cancel is None or (deadline is not None and time.monotonic() >= deadline):
                    _kill(process)
                    raise ToolTimeoutError(f"{tool} timed out after {timeout:.0f}s") from e


def _kill(process: subprocess.Popen) -> None:
    process.kill()
    process.communicate()


def compute_tool_timeout(
    size_bytes: int,
    base_seconds: float,
    seconds_per_mb: float,
    max_seconds: float,
) -> float:
    """Timeout proportional to input size, capped at ``max_seconds``."""
    size_mb = size_bytes / (1 << 20)
    return min(base_seconds + seconds_per_mb * size_mb, max_seconds)
