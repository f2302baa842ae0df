"""Request correlation and access logging middleware."""

import logging
import re
import time
import uuid
from typing import Callable, Iterable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from tubely.core.exceptions import PayloadTooLargeError
from tubely.core.logging import clear_correlation_id, set_correlation_id

CORRELATION_ID_HEADER = "X-Correlation-ID"

# Client supplied IDs end up in every log line, so only simple tokens are trusted
_SAFE_CORRELATION_ID = re.compile(r"[A-Za-z0-9._:-]{1,128}")

access_logger = logging.getLogger("tubely.requests")

# Room for multipart boundaries and part headers around the file itself
MULTIPART_OVERHEAD_BYTES = 64 * 1024


def resolve_correlation_id(header_value: Optional[str]) -> str:
    """Use the caller's correlation ID when it is a safe token, else a new UUID."""
    if header_value and _SAFE_CORRELATION_ID.fullmatch(header_value):
        return header_value
    return str(uuid.uuid4())


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Binds a correlation ID to the request context and echoes it back."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = resolve_correlation_id(request.headers.get(CORRELATION_ID_HEADER))
        set_correlation_id(correlation_id)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = correlation_id
            return response
        finally:
            clear_correlation_id()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Writes one access log line per request.

    Upload sizes come from ``Content-Length``; bodies are never read here so
    large uploads keep streaming to the handler.
    """

    def __init__(self, app: ASGIApp, skip_paths: Iterable[str] = ("/health",)):
        super().__init__(app)
        self.skip_paths = frozenset(skip_paths)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.skip_paths:
            return await call_next(request)

        started = time.perf_counter()
        fields = {
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
            "content_length": _content_length(request),
        }

        try:
            response = await call_next(request)
        except Exception:
            fields["duration_ms"] = _elapsed_ms(started)
            access_logger.exception("Request crashed", extra=fields)
            raise

        fields["status_code"] = response.status_code
        fields["duration_ms"] = _elapsed_ms(started)
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        access_logger.log(level, f"{request.method} {request.url.path} {response.status_code}", extra=fields)
        return response


class UploadSizeLimitMiddleware(BaseHTTPMiddleware):
    """Refuses uploads whose declared Content-Length is over the ceiling.

    Runs before the multipart body is parsed, so an oversized request is never
    spooled to disk. Requests without a Content-Length fall through to the
    streaming check during staging.
    """

    def __init__(self, app: ASGIApp, limits: Iterable[tuple[str, int]]):
        super().__init__(app)
        self.limits = [(re.compile(pattern), max_bytes) for pattern, max_bytes in limits]

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        length = _content_length(request)
        if request.method == "POST" and length is not None:
            for pattern, max_bytes in self.limits:
                if pattern.fullmatch(request.url.path) and length > max_bytes + MULTIPART_OVERHEAD_BYTES:
                    access_logger.info(
                        "Upload refused before parsing",
                        extra={"path": request.url.path, "content_length": length, "max_bytes": max_bytes},
                    )
                    return JSONResponse(
                        status_code=PayloadTooLargeError.status_code,
                        content={
                            "error_code": PayloadTooLargeError.error_code,
                            "message": f"Upload exceeds maximum size of {max_bytes} bytes",
                        },
                    )
        return await call_next(request)


def _content_length(request: Request) -> Optional[int]:
    raw = request.headers.get("content-length")
    return int(raw) if raw and raw.isdigit() else None


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
