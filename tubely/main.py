"""FastAPI application entry point."""

import logging
import re
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from tubely.core.config import settings
from tubely.core.database import close_db, create_db_and_tables
from tubely.core.exceptions import TubelyError
from tubely.core.logging import log_error, setup_logging
from tubely.core.middleware import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    UploadSizeLimitMiddleware,
)
from tubely.core.storage import get_storage
from tubely.modules.media.router import router as media_router
from tubely.modules.video.router import router as video_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_db_and_tables()
    logger.info("Database tables ready")
    yield
    await close_db()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="""
## Tubely media API

Upload videos and thumbnails for your video records. Videos are remuxed for
fast-start playback and classified by aspect ratio before being stored.

### Authentication

All endpoints except thumbnail retrieval and `/health` require a JWT Bearer token.

```
Authorization: Bearer <access_token>
```
    """,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "health", "description": "Health check endpoints"},
        {"name": "videos", "description": "Video records"},
        {"name": "media", "description": "Video and thumbnail upload, thumbnail retrieval"},
    ],
)

setup_logging(
    level="INFO" if not settings.DEBUG else "DEBUG",
    json_format=True,
    include_stack_trace=True,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(
    UploadSizeLimitMiddleware,
    limits=[
        (rf"{re.escape(settings.API_V1_PREFIX)}/videos/[^/]+", settings.MAX_VIDEO_UPLOAD_BYTES),
        (rf"{re.escape(settings.API_V1_PREFIX)}/thumbnails/[^/]+", settings.MAX_THUMBNAIL_UPLOAD_BYTES),
    ],
)
app.add_middleware(RequestLoggingMiddleware, skip_paths=("/health",))
app.add_middleware(CorrelationIdMiddleware)


@app.exception_handler(TubelyError)
async def tubely_error_handler(request: Request, exc: TubelyError) -> JSONResponse:
    if exc.status_code >= 500:
        log_error(logger, f"Request failed: {exc.message}", exception=exc, path=request.url.path)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error_code": exc.error_code, "message": exc.response_message},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({".".join(str(loc) for loc in error["loc"]) for error in exc.errors()})
    logger.info("Request validation failed", extra={"fields": fields, "path": request.url.path})
    return JSONResponse(
        status_code=400,
        content={
            "error_code": "BAD_REQUEST",
            "message": f"Invalid request: {', '.join(fields)}",
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log_error(logger, "Unhandled error", exception=exc, path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error_code": "INTERNAL_ERROR", "message": "Something went wrong"},
    )


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


app.include_router(video_router, prefix=settings.API_V1_PREFIX)
app.include_router(media_router, prefix=settings.API_V1_PREFIX)

# Local backend objects are served directly in development
if get_storage().is_local:
    app.mount("/assets", StaticFiles(directory=settings.LOCAL_STORAGE_PATH), name="assets")
