"""Application configuration settings.

All configuration values are loaded from environment variables (.env file).
No sensitive values should be hardcoded here.
"""

from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    PROJECT_NAME: str = "Tubely API"
    VERSION: str = "0.1.0"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    PUBLIC_BASE_URL: str = "http://localhost:8091"

    # Database - REQUIRED
    DATABASE_URL: str

    # Security - REQUIRED (no defaults for sensitive values)
    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # CORS
    CORS_ORIGINS: list[str] = []

    # Storage Configuration
    # STORAGE_BACKEND: local, s3, minio
    STORAGE_BACKEND: str = "local"

    # Local Storage (when STORAGE_BACKEND=local)
    LOCAL_STORAGE_PATH: str = "./assets"

    # S3/MinIO/Compatible Storage (when STORAGE_BACKEND=s3 or minio)
    STORAGE_BUCKET: str = ""
    STORAGE_REGION: str = ""
    STORAGE_ACCESS_KEY: str = ""
    STORAGE_SECRET_KEY: str = ""
    STORAGE_ENDPOINT_URL: Optional[str] = None  # Required for MinIO
    STORAGE_USE_SSL: bool = True

    # CDN Configuration (optional, for any backend)
    CDN_DOMAIN: Optional[str] = None
    CDN_ENABLED: bool = False

    # Presigned URLs are recomputed on every read
    PRESIGNED_URL_TTL_SECONDS: int = 300

    # Media tools
    FFMPEG_PATH: str = "ffmpeg"
    FFPROBE_PATH: str = "ffprobe"
    MEDIA_TEMP_DIR: Optional[str] = None  # None -> system temp dir

    # Upload ceilings
    MAX_VIDEO_UPLOAD_BYTES: int = 1 << 30  # 1 GiB
    MAX_THUMBNAIL_UPLOAD_BYTES: int = 10 << 20  # 10 MiB

    # Subprocess timeout = base + per_mb * size, capped at max
    TOOL_TIMEOUT_BASE_SECONDS: float = 30.0
    TOOL_TIMEOUT_SECONDS_PER_MB: float = 0.5
    TOOL_TIMEOUT_MAX_SECONDS: float = 600.0

    # 0.0 keeps exact matching on the 4-decimal rounded ratio
    ASPECT_RATIO_TOLERANCE: float = 0.0

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
