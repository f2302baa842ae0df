"""Pydantic schemas for video module."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 5000


class VideoCreateRequest(BaseModel):
    """Request schema for creating an empty video record."""

    title: str = Field(..., min_length=1, max_length=MAX_TITLE_LENGTH)
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)


class VideoResponse(BaseModel):
    """Video as returned by the API.

    ``video_url`` is a presigned URL computed at read time.
    """

    id: uuid.UUID
    user_id: uuid.UUID
    title: str
    description: Optional[str] = None
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    aspect_class: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ErrorResponse(BaseModel):
    error_code: str
    message: str
