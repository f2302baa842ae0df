"""Video record model.

A video record is created empty (title and description only). The media
pipeline later fills in the storage references once an asset has been
uploaded successfully.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from tubely.core.database import Base


class Video(Base):
    """Video owned by a user, with references to its stored assets."""

    __tablename__ = "videos"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True
    )

    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Object store keys, never URLs; URLs are presigned on read
    video_key: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    aspect_class: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    thumbnail_key: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def is_owned_by(self, user_id: uuid.UUID) -> bool:
        return self.user_id == user_id

    def __repr__(self) -> str:
        return f"<Video(id={self.id}, title={self.title}, video_key={self.video_key})>"
