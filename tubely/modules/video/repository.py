"""Video repository for database operations."""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tubely.core.exceptions import StorageError
from tubely.modules.video.models import Video


class RecordStoreError(StorageError):
    """Video record could not be written."""
    pass


class VideoRepository:
    """Repository for Video CRUD operations."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def create(
        self,
        user_id: uuid.UUID,
        title: str,
        description: Optional[str] = None,
    ) -> Video:
        """Create a new, asset-less video.

        Args:
            user_id: Owner's user UUID
            title: Video title
            description: Video description

        Returns:
            Video: Created video instance
        """
        video = Video(user_id=user_id, title=title, description=description)

        try:
            self.session.add(video)
            await self.session.commit()
            await self.session.refresh(video)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise RecordStoreError(f"Could not create video: {e}") from e

        return video

    async def get_by_id(self, video_id: uuid.UUID) -> Optional[Video]:
        """Get video by ID.

        Args:
            video_id: Video UUID

        Returns:
            Optional[Video]: Video if found, None otherwise
        """
        result = await self.session.execute(select(Video).where(Video.id == video_id))
        return result.scalar_one_or_none()

    async def get_by_user_id(
        self,
        user_id: uuid.UUID,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Video]:
        query = (
            select(Video)
            .where(Video.user_id == user_id)
            .order_by(Video.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def update(self, video: Video, **kwargs) -> Video:
        """Update video attributes and commit.

        Args:
            video: Video instance to update
            **kwargs: Attributes to update

        Returns:
            Video: Updated video instance

        Raises:
            RecordStoreError: If the write or commit fails
        """
        for key, value in kwargs.items():
            if hasattr(video, key):
                setattr(video, key, value)

        try:
            await self.session.commit()
            await self.session.refresh(video)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise RecordStoreError(f"Could not update video {video.id}: {e}") from e

        return video
