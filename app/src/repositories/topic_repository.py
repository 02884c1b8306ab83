from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.topic import Topic
from src.repositories.base import BaseRepository


class TopicRepository(BaseRepository[Topic]):
    """Repository for a subject's ordered topics."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, Topic)

    async def find_by_subject_and_sequence(self, subject_id: int, sequence_order: int) -> Optional[Topic]:
        """The topic scheduled at `sequence_order` for a subject."""
        result = await self.db.execute(
            select(Topic)
            .filter(Topic.subject_id == subject_id, Topic.sequence_order == sequence_order)
            .order_by(Topic.id)
            .limit(1)
        )
        return result.scalar_one_or_none()
