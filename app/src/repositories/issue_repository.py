from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.issue import Issue, IssueStatus
from src.models.topic import Topic
from src.repositories.base import BaseRepository


class IssueRepository(BaseRepository[Issue]):
    """Repository for Issue model operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, Issue)

    async def find_by_topic_id(self, topic_id: int) -> Optional[Issue]:
        result = await self.db.execute(
            select(Issue).filter(Issue.topic_id == topic_id)
        )
        return result.scalar_one_or_none()

    async def get_with_topic(self, issue_id: int) -> Optional[Tuple[Issue, Topic]]:
        """Issue together with the topic it belongs to."""
        result = await self.db.execute(
            select(Issue, Topic)
            .join(Topic, Topic.id == Issue.topic_id)
            .filter(Issue.id == issue_id)
        )
        row = result.first()
        return (row[0], row[1]) if row else None

    async def update_status(self, issue_id: int, status: IssueStatus, **fields) -> Optional[Issue]:
        """Write a new status plus any extra columns (approved_at, sent_at, ...)."""
        return await self.update(issue_id, {"status": IssueStatus(status).value, **fields})

    async def mark_sent_at(self, issue_id: int, sent_at: datetime) -> Optional[Issue]:
        return await self.update(issue_id, {"sent_at": sent_at})

    async def find_sent_summaries(self, subject_id: int, page: int, per_page: int) -> List[Tuple[Issue, Topic]]:
        """Sent issues of a subject, newest topic first."""
        result = await self.db.execute(
            select(Issue, Topic)
            .join(Topic, Topic.id == Issue.topic_id)
            .filter(Topic.subject_id == subject_id, Issue.status == IssueStatus.SENT.value)
            .order_by(Topic.sequence_order.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        return [(row[0], row[1]) for row in result.all()]

    async def count_sent(self, subject_id: int) -> int:
        result = await self.db.execute(
            select(func.count(Issue.id))
            .join(Topic, Topic.id == Issue.topic_id)
            .filter(Topic.subject_id == subject_id, Issue.status == IssueStatus.SENT.value)
        )
        return result.scalar() or 0
