from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.newsletter_send_result import NewsletterSendResult
from src.repositories.base import BaseRepository


class NewsletterSendResultRepository(BaseRepository[NewsletterSendResult]):
    """Broadcast history rows."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, NewsletterSendResult)

    async def create_start(self, name: str, issue_id: int, start_time: datetime) -> NewsletterSendResult:
        return await self.create({
            "name": name,
            "issue_id": issue_id,
            "total_sent": 0,
            "total_failed": 0,
            "failed_user_ids": [],
            "start_time": start_time,
        })

    async def update_completion(
        self,
        result_id: int,
        total_sent: int,
        total_failed: int,
        failed_user_ids: Sequence[str],
        completion_time: datetime,
    ) -> Optional[NewsletterSendResult]:
        return await self.update(result_id, {
            "total_sent": total_sent,
            "total_failed": total_failed,
            "failed_user_ids": list(failed_user_ids),
            "completion_time": completion_time,
        })

    async def find_latest(self, limit: int = 20) -> List[NewsletterSendResult]:
        result = await self.db.execute(
            select(NewsletterSendResult)
            .order_by(NewsletterSendResult.start_time.desc(), NewsletterSendResult.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
