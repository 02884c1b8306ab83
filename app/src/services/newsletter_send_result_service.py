import logging
from datetime import datetime, timezone
from typing import List, Optional

from src.models.newsletter_send_result import NewsletterSendResult
from src.repositories.unit_of_work import AbstractUnitOfWork
from src.schemas.newsletter import BatchResult

logger = logging.getLogger(__name__)


class NewsletterSendResultService:
    """
    Broadcast history.

    Recording is best effort: failures are logged and reported as None so a
    reporting problem never interrupts a send.
    """

    def __init__(self, uow: AbstractUnitOfWork):
        self.uow = uow

    async def record_send_start(self, name: str, issue_id: int, start_time: Optional[datetime] = None) -> Optional[int]:
        try:
            record = await self.uow.send_results.create_start(
                name=name,
                issue_id=issue_id,
                start_time=start_time or datetime.now(timezone.utc),
            )
            record_id = record.id
            await self.uow.commit()
            return record_id
        except Exception as e:
            logger.error(f"Failed to record newsletter send start for issue {issue_id}: {e}")
            await self.uow.rollback()
            return None

    async def record_send_completion(self, record_id: Optional[int], result: BatchResult) -> Optional[NewsletterSendResult]:
        if record_id is None:
            logger.warning("No send result record to complete")
            return None
        try:
            record = await self.uow.send_results.update_completion(
                record_id,
                total_sent=result.total_sent,
                total_failed=result.total_failed,
                failed_user_ids=result.failed_user_ids,
                completion_time=datetime.now(timezone.utc),
            )
            await self.uow.commit()
            return record
        except Exception as e:
            logger.error(f"Failed to record newsletter send completion for record {record_id}: {e}")
            await self.uow.rollback()
            return None

    async def get_recent_results(self, limit: int = 20) -> List[NewsletterSendResult]:
        return await self.uow.send_results.find_latest(limit)
