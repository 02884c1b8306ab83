"""
Batch dispatcher.

Turns an issue plus a page of recipients into rendered messages, hands them
to the email transport in chunks of EMAIL_BATCH_SIZE and writes the per-user
outcomes back to the delivery ledger. A chunk whose transport call raises or
times out is recorded as failed for every user in it; later chunks still run.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Union

import logfire

from src.core.config import settings
from src.models.delivery import DeliveryStatus
from src.models.issue import Issue
from src.models.user import User
from src.repositories.unit_of_work import AbstractUnitOfWork
from src.schemas.delivery import DeliveryStatusUpdate
from src.schemas.newsletter import BatchResult, EmailMessage, IssueContent, SendOutcome
from src.services.email import EmailTransport, render_newsletter_message

logger = logging.getLogger(__name__)


def chunked(items: Sequence, size: int) -> List[Sequence]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class BatchDispatcher:
    """Sends one page of recipients and reconciles the ledger."""

    def __init__(
        self,
        uow: AbstractUnitOfWork,
        transport: EmailTransport,
        batch_size: Optional[int] = None,
        batch_timeout: Optional[float] = None,
        batch_delay: Optional[float] = None,
    ):
        self.uow = uow
        self.transport = transport
        self.batch_size = batch_size or settings.EMAIL_BATCH_SIZE
        self.batch_timeout = batch_timeout if batch_timeout is not None else settings.EMAIL_BATCH_TIMEOUT_SECONDS
        self.batch_delay = batch_delay if batch_delay is not None else settings.EMAIL_BATCH_DELAY_SECONDS

    async def process_batch(
        self,
        users: Sequence[User],
        issue: Union[Issue, IssueContent],
        subject_id: int,
        sequence_number: int,
    ) -> BatchResult:
        """Send `issue` to `users`; returns aggregated sent/failed counts."""
        if not users:
            return BatchResult()

        # Rendered before any write: a rollback expires ORM instances
        issue = IssueContent.model_validate(issue)
        issue_id = issue.id
        messages = [
            render_newsletter_message(user, issue, subject_id, sequence_number)
            for user in users
        ]

        with logfire.span(
            "newsletter.process_batch",
            issue_id=issue_id,
            recipients=len(messages),
        ):
            created = await self.uow.deliveries.bulk_create_pending(
                [message.user_id for message in messages], issue_id
            )
            await self.uow.commit()
            logger.info(f"Prepared {len(created)} new pending deliveries for issue {issue_id}")

            result = BatchResult()
            chunks = chunked(messages, self.batch_size)
            for index, chunk in enumerate(chunks, start=1):
                chunk_result = await self._send_chunk(issue_id, chunk)
                result = result + chunk_result
                logger.info(
                    f"Issue {issue_id} batch {index}/{len(chunks)}: "
                    f"{chunk_result.total_sent} sent, {chunk_result.total_failed} failed"
                )
                if self.batch_delay and index < len(chunks):
                    await asyncio.sleep(self.batch_delay)

            return result

    async def _send_chunk(self, issue_id: int, messages: Sequence[EmailMessage]) -> BatchResult:
        user_ids = [message.user_id for message in messages]
        try:
            outcomes = await asyncio.wait_for(
                self.transport.send_batch(messages),
                timeout=self.batch_timeout,
            )
        except asyncio.TimeoutError:
            error = f"Transport timed out after {self.batch_timeout}s"
            logger.error(f"Batch for issue {issue_id} failed: {error}")
            await self._record_batch_failure(issue_id, user_ids, error)
            return BatchResult(total_failed=len(user_ids), failed_user_ids=user_ids)
        except Exception as e:
            logger.error(f"Batch for issue {issue_id} failed: {e}")
            await self._record_batch_failure(issue_id, user_ids, str(e) or type(e).__name__)
            return BatchResult(total_failed=len(user_ids), failed_user_ids=user_ids)

        return await self._reconcile(issue_id, user_ids, outcomes)

    async def _reconcile(self, issue_id: int, user_ids: List[str], outcomes: Sequence[SendOutcome]) -> BatchResult:
        by_user = {outcome.user_id: outcome for outcome in outcomes}
        now = datetime.now(timezone.utc)

        updates = []
        failed_ids = []
        for user_id in user_ids:
            outcome = by_user.get(user_id)
            if outcome is not None and outcome.status in (DeliveryStatus.SENT, DeliveryStatus.DELIVERED):
                updates.append(DeliveryStatusUpdate(
                    user_id=user_id,
                    status=outcome.status,
                    external_id=outcome.message_id,
                    sent_at=now,
                ))
            elif outcome is not None:
                logger.warning(f"Delivery of issue {issue_id} to user {user_id} failed: {outcome.error}")
                failed_ids.append(user_id)
                updates.append(DeliveryStatusUpdate(
                    user_id=user_id,
                    status=outcome.status,
                    external_id=outcome.message_id,
                    error_message=outcome.error or "Send failed",
                ))
            else:
                logger.warning(f"No outcome reported for issue {issue_id} user {user_id}")
                failed_ids.append(user_id)
                updates.append(DeliveryStatusUpdate(
                    user_id=user_id,
                    status=DeliveryStatus.FAILED,
                    error_message="No outcome reported by transport",
                ))

        try:
            await self.uow.deliveries.bulk_update_statuses(issue_id, updates)
            await self.uow.commit()
        except Exception as e:
            logger.error(f"Failed to record delivery outcomes for issue {issue_id}: {e}")
            await self.uow.rollback()
            raise

        return BatchResult(
            total_sent=len(user_ids) - len(failed_ids),
            total_failed=len(failed_ids),
            failed_user_ids=failed_ids,
        )

    async def _record_batch_failure(self, issue_id: int, user_ids: List[str], error: str) -> None:
        updates = [
            DeliveryStatusUpdate(user_id=user_id, status=DeliveryStatus.FAILED, error_message=error)
            for user_id in user_ids
        ]
        try:
            await self.uow.deliveries.bulk_update_statuses(issue_id, updates)
            await self.uow.commit()
        except Exception as e:
            logger.error(f"Failed to update failed delivery statuses for issue {issue_id}: {e}")
            await self.uow.rollback()
