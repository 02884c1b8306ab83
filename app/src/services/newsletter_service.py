"""
Send orchestration: admin preview, full broadcast and resend-to-failed.

All three paths share `ensure_issue_sendable` and go through the same
BatchDispatcher. Only the full broadcast advances the subject's sequence
pointer and moves the issue to `sent`.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional, Tuple

import logfire

from src.core.config import settings
from src.core.exceptions import NotFoundError, PreconditionFailedError, TransportFailure
from src.models.delivery import DeliveryStatus
from src.models.issue import Issue, IssueStatus
from src.models.newsletter_sequence import NewsletterSequence
from src.models.topic import Topic
from src.repositories.unit_of_work import AbstractUnitOfWork
from src.schemas.newsletter import (
    BatchResult,
    BroadcastResult,
    IssueContent,
    ResendResult,
    SendToAdminResult,
)
from src.services.batch_dispatcher import BatchDispatcher
from src.services.email import EmailTransport, get_email_transport, render_newsletter_message
from src.services.issue_status_machine import can_send, validate_status_transition
from src.services.newsletter_send_result_service import NewsletterSendResultService
from src.services.user_service import UserService

logger = logging.getLogger(__name__)


def ensure_issue_sendable(issue: Optional[Issue]) -> Issue:
    """Raise unless the issue exists, is approved and has both structured and rendered content."""
    if issue is None:
        raise NotFoundError("Newsletter not found for this topic")
    if not can_send(issue.status):
        raise PreconditionFailedError(
            f"Cannot send newsletter with status: {issue.status}. Newsletter must be approved first."
        )
    if not issue.content or not issue.html_content:
        raise PreconditionFailedError("Newsletter content is empty")
    return issue


class NewsletterService:
    """Entry points for sending issues."""

    def __init__(
        self,
        uow: AbstractUnitOfWork,
        transport: Optional[EmailTransport] = None,
        dispatcher: Optional[BatchDispatcher] = None,
        send_results: Optional[NewsletterSendResultService] = None,
        page_size: Optional[int] = None,
    ):
        self.uow = uow
        self.transport = transport or get_email_transport()
        self.dispatcher = dispatcher or BatchDispatcher(uow, self.transport)
        self.send_results = send_results or NewsletterSendResultService(uow)
        self.page_size = page_size or settings.DB_FETCH_SIZE

    async def get_todays_newsletter(self, subject_id: int) -> Tuple[Issue, NewsletterSequence, Topic]:
        """Issue at the subject's current sequence position, checked for sending."""
        sequence = await self.uow.sequences.get_or_create(subject_id)
        await self.uow.commit()

        topic = await self.uow.topics.find_by_subject_and_sequence(subject_id, sequence.current_sequence)
        if topic is None:
            raise NotFoundError(
                f"No topic found for subject {subject_id} and sequence {sequence.current_sequence}"
            )

        issue = await self.uow.issues.find_by_topic_id(topic.id)
        ensure_issue_sendable(issue)
        return issue, sequence, topic

    async def send_to_admin(self, topic_id: int, sequence_number: int) -> SendToAdminResult:
        """
        Send a preview of a topic's issue to the admin address.

        Stamps sent_at on the issue but leaves its status alone. No delivery
        row is written.
        """
        topic = await self.uow.topics.get_by_id(topic_id)
        if topic is None:
            raise NotFoundError(f"Topic {topic_id} not found")
        issue = ensure_issue_sendable(await self.uow.issues.find_by_topic_id(topic_id))
        admin = await UserService(self.uow).get_or_create_admin()

        logger.info(
            f"Sending newsletter to admin: topic={topic_id} sequence={sequence_number} "
            f"issue={issue.id} admin={admin.email}"
        )
        message = render_newsletter_message(
            admin, IssueContent.model_validate(issue), topic.subject_id, sequence_number
        )
        try:
            outcomes = await self.transport.send_batch([message])
        except Exception as e:
            raise TransportFailure(f"Failed to send newsletter to admin: {e}", e) from e

        outcome = outcomes[0] if outcomes else None
        if outcome is None or outcome.status not in (DeliveryStatus.SENT, DeliveryStatus.DELIVERED):
            error = outcome.error if outcome is not None else "No outcome reported by transport"
            raise TransportFailure(f"Failed to send newsletter to admin: {error}")

        await self.uow.issues.mark_sent_at(issue.id, datetime.now(timezone.utc))
        await self.uow.commit()
        return SendToAdminResult(success=True, issue_id=issue.id, message_id=outcome.message_id)

    async def _dispatch_to_all_users(self, issue: IssueContent, subject_id: int, sequence_number: int, results: BatchResult) -> int:
        """
        Page through every user and send to the eligible ones.

        Users without an active subscription, and users whose delivery for
        this issue already left pending, are skipped. Totals accumulate into
        `results` as pages complete; returns the number of skipped users.
        """
        issue_id = issue.id
        skipped = 0
        page = 1
        while True:
            logger.info(
                f"Getting user batch {(page - 1) * self.page_size + 1}-{page * self.page_size} for issue {issue_id}"
            )
            users = await self.uow.users.find_with_pagination(page, self.page_size)
            if not users:
                break

            user_ids = [user.id for user in users]
            active = set(await self.uow.subscriptions.filter_active_subscriber_ids(user_ids, subject_id))
            settled = set(await self.uow.deliveries.find_settled_user_ids(issue_id, user_ids))
            recipients = [user for user in users if user.id in active and user.id not in settled]
            skipped += len(users) - len(recipients)

            batch = await self.dispatcher.process_batch(recipients, issue, subject_id, sequence_number)
            results.extend(batch)

            if len(users) < self.page_size:
                break
            page += 1

        return skipped

    async def send_to_all_subscribers(self, subject_id: int) -> BroadcastResult:
        """
        Broadcast today's issue for a subject.

        Never raises: any error becomes a result with success=False, and the
        sequence pointer only moves once every page has been processed.
        """
        start = time.monotonic()
        results = BatchResult()
        record_id: Optional[int] = None
        logger.info(f"Starting daily newsletter delivery for subject {subject_id}")

        try:
            with logfire.span("newsletter.send_to_all_subscribers", subject_id=subject_id):
                issue, sequence, topic = await self.get_todays_newsletter(subject_id)
                content = IssueContent.model_validate(issue)
                issue_id = issue.id
                issue_status = issue.status
                current_sequence = sequence.current_sequence
                sequence_order = topic.sequence_order
                logger.info(
                    f"Newsletter selected: issue={issue_id} sequence={current_sequence} "
                    f"topic='{topic.title}' title='{issue.title}'"
                )

                record_id = await self.send_results.record_send_start(content.title, issue_id)
                skipped = await self._dispatch_to_all_users(content, subject_id, sequence_order, results)

                validate_status_transition(issue_status, IssueStatus.SENT)
                next_sequence = await self.uow.sequences.advance(subject_id, current_sequence)
                await self.uow.issues.update_status(issue_id, IssueStatus.SENT, sent_at=datetime.now(timezone.utc))
                await self.uow.commit()

            processed = results.processed
            success_rate = round(results.total_sent / processed * 100) if processed else 0
            logger.info(
                f"Newsletter delivery completed: issue={issue_id} sequence={current_sequence} "
                f"next={next_sequence} sent={results.total_sent} failed={results.total_failed} "
                f"skipped={skipped} success_rate={success_rate}% duration={time.monotonic() - start:.1f}s"
            )
            await self.send_results.record_send_completion(record_id, results)

            return BroadcastResult(
                success=True,
                total_sent=results.total_sent,
                total_failed=results.total_failed,
                failed_user_ids=results.failed_user_ids,
                issue_id=issue_id,
                sequence_number=current_sequence,
                processed_users=processed,
                skipped_users=skipped,
            )
        except Exception as e:
            logger.error(
                f"Newsletter delivery failed for subject {subject_id} after "
                f"{time.monotonic() - start:.1f}s: {e}"
            )
            await self.uow.rollback()
            if record_id is not None:
                await self.send_results.record_send_completion(record_id, results)
            return BroadcastResult(success=False, error=str(e) or type(e).__name__)

    async def resend_to_failed_users(self, issue_id: int) -> ResendResult:
        """Retry pending, failed and bounced deliveries of a sent issue."""
        logger.info(f"Starting newsletter resend for issue {issue_id}")

        found = await self.uow.issues.get_with_topic(issue_id)
        if found is None:
            raise NotFoundError(f"Issue {issue_id} not found")
        issue, topic = found
        if issue.status != IssueStatus.SENT.value:
            raise PreconditionFailedError(
                f"Cannot resend issue {issue_id} with status: {issue.status}. Only sent issues can be resent."
            )

        content = IssueContent.model_validate(issue)
        subject_id, sequence_order = topic.subject_id, topic.sequence_order
        users = await self.uow.deliveries.find_active_subscribers_with_failed_deliveries(issue_id)
        if not users:
            logger.info(f"No failed deliveries to resend for issue {issue_id}")
            return ResendResult(issue_id=issue_id)

        with logfire.span("newsletter.resend_to_failed_users", issue_id=issue_id, recipients=len(users)):
            result = await self.dispatcher.process_batch(users, content, subject_id, sequence_order)

        logger.info(
            f"Newsletter resend completed for issue {issue_id}: "
            f"{result.total_sent} sent, {result.total_failed} failed"
        )
        return ResendResult(
            success=result.total_failed == 0,
            total_sent=result.total_sent,
            total_failed=result.total_failed,
            failed_user_ids=result.failed_user_ids,
            issue_id=issue_id,
            resend_count=len(users),
        )
