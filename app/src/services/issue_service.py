import logging
from datetime import datetime, timezone
from typing import Optional

from src.core.cache import Cache, get_cache, issue_summaries_key
from src.core.config import settings
from src.core.exceptions import NotFoundError, PreconditionFailedError
from src.models.issue import Issue, IssueStatus
from src.repositories.unit_of_work import AbstractUnitOfWork
from src.schemas.newsletter import IssueActions, IssueSummary, IssueSummaryPage
from src.services.issue_status_machine import (
    STATUS_DESCRIPTIONS,
    can_auto_approve,
    get_allowed_next_statuses,
    get_available_actions,
    validate_status_transition,
)

logger = logging.getLogger(__name__)


class IssueService:
    """Review actions on issues and read models for published ones."""

    def __init__(self, uow: AbstractUnitOfWork, cache: Optional[Cache] = None):
        self.uow = uow
        self.cache = cache if cache is not None else get_cache()

    async def _get(self, issue_id: int) -> Issue:
        issue = await self.uow.issues.get_by_id(issue_id)
        if issue is None:
            raise NotFoundError(f"Issue {issue_id} not found")
        return issue

    async def approve(self, issue_id: int) -> Issue:
        """draft -> approved; stamps approved_at."""
        issue = await self._get(issue_id)
        validate_status_transition(issue.status, IssueStatus.APPROVED)
        if not issue.content or not issue.html_content:
            raise PreconditionFailedError(f"Issue {issue_id} has no content to approve")

        issue = await self.uow.issues.update_status(
            issue_id, IssueStatus.APPROVED, approved_at=datetime.now(timezone.utc)
        )
        await self.uow.commit()
        logger.info(f"Issue {issue_id} approved")
        return issue

    async def auto_approve(self, issue_id: int) -> Issue:
        issue = await self._get(issue_id)
        if not can_auto_approve(issue.status):
            raise PreconditionFailedError(
                f"Issue {issue_id} cannot be auto-approved from status: {issue.status}"
            )
        issue = await self.approve(issue_id)
        logger.info(f"Issue {issue_id} auto-approved")
        return issue

    async def unapprove(self, issue_id: int) -> Issue:
        """approved -> draft; approved_at is kept."""
        issue = await self._get(issue_id)
        validate_status_transition(issue.status, IssueStatus.DRAFT)
        issue = await self.uow.issues.update_status(issue_id, IssueStatus.DRAFT)
        await self.uow.commit()
        logger.info(f"Issue {issue_id} moved back to draft")
        return issue

    async def get_actions(self, issue_id: int) -> IssueActions:
        issue = await self._get(issue_id)
        return IssueActions(
            issue_id=issue.id,
            status=issue.status,
            description=STATUS_DESCRIPTIONS[IssueStatus(issue.status)],
            allowed_transitions=get_allowed_next_statuses(issue.status),
            actions=get_available_actions(issue.status),
        )

    async def get_sent_issue(self, issue_id: int) -> Issue:
        issue = await self._get(issue_id)
        if issue.status != IssueStatus.SENT.value:
            raise NotFoundError(f"Issue {issue_id} has not been published")
        return issue

    async def get_issue_summaries(self, subject_id: int, page: int = 1, per_page: int = 20) -> IssueSummaryPage:
        """Sent issues of a subject, newest first; cached per page."""
        key = issue_summaries_key(subject_id, page, per_page)
        cached = await self.cache.get(key)
        if cached is not None:
            try:
                return IssueSummaryPage.model_validate(cached)
            except ValueError:
                logger.warning(f"Discarding malformed cached issue summaries for {key}")

        rows = await self.uow.issues.find_sent_summaries(subject_id, page, per_page)
        total = await self.uow.issues.count_sent(subject_id)
        result = IssueSummaryPage(
            subject_id=subject_id,
            page=page,
            per_page=per_page,
            total=total,
            items=[
                IssueSummary(
                    issue_id=issue.id,
                    title=issue.title,
                    sequence_order=topic.sequence_order,
                    sent_at=issue.sent_at,
                )
                for issue, topic in rows
            ],
        )
        await self.cache.setex(key, settings.ISSUE_SUMMARIES_CACHE_TTL, result.model_dump(mode="json"))
        return result
