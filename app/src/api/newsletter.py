import logging
from typing import List

from fastapi import APIRouter, Depends, Query

from src.core.service_dependencies import get_newsletter_service, get_send_result_service, get_unit_of_work
from src.core.exceptions import NotFoundError
from src.repositories.unit_of_work import SqlAlchemyUnitOfWork
from src.schemas.delivery import IssueDeliveryMetrics
from src.schemas.newsletter import (
    BroadcastResult,
    NewsletterSendResultOut,
    ResendResult,
    SendToAdminRequest,
    SendToAdminResult,
)
from src.services.newsletter_send_result_service import NewsletterSendResultService
from src.services.newsletter_service import NewsletterService

router = APIRouter(prefix="/api/admin/newsletter", tags=["newsletter"])
logger = logging.getLogger(__name__)


@router.post("/send-to-admin", response_model=SendToAdminResult, summary="Send a preview to the admin")
async def send_to_admin(
    request: SendToAdminRequest,
    newsletter_service: NewsletterService = Depends(get_newsletter_service),
):
    return await newsletter_service.send_to_admin(request.topic_id, request.sequence_number)


@router.post("/send-all/{subject_id}", response_model=BroadcastResult, summary="Broadcast today's issue")
async def send_to_all_subscribers(
    subject_id: int,
    newsletter_service: NewsletterService = Depends(get_newsletter_service),
):
    """
    Run the full broadcast for a subject.

    Failures are reported in the body (`success: false`) rather than as an
    error status.
    """
    return await newsletter_service.send_to_all_subscribers(subject_id)


@router.post("/issues/{issue_id}/resend", response_model=ResendResult, summary="Resend to failed users")
async def resend_to_failed_users(
    issue_id: int,
    newsletter_service: NewsletterService = Depends(get_newsletter_service),
):
    return await newsletter_service.resend_to_failed_users(issue_id)


@router.get("/metrics", response_model=List[IssueDeliveryMetrics])
async def get_issue_metrics(
    limit: int = Query(default=10, ge=1, le=100),
    uow: SqlAlchemyUnitOfWork = Depends(get_unit_of_work),
):
    return await uow.deliveries.find_recent_issue_metrics(limit)


@router.get("/issues/{issue_id}/failed-users", response_model=List[str])
async def get_failed_users(
    issue_id: int,
    uow: SqlAlchemyUnitOfWork = Depends(get_unit_of_work),
):
    if await uow.issues.get_by_id(issue_id) is None:
        raise NotFoundError(f"Issue {issue_id} not found")
    return await uow.deliveries.find_failed_user_ids(issue_id)


@router.get("/send-results", response_model=List[NewsletterSendResultOut])
async def get_send_results(
    limit: int = Query(default=20, ge=1, le=100),
    send_result_service: NewsletterSendResultService = Depends(get_send_result_service),
):
    return await send_result_service.get_recent_results(limit)
