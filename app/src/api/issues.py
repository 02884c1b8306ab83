import logging

from fastapi import APIRouter, Depends, Query

from src.core.config import settings
from src.core.service_dependencies import get_issue_service
from src.schemas.newsletter import IssueActions, IssueOut, IssueSummaryPage
from src.services.issue_service import IssueService

router = APIRouter(prefix="/api", tags=["issues"])
logger = logging.getLogger(__name__)


@router.get("/issues", response_model=IssueSummaryPage, summary="List sent issues")
async def list_sent_issues(
    subject_id: int = Query(default=settings.DEFAULT_SUBJECT_ID, gt=0),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=100),
    issue_service: IssueService = Depends(get_issue_service),
):
    """Published issues of a subject, newest first."""
    return await issue_service.get_issue_summaries(subject_id, page, per_page)


@router.get("/issues/{issue_id}", response_model=IssueOut, summary="Get a sent issue")
async def get_sent_issue(
    issue_id: int,
    issue_service: IssueService = Depends(get_issue_service),
):
    return await issue_service.get_sent_issue(issue_id)


@router.post("/admin/issues/{issue_id}/approve", response_model=IssueOut)
async def approve_issue(
    issue_id: int,
    issue_service: IssueService = Depends(get_issue_service),
):
    return await issue_service.approve(issue_id)


@router.post("/admin/issues/{issue_id}/unapprove", response_model=IssueOut)
async def unapprove_issue(
    issue_id: int,
    issue_service: IssueService = Depends(get_issue_service),
):
    return await issue_service.unapprove(issue_id)


@router.post("/admin/issues/{issue_id}/auto-approve", response_model=IssueOut)
async def auto_approve_issue(
    issue_id: int,
    issue_service: IssueService = Depends(get_issue_service),
):
    return await issue_service.auto_approve(issue_id)


@router.get("/admin/issues/{issue_id}/actions", response_model=IssueActions)
async def get_issue_actions(
    issue_id: int,
    issue_service: IssueService = Depends(get_issue_service),
):
    """Current status, its description and the actions it allows."""
    return await issue_service.get_actions(issue_id)
