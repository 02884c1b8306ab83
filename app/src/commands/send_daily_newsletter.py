"""
Daily broadcast job.

Runs the full send for a subject in its own database session. The scheduler
calls `send_daily_newsletter`; the management CLI wraps the same functions.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, TypedDict

from src.core.config import settings
from src.core.database import get_db_session
from src.repositories.unit_of_work import SqlAlchemyUnitOfWork
from src.services.newsletter_service import NewsletterService

logger = logging.getLogger(__name__)


class SendDailyResult(TypedDict):
    """Result structure for the daily send job."""
    start_time: str
    subject_id: int
    success: bool
    issue_id: int
    sequence_number: int
    total_sent: int
    total_failed: int
    failed_user_ids: List[str]
    error: Optional[str]
    end_time: str
    duration_seconds: float


async def send_daily_newsletter(subject_id: Optional[int] = None) -> SendDailyResult:
    """
    Broadcast today's issue for a subject (DEFAULT_SUBJECT_ID when omitted).

    Returns:
        Dict with the broadcast outcome; never raises
    """
    subject_id = subject_id or settings.DEFAULT_SUBJECT_ID
    start_time = datetime.now(timezone.utc)
    logger.info(f"Starting daily newsletter send for subject {subject_id}...")

    results: SendDailyResult = {
        "start_time": start_time.isoformat(),
        "subject_id": subject_id,
        "success": False,
        "issue_id": 0,
        "sequence_number": 0,
        "total_sent": 0,
        "total_failed": 0,
        "failed_user_ids": [],
        "error": None,
        "end_time": "",
        "duration_seconds": 0.0,
    }

    try:
        async with get_db_session() as db:
            service = NewsletterService(SqlAlchemyUnitOfWork(db))
            broadcast = await service.send_to_all_subscribers(subject_id)

        results.update({
            "success": broadcast.success,
            "issue_id": broadcast.issue_id,
            "sequence_number": broadcast.sequence_number,
            "total_sent": broadcast.total_sent,
            "total_failed": broadcast.total_failed,
            "failed_user_ids": broadcast.failed_user_ids,
            "error": broadcast.error,
        })

    except Exception as e:
        results["error"] = f"Critical error during daily send: {str(e)}"
        logger.error(results["error"], exc_info=True)

    finally:
        end_time = datetime.now(timezone.utc)
        duration = (end_time - start_time).total_seconds()
        results["end_time"] = end_time.isoformat()
        results["duration_seconds"] = duration

        logger.info(
            f"Daily newsletter send completed in {duration:.2f}s. "
            f"Success: {results['success']}, "
            f"Sent: {results['total_sent']}, "
            f"Failed: {results['total_failed']}"
        )

    return results
