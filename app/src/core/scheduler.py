"""
APScheduler integration for the Daily Issue service.
Runs the daily newsletter broadcast.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from src.core.config import settings
from src.commands.send_daily_newsletter import SendDailyResult, send_daily_newsletter

logger = logging.getLogger(__name__)

DAILY_SEND_JOB_ID = "daily_newsletter_send"

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


def create_scheduler() -> AsyncIOScheduler:
    """
    Create and configure the APScheduler instance.

    Returns:
        Configured AsyncIOScheduler instance
    """
    jobstores = {
        'default': MemoryJobStore()
    }

    executors = {
        'default': AsyncIOExecutor()
    }

    job_defaults = {
        'coalesce': True,  # Combine multiple pending runs into one
        'max_instances': 1,  # Never two broadcasts at once
        'misfire_grace_time': 300
    }

    return AsyncIOScheduler(
        jobstores=jobstores,
        executors=executors,
        job_defaults=job_defaults,
        timezone='UTC'
    )


async def setup_scheduler() -> AsyncIOScheduler:
    """
    Set up and start the scheduler with the daily send job.

    Returns:
        Started scheduler instance
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already exists, shutting down existing one")
        await shutdown_scheduler()

    scheduler = create_scheduler()

    if settings.DAILY_SEND_ENABLED:
        logger.info(
            f"Scheduling daily newsletter send at {settings.DAILY_SEND_HOUR:02d}:"
            f"{settings.DAILY_SEND_MINUTE:02d} UTC (subject {settings.DEFAULT_SUBJECT_ID})"
        )

        scheduler.add_job(
            send_daily_newsletter,
            trigger='cron',
            hour=settings.DAILY_SEND_HOUR,
            minute=settings.DAILY_SEND_MINUTE,
            kwargs={"subject_id": settings.DEFAULT_SUBJECT_ID},
            id=DAILY_SEND_JOB_ID,
            name='Daily Newsletter Send',
            replace_existing=True
        )
    else:
        logger.info("Daily send is disabled, skipping job scheduling")

    scheduler.start()
    logger.info("Scheduler started successfully")

    return scheduler


async def shutdown_scheduler():
    """
    Gracefully shutdown the scheduler.
    """
    global scheduler

    if scheduler is not None:
        logger.info("Shutting down scheduler...")
        scheduler.shutdown(wait=True)
        scheduler = None
        logger.info("Scheduler shut down complete")


def get_scheduler() -> Optional[AsyncIOScheduler]:
    return scheduler


async def trigger_daily_send(subject_id: Optional[int] = None) -> SendDailyResult:
    """
    Manually run the daily send outside the schedule.

    Returns:
        Send results dictionary
    """
    logger.info("Manually triggering daily newsletter send")
    return await send_daily_newsletter(subject_id)


def get_scheduler_status() -> dict:
    """
    Get the current status of the scheduler and its jobs.

    Returns:
        Dictionary with scheduler status information
    """
    if scheduler is None:
        return {
            "running": False,
            "jobs": []
        }

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            "trigger": str(job.trigger)
        })

    return {
        "running": scheduler.running,
        "jobs": jobs
    }
