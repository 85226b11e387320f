"""APScheduler configuration for the exam status refresh job."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from exam_scheduler.core.config import settings
from exam_scheduler.core.database import SessionLocal
from exam_scheduler.services.exam import ExamScheduler

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: AsyncIOScheduler | None = None


def get_db_session() -> Session:
    """Get a database session for scheduler jobs."""
    return SessionLocal()


def refresh_exam_statuses_job() -> int:
    """
    Job to move exams through scheduled -> ongoing -> completed.
    Status is also resolved on every read; this keeps stored values current
    for anything that queries the table directly.
    """
    logger.info("Starting exam status refresh job")

    db = get_db_session()
    try:
        changed = ExamScheduler.for_session(db).refresh_statuses()
        db.commit()
        logger.info(f"Refreshed status of {changed} exams")
        return changed
    except Exception as e:
        logger.exception(f"Error refreshing exam statuses: {e}")
        db.rollback()
        return 0
    finally:
        db.close()


def init_scheduler() -> AsyncIOScheduler:
    """Initialize and configure the scheduler."""
    global scheduler

    scheduler = AsyncIOScheduler(
        timezone=settings.EXAM_TIMEZONE,
        job_defaults={
            "coalesce": True,  # Combine missed runs
            "max_instances": 1,  # Only one instance of each job at a time
            "misfire_grace_time": 300,
        },
    )

    scheduler.add_job(
        refresh_exam_statuses_job,
        trigger=IntervalTrigger(minutes=settings.STATUS_REFRESH_INTERVAL_MINUTES),
        id="refresh_exam_statuses",
        name="Refresh exam statuses",
        replace_existing=True,
    )

    logger.info(
        f"Scheduler initialized with status refresh every "
        f"{settings.STATUS_REFRESH_INTERVAL_MINUTES} minutes"
    )
    return scheduler


def start_scheduler():
    """Start the scheduler."""
    global scheduler
    if scheduler is None:
        scheduler = init_scheduler()

    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler gracefully."""
    global scheduler
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped")
