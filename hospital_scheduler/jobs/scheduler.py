import logging
from datetime import timedelta
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session

from ..database import SessionLocal
from ..config import settings
from ..services.schedule import purge_cancelled, purge_schedule_locks
from ..services.validation import facility_today

logger = logging.getLogger(__name__)


def run_cleanup(db: Session, retention_days: Optional[int] = None) -> dict:
    """
    Deletes cancelled appointments older than the retention window and lock
    rows for days that are already past.
    """
    if retention_days is None:
        retention_days = settings.CANCELLED_RETENTION_DAYS
    today = facility_today()
    cutoff = today - timedelta(days=retention_days)
    deleted = purge_cancelled(db, cutoff)
    locks = purge_schedule_locks(db, today)
    logger.info("Cleanup: %d cancelled appointments before %s, %d lock rows", deleted, cutoff, locks)
    return {"cutoff": cutoff.isoformat(), "deleted_count": deleted, "lock_rows_deleted": locks}


def cleanup_job():
    db: Session = SessionLocal()
    try:
        run_cleanup(db)
    finally:
        db.close()


def start_scheduler():
    scheduler = BackgroundScheduler(timezone=settings.TIMEZONE)
    scheduler.add_job(cleanup_job, CronTrigger(hour=3, minute=0), id="cleanup", replace_existing=True)  # nightly
    scheduler.start()
    logger.info("Scheduler started (cleanup daily at 03:00 %s)", settings.TIMEZONE)
    return scheduler
