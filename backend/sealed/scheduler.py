"""Background scheduler for best-effort purging of unavailable secrets."""

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from sealed.config import settings
from sealed.database import SessionLocal
from sealed.services.secret_service import purge_unavailable_secrets

logger = structlog.get_logger()

scheduler = BackgroundScheduler()


def cleanup_job() -> None:
    """Delete expired and fully consumed secrets.

    Reads never depend on this job having run.
    """
    db = SessionLocal()
    try:
        purged = purge_unavailable_secrets(db)
        if purged:
            logger.info("cleanup_completed", purged=purged)
    except Exception as e:
        logger.error("cleanup_failed", error=str(e))
    finally:
        db.close()


def start_scheduler() -> None:
    """Start the background scheduler."""
    scheduler.add_job(
        cleanup_job,
        trigger=IntervalTrigger(hours=settings.cleanup_interval_hours),
        id="purge_unavailable_secrets",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("scheduler_started", interval_hours=settings.cleanup_interval_hours)


def shutdown_scheduler() -> None:
    """Shutdown the scheduler gracefully."""
    scheduler.shutdown()
    logger.info("scheduler_stopped")
