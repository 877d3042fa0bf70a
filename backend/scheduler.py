import logging
from datetime import date

from apscheduler.schedulers.background import BackgroundScheduler

from config import settings
from database import SessionLocal
from exceptions import LibraryError
from fines import generate_overdue_fines
from repository import LibraryRepository

logger = logging.getLogger(__name__)


def run_overdue_fine_sweep():
    logger.info("[Scheduler] Running overdue fine sweep for %s", date.today())
    db = SessionLocal()
    try:
        created = generate_overdue_fines(LibraryRepository(db))
        logger.info("[Scheduler] Sweep complete. New fines: %s", len(created))
    except LibraryError as e:
        # The repository already rolled back; the next run will try again
        logger.error("[Scheduler] Sweep failed: %s", e)
    finally:
        db.close()


def build_scheduler(interval_minutes: int = settings.FINE_SWEEP_MINUTES):
    """Scheduler running the sweep every ``interval_minutes``, or None when disabled."""
    if interval_minutes <= 0:
        return None
    scheduler = BackgroundScheduler()
    scheduler.add_job(run_overdue_fine_sweep, "interval", minutes=interval_minutes, id="overdue_fines")
    return scheduler
