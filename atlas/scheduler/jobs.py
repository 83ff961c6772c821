"""ATLAS — Scheduler Jobs.

APScheduler daily job that recomputes attribution at the configured hour.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from atlas.config import settings
from atlas.database import get_session
from atlas.analyzer.pipeline import run_analysis
from atlas.core.logging import get_logger

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


def daily_analysis_job():
    """Recompute the full attribution snapshot.

    Plain function: AsyncIOScheduler runs it in its thread pool, off the
    event loop that serves requests.
    """
    logger.info("Scheduled daily analysis starting...")
    sessions = get_session()
    try:
        session = next(sessions)
        insight = run_analysis(session=session)
        logger.info(
            f"Scheduled analysis complete. Run {insight.run_id}: "
            f"{insight.diagnostics.attributed_purchases} attributed purchases"
        )
    except Exception as e:
        logger.error(f"Scheduled analysis failed: {e}")
    finally:
        sessions.close()


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        daily_analysis_job,
        "cron",
        hour=settings.analysis_hour,
        minute=0,
        id="daily_analysis",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    scheduler.start()
    logger.info(f"Scheduler started. Daily analysis at {settings.analysis_hour}:00 UTC")


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
