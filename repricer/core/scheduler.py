"""
Scheduler setup for periodic repricing runs.
"""
import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from repricer.api.dependencies import get_strategy_executor
from repricer.core.config import get_settings

logger = structlog.get_logger()

JOB_ID = "reprice_active_listings"

scheduler = AsyncIOScheduler(timezone="UTC")


async def scheduled_repricing():
    """Run every listing with an active strategy."""
    logger.info("Scheduled repricing started")

    try:
        batch = await get_strategy_executor().execute_all_active()
        logger.info(
            "Scheduled repricing completed",
            total=batch.total,
            succeeded=batch.succeeded,
            failed=batch.failed,
            price_changes=batch.price_changes,
        )
    except Exception as e:
        logger.error(
            "Scheduled repricing error",
            error=str(e),
            exc_info=True
        )


def setup_scheduler():
    """Register the repricing job and start the scheduler."""
    interval = get_settings().repricing_interval_minutes

    scheduler.add_job(
        scheduled_repricing,
        trigger=CronTrigger(minute=f"*/{interval}", timezone="UTC"),
        id=JOB_ID,
        name=f"Reprice active listings every {interval} minutes",
        replace_existing=True,
        misfire_grace_time=300,
        coalesce=True,  # collapse missed runs into one
        max_instances=1,
    )

    scheduler.start()
    logger.info("Scheduler started", job_id=JOB_ID, schedule=f"*/{interval} * * * *")


def shutdown_scheduler():
    """Stop the scheduler."""
    if scheduler.running:
        scheduler.shutdown()
    logger.info("Scheduler shutdown")
