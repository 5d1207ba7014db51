"""
APScheduler Configuration

Optional periodic forecast refresh. Change notifications are the primary
trigger; this job only adds a fixed-interval recompute on top of them when
FORECAST_REFRESH_INTERVAL_MINUTES > 0. It goes through the same
single-flight `refetch()` as every other trigger.
"""

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from inventory_forecast.config import settings

if TYPE_CHECKING:
    from inventory_forecast.services.forecasting.forecast_service import InventoryForecastService

logger = logging.getLogger(__name__)

REFRESH_JOB_ID = 'refresh_inventory_forecast'

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': 60,  # Allow 60 seconds grace time for misfires
}


def create_scheduler() -> AsyncIOScheduler:
    """Scheduler with its own job store, so instances never share jobs."""
    return AsyncIOScheduler(
        jobstores={'default': MemoryJobStore()},
        executors={'default': AsyncIOExecutor()},
        job_defaults=job_defaults,
        timezone=settings.SCHEDULER_TIMEZONE,
    )


scheduler = create_scheduler()


async def refresh_forecast_job(service: "InventoryForecastService") -> None:
    """Scheduled trigger: schedule a recompute and return immediately."""
    logger.debug("Scheduled forecast refresh")
    service.refetch()


def register_forecast_refresh_job(
    sched: AsyncIOScheduler,
    service: "InventoryForecastService",
    interval_minutes: int,
) -> bool:
    """
    Register the periodic refresh job.

    Returns:
        False when the interval disables the job
    """
    if interval_minutes <= 0:
        logger.info("Periodic forecast refresh disabled")
        return False

    sched.add_job(
        refresh_forecast_job,
        'interval',
        minutes=interval_minutes,
        args=[service],
        id=REFRESH_JOB_ID,
        name='Refresh inventory forecast',
        replace_existing=True,
    )
    logger.info(f"Forecast refresh job registered to run every {interval_minutes} minutes")
    return True


def start_scheduler(service: "InventoryForecastService") -> None:
    """Start the background job scheduler."""
    if scheduler.running:
        return

    if not register_forecast_refresh_job(
        scheduler, service, settings.FORECAST_REFRESH_INTERVAL_MINUTES
    ):
        return

    scheduler.start()
    logger.info("Background job scheduler started")

    for job in scheduler.get_jobs():
        logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler() -> None:
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Background job scheduler stopped")


def get_job_status():
    """Get status of all scheduled jobs."""
    jobs = scheduler.get_jobs()
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run_time': str(job.next_run_time) if getattr(job, 'next_run_time', None) else None,
            'trigger': str(job.trigger),
        }
        for job in jobs
    ]
