"""
APScheduler Configuration for Billing Maintenance

Runs the daily billing maintenance on a cron schedule.

Architecture:
- One AsyncIOScheduler per process, jobs stored in memory
- The cron job runs a health check, then BillingMaintenanceRunner.run_maintenance()
- Lock, timeout and connection failures schedule a single retry
- trigger_maintenance_now() is the manual entry point
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.exc import OperationalError
from zoneinfo import ZoneInfo

from lease_ledger.config import settings
from lease_ledger.core.exceptions import LockUnavailable, MaintenanceAlreadyRunning
from lease_ledger.database import ping_database
from lease_ledger.jobs.billing_maintenance import BillingMaintenanceRunner, get_runner
from lease_ledger.schemas.maintenance import MaintenanceMetrics, MaintenanceStatus, ScheduledJob

logger = logging.getLogger(__name__)

MAINTENANCE_JOB_ID = "daily_billing_maintenance"
RETRY_JOB_ID = "daily_billing_maintenance_retry"

# Failures worth one more attempt after MAINTENANCE_RETRY_DELAY_MINUTES
RETRYABLE_ERRORS = (LockUnavailable, asyncio.TimeoutError, TimeoutError, OperationalError, ConnectionError)

# Job stores
jobstores = {
    'default': MemoryJobStore()
}

# Executors
executors = {
    'default': AsyncIOExecutor(),
}

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': 300,
}

# Create scheduler
scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone=settings.SCHEDULER_TIMEZONE
)


def is_within_maintenance_window(now: Optional[datetime] = None) -> bool:
    """The end hour is inside the window, so 04:30 falls in a 0-4 window."""
    tz = ZoneInfo(settings.SCHEDULER_TIMEZONE)
    local = now.astimezone(tz) if now else datetime.now(tz)
    return settings.MAINTENANCE_WINDOW_START <= local.hour <= settings.MAINTENANCE_WINDOW_END


async def can_run_maintenance(now: Optional[datetime] = None) -> Tuple[bool, str]:
    """Health check before a run: the database must answer; the window is advisory."""
    try:
        await ping_database()
    except Exception as e:
        return False, f"Database connection failed: {e}"

    if not is_within_maintenance_window(now):
        logger.info(
            f"Outside preferred maintenance window "
            f"({settings.MAINTENANCE_WINDOW_START}:00-{settings.MAINTENANCE_WINDOW_END}:00)"
        )
        return True, "Outside preferred window but proceeding"

    return True, "OK"


async def run_scheduled_maintenance(runner: Optional[BillingMaintenanceRunner] = None):
    """Cron entry point. Never raises; failures are logged or retried."""
    runner = runner or get_runner()

    can_run, reason = await can_run_maintenance()
    if not can_run:
        logger.warning(f"Skipping scheduled maintenance: {reason}")
        return None

    try:
        return await runner.run_maintenance()
    except MaintenanceAlreadyRunning:
        logger.warning("Scheduled maintenance skipped: a run is already in progress")
    except RETRYABLE_ERRORS as e:
        logger.error(f"Scheduled maintenance failed: {str(e) or e.__class__.__name__}")
        schedule_retry()
    except Exception as e:
        logger.error(f"Scheduled maintenance failed: {e}")
    return None


async def retry_maintenance(runner: Optional[BillingMaintenanceRunner] = None):
    """One-off retry after a failed scheduled run."""
    runner = runner or get_runner()
    logger.info("Retrying billing maintenance")
    try:
        return await runner.run_maintenance()
    except Exception as e:
        logger.error(f"Maintenance retry failed: {str(e) or e.__class__.__name__}")
    return None


def schedule_retry(delay_minutes: Optional[int] = None) -> None:
    delay = delay_minutes if delay_minutes is not None else settings.MAINTENANCE_RETRY_DELAY_MINUTES
    run_date = datetime.now(ZoneInfo(settings.SCHEDULER_TIMEZONE)) + timedelta(minutes=delay)
    scheduler.add_job(
        retry_maintenance,
        'date',
        run_date=run_date,
        id=RETRY_JOB_ID,
        name='Billing maintenance retry',
        replace_existing=True,
    )
    logger.info(f"Maintenance retry scheduled at {run_date.isoformat()}")


async def trigger_maintenance_now(
    runner: Optional[BillingMaintenanceRunner] = None,
) -> MaintenanceMetrics:
    """
    Run maintenance immediately.

    A failed health check is logged but does not stop the run.
    MaintenanceAlreadyRunning and LockUnavailable propagate to the caller.
    """
    runner = runner or get_runner()
    logger.info("Manual maintenance trigger")

    can_run, reason = await can_run_maintenance()
    if not can_run:
        logger.warning(f"Health check failed ({reason}), proceeding with manual run")

    return await runner.run_maintenance()


def start_scheduler():
    """Start the background job scheduler with the daily maintenance job."""
    if not scheduler.running:
        scheduler.add_job(
            run_scheduled_maintenance,
            CronTrigger.from_crontab(settings.MAINTENANCE_CRON, timezone=settings.SCHEDULER_TIMEZONE),
            id=MAINTENANCE_JOB_ID,
            name='Daily billing maintenance',
            replace_existing=True,
        )

        scheduler.start()
        logger.info(
            f"Background job scheduler started "
            f"(cron '{settings.MAINTENANCE_CRON}', {settings.SCHEDULER_TIMEZONE})"
        )

        # Log all scheduled jobs
        jobs = scheduler.get_jobs()
        for job in jobs:
            logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")


def get_job_status(runner: Optional[BillingMaintenanceRunner] = None) -> MaintenanceStatus:
    """Get status of all scheduled jobs and the maintenance runner."""
    runner = runner or get_runner()
    jobs = scheduler.get_jobs()
    return MaintenanceStatus(
        scheduler_running=scheduler.running,
        state=runner.state.value,
        jobs=[
            ScheduledJob(
                id=job.id,
                name=job.name,
                next_run_time=str(job.next_run_time) if getattr(job, 'next_run_time', None) else None,
                trigger=str(job.trigger),
            )
            for job in jobs
        ],
        last_run=runner.last_metrics,
    )
