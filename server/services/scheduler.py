"""
Scheduler Service using APScheduler.
Runs the periodic jobs of the automation engine (schedule polling).
"""
from datetime import datetime, timedelta
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.jobstores.base import JobLookupError
from typing import Callable, Dict, Optional

from core.logging import get_logger

logger = get_logger(__name__)

_scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the singleton scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler(timezone="UTC")
    return _scheduler


def start_scheduler():
    """Start the scheduler if not already running."""
    scheduler = get_scheduler()
    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    global _scheduler
    scheduler = get_scheduler()
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler shutdown")
    _scheduler = None


def build_cron_trigger(cron_expression: str, timezone: str = "UTC") -> CronTrigger:
    """
    Build a CronTrigger from a cron expression.

    Args:
        cron_expression: 6-field cron expression (second minute hour day month weekday)
                        or 5-field (minute hour day month weekday)
        timezone: Timezone for schedule (default: UTC)

    Raises:
        ValueError: if the expression has invalid fields
    """
    parts = cron_expression.split()
    if not parts:
        raise ValueError("Empty cron expression")

    if len(parts) >= 6:
        return CronTrigger(
            second=parts[0],
            minute=parts[1],
            hour=parts[2],
            day=parts[3],
            month=parts[4],
            day_of_week=parts[5],
            timezone=timezone
        )

    # 5-field format, missing trailing fields default to '*'
    if len(parts) < 5:
        parts.extend(['*'] * (5 - len(parts)))
    return CronTrigger(
        second='0',
        minute=parts[0],
        hour=parts[1],
        day=parts[2],
        month=parts[3],
        day_of_week=parts[4],
        timezone=timezone
    )


def next_cron_fire_time(cron_expression: str, after: datetime) -> Optional[datetime]:
    """First fire time of a cron expression strictly after ``after`` (aware datetime)."""
    trigger = build_cron_trigger(cron_expression)
    return trigger.get_next_fire_time(None, after + timedelta(microseconds=1))


def register_interval_job(
    job_id: str,
    seconds: int,
    callback: Callable,
    **kwargs
) -> str:
    """
    Register a job that runs every ``seconds``.

    Args:
        job_id: Unique identifier for the job
        seconds: Interval between runs
        callback: Async function to call when job fires
        **kwargs: Additional arguments passed to the callback

    Returns:
        The job_id
    """
    scheduler = get_scheduler()
    scheduler.add_job(
        callback,
        trigger=IntervalTrigger(seconds=seconds, timezone="UTC"),
        id=job_id,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        kwargs=kwargs
    )
    logger.info("Registered interval job", job_id=job_id, seconds=seconds)
    return job_id


def remove_job(job_id: str) -> bool:
    """
    Remove a job from the scheduler.

    Returns:
        True if job was removed, False if not found
    """
    scheduler = get_scheduler()
    try:
        scheduler.remove_job(job_id)
        logger.info("Removed job", job_id=job_id)
        return True
    except JobLookupError:
        logger.warning("Job not found", job_id=job_id)
        return False


def get_job_info(job_id: str) -> Optional[Dict]:
    """Get information about a scheduled job, or None if not found."""
    scheduler = get_scheduler()
    job = scheduler.get_job(job_id)
    if job:
        return {
            "id": job.id,
            "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
            "trigger": str(job.trigger)
        }
    return None
