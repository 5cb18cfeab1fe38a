"""APScheduler setup for the autobuy job.

A single cron-triggered job runs ``Buyer.run``. The job is limited to one
instance at a time; a trigger that fires while a run is still in progress is
skipped rather than queued.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from autobuy.exceptions import AllocationInfeasibleError, ConfigurationError, InsufficientCashError
from autobuy.models import RunReport

logger = logging.getLogger(__name__)

BUY_JOB_ID = "autobuy"

# Consecutive failures within the window before logging at error level
FAILURE_THRESHOLD = 3
FAILURE_WINDOW = timedelta(days=7)

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None

# Job failure tracking (job_id -> list of failure timestamps)
_job_failures: dict[str, list[datetime]] = defaultdict(list)


async def run_buy_job(buyer) -> Optional[RunReport]:
    """Run one buy; runs that end without orders for expected reasons are logged, not raised."""
    try:
        return await buyer.run()
    except InsufficientCashError as e:
        logger.info(f"{e}, nothing to do until the next run")
    except AllocationInfeasibleError as e:
        logger.warning(f"{e}, no orders placed")
    return None


def job_listener(event):
    """Listen to job execution events and track failures."""
    if event.exception:
        job_id = event.job_id
        failure_time = datetime.now()

        _job_failures[job_id].append(failure_time)
        cutoff = failure_time - FAILURE_WINDOW
        _job_failures[job_id] = [ft for ft in _job_failures[job_id] if ft > cutoff]

        recent_failures = len(_job_failures[job_id])
        if recent_failures >= FAILURE_THRESHOLD:
            logger.error(
                f"Job '{job_id}' has failed {recent_failures} times in the last "
                f"{FAILURE_WINDOW.days} days. Last error: {event.exception}"
            )
        else:
            logger.warning(f"Job '{job_id}' failed (failure {recent_failures}/{FAILURE_THRESHOLD}): {event.exception}")
    else:
        if event.job_id in _job_failures:
            _job_failures[event.job_id].clear()


def build_trigger(cron: str) -> CronTrigger:
    """
    Create a trigger from a five-field crontab expression.

    Raises:
        ConfigurationError: If the expression is invalid
    """
    try:
        return CronTrigger.from_crontab(cron)
    except ValueError as e:
        raise ConfigurationError(f"invalid schedule '{cron}': {e}") from e


def init_scheduler(buyer, cron: str) -> AsyncIOScheduler:
    """Initialize the scheduler with the autobuy job."""
    global scheduler

    scheduler = AsyncIOScheduler()
    scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
    scheduler.add_job(
        run_buy_job,
        build_trigger(cron),
        args=[buyer],
        id=BUY_JOB_ID,
        name="DEGIRO Autobuy",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=3600,
    )

    logger.info(f'Started DEGIRO Autobuy with cron schedule "{cron}"')
    return scheduler


async def buy_on_launch(buyer) -> Optional[RunReport]:
    """Run a buy immediately, outside the schedule."""
    logger.warning("Starting DEGIRO Autobuy on launch. Use with caution!")
    return await run_buy_job(buyer)


def start_scheduler():
    """Start the scheduler."""
    if scheduler and not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler."""
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
