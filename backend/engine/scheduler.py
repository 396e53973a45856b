"""APScheduler integration for FastAPI.

Runs the account collection job on a fixed interval inside the API process.
Deployments that trigger collection from an external cron set
``MON_COLLECTION_INTERVAL_MINUTES=0`` and call ``/api/cron/collect`` instead.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from backend.services.account_registry import AccountRegistry
from backend.store import Stores

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()

COLLECTION_JOB_ID = "collect_accounts"


def add_collection_job(stores: Stores, registry: AccountRegistry, interval_minutes: int):
    """Add or replace the collection job."""
    from backend.engine.collector import collect_and_log

    if scheduler.get_job(COLLECTION_JOB_ID):
        scheduler.remove_job(COLLECTION_JOB_ID)

    scheduler.add_job(
        collect_and_log,
        trigger=IntervalTrigger(minutes=interval_minutes),
        args=[stores, registry],
        id=COLLECTION_JOB_ID,
        name="Account collection",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=60,
    )
    logger.info(f"Scheduled account collection every {interval_minutes}m")


def start_scheduler(stores: Stores, registry: AccountRegistry, interval_minutes: int):
    """Start the scheduler; an interval of 0 leaves collection to the external cron."""
    if interval_minutes > 0:
        add_collection_job(stores, registry, interval_minutes)
    else:
        logger.info("In-process collection disabled; expecting external cron")

    scheduler.start()
    logger.info(f"Scheduler started with {len(scheduler.get_jobs())} jobs")


def stop_scheduler():
    """Shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
    logger.info("Scheduler stopped")


def get_scheduler_status() -> dict:
    """Return current scheduler state for the API."""
    jobs = scheduler.get_jobs()
    return {
        "running": scheduler.running,
        "job_count": len(jobs),
        "jobs": [
            {
                "id": j.id,
                "name": j.name,
                "next_run": str(j.next_run_time) if j.next_run_time else None,
                "trigger": str(j.trigger),
            }
            for j in jobs
        ],
    }
