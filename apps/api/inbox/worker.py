"""
Background worker for processing scheduled sync jobs.

Usage:
    python -m inbox.worker

The worker polls for pending jobs and processes them.
"""

import asyncio
import logging

from inbox.core.config import settings
from inbox.core.structured_logging import build_log_context, configure_logging
from inbox.db.session import SessionLocal
from inbox.jobs.registry import resolve_job_handler
from inbox.services import job_service

logger = logging.getLogger(__name__)


async def process_job(db, job) -> None:
    """Process a single job based on its type."""
    logger.info(
        "Processing job %s (type=%s, attempt=%s)",
        job.id,
        job.job_type,
        job.attempts,
        extra=build_log_context(user_id=job.user_id, job_id=job.id),
    )
    handler = resolve_job_handler(job.job_type)
    await handler(db, job)


async def run_pending_jobs(db, limit: int) -> int:
    """Run one batch of due jobs; returns how many were picked up."""
    jobs = job_service.get_pending_jobs(db, limit=limit)
    if jobs:
        logger.info("Found %s pending jobs", len(jobs))

    for job in jobs:
        try:
            job_service.mark_job_running(db, job)
            await asyncio.wait_for(
                process_job(db, job), timeout=settings.SYNC_JOB_TIMEOUT_SECONDS
            )
            job_service.mark_job_completed(db, job)
            logger.info("Job %s completed successfully", job.id)
        except Exception as e:
            db.rollback()
            job_service.mark_job_failed(db, job, str(e) or type(e).__name__)
            logger.error("Job %s failed: %s", job.id, type(e).__name__)
    return len(jobs)


async def worker_loop() -> None:
    """Main worker loop - polls for and processes pending jobs."""
    logger.info(
        "Worker starting (poll interval: %ss, batch size: %s)",
        settings.WORKER_POLL_INTERVAL_SECONDS,
        settings.WORKER_BATCH_SIZE,
    )

    while True:
        with SessionLocal() as db:
            try:
                await run_pending_jobs(db, settings.WORKER_BATCH_SIZE)
            except Exception:
                logger.exception("Error in worker loop")

        await asyncio.sleep(settings.WORKER_POLL_INTERVAL_SECONDS)


def main() -> None:
    """Entry point for the worker."""
    configure_logging(settings.LOG_LEVEL)
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker shutting down")


if __name__ == "__main__":
    main()
