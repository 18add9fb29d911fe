"""
Background worker for processing scheduled jobs.

Usage:
    python -m app.worker

The worker polls for pending jobs (brief generation, product analysis) and
processes them. For production, run this as a separate process next to the
API (e.g., systemd service, Docker container).
"""

import asyncio
import logging

import sentry_sdk

from app.core.config import settings
from app.core.structured_logging import build_log_context
from app.db.session import SessionLocal
from app.jobs.registry import JOB_FAILURE_HOOKS, resolve_job_handler
from app.services import job_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = settings.WORKER_POLL_INTERVAL
BATCH_SIZE = settings.WORKER_BATCH_SIZE


async def process_job(db, job) -> None:
    """Process a single job based on its type."""
    logger.info(
        "Processing job %s (type=%s, attempt=%s)", job.id, job.job_type, job.attempts
    )
    handler = resolve_job_handler(job.job_type)
    await handler(db, job)


def _record_job_failure(db, job, error_msg: str) -> None:
    """Run the failure hook once the job will not be retried."""
    if not job_service.is_terminal_failure(job):
        return
    hook = JOB_FAILURE_HOOKS.get(job.job_type)
    if hook is None:
        return
    try:
        hook(db, job, error_msg)
    except Exception:
        db.rollback()
        logger.exception(
            "Failure hook raised for job %s",
            job.id,
            extra=build_log_context(job_id=str(job.id), route="worker", method="background"),
        )


async def process_jobs_once(db, limit: int = BATCH_SIZE) -> int:
    """Run one batch of due jobs. Returns the number of jobs attempted."""
    jobs = job_service.get_pending_jobs(db, limit=limit)
    if jobs:
        logger.info("Found %s pending jobs", len(jobs))

    for job in jobs:
        try:
            job_service.mark_job_running(db, job)
            await process_job(db, job)
            job_service.mark_job_completed(db, job)
            logger.info("Job %s completed successfully", job.id)
        except Exception as e:
            db.rollback()
            error_msg = str(e) or type(e).__name__
            job_service.mark_job_failed(db, job, error_msg)
            logger.error(
                "Job %s failed: %s",
                job.id,
                type(e).__name__,
                extra=build_log_context(
                    job_id=str(job.id), org_id=str(job.organization_id or "")
                ),
            )
            _record_job_failure(db, job, error_msg)
    return len(jobs)


async def worker_loop() -> None:
    """Main worker loop - polls for and processes pending jobs."""
    logger.info(
        "Worker starting (poll interval: %ss, batch size: %s)",
        POLL_INTERVAL_SECONDS,
        BATCH_SIZE,
    )

    while True:
        with SessionLocal() as db:
            try:
                await process_jobs_once(db)
            except Exception as e:
                logger.error("Error in worker loop: %s", e)

        await asyncio.sleep(POLL_INTERVAL_SECONDS)


def main() -> None:
    """Entry point for the worker."""
    if settings.SENTRY_DSN:
        sentry_sdk.init(dsn=settings.SENTRY_DSN, environment=settings.ENV)
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker shutting down")
    except Exception:
        logger.exception(
            "Worker crashed",
            extra=build_log_context(route="worker", method="background"),
        )
        raise


if __name__ == "__main__":
    main()
