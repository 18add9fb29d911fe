"""Job service - business logic for background job scheduling and processing."""

from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from app.db.enums import JobStatus, JobType
from app.db.models import Job
from app.db.types import utcnow

RETRY_BASE_DELAY_SECONDS = 30


def schedule_job(
    db: Session,
    org_id: UUID | None,
    job_type: JobType,
    payload: dict,
    run_at: datetime | None = None,
    idempotency_key: str | None = None,
    max_attempts: int = 3,
) -> Job:
    """
    Schedule a new background job.

    If run_at is None, the job runs immediately.
    If idempotency_key is provided, duplicate jobs with same key will fail
    with IntegrityError (caller should catch and handle).
    """
    job = Job(
        organization_id=org_id,
        job_type=job_type.value,
        payload=payload,
        run_at=run_at or utcnow(),
        status=JobStatus.PENDING.value,
        max_attempts=max_attempts,
        idempotency_key=idempotency_key,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def get_pending_jobs(db: Session, limit: int = 10) -> list[Job]:
    """
    Get pending jobs that are due to run.

    Returns jobs where status='pending' and run_at <= now, ordered by run_at.
    """
    return (
        db.query(Job)
        .filter(
            Job.status == JobStatus.PENDING.value,
            Job.run_at <= utcnow(),
        )
        .order_by(Job.run_at)
        .limit(limit)
        .all()
    )


def get_job(db: Session, job_id: UUID) -> Job | None:
    return db.query(Job).filter(Job.id == job_id).first()


def mark_job_running(db: Session, job: Job) -> Job:
    """Mark a job as running (increment attempts)."""
    job.status = JobStatus.RUNNING.value
    job.attempts += 1
    db.commit()
    db.refresh(job)
    return job


def mark_job_completed(db: Session, job: Job) -> Job:
    """Mark a job as completed."""
    job.status = JobStatus.COMPLETED.value
    job.completed_at = utcnow()
    job.last_error = None
    db.commit()
    db.refresh(job)
    return job


def mark_job_failed(db: Session, job: Job, error: str) -> Job:
    """
    Mark a job as failed.

    If attempts < max_attempts, reset to pending with exponential back-off.
    """
    job.last_error = error[:2000]
    if job.attempts < job.max_attempts:
        job.status = JobStatus.PENDING.value
        delay = RETRY_BASE_DELAY_SECONDS * (2 ** max(job.attempts - 1, 0))
        job.run_at = utcnow() + timedelta(seconds=delay)
    else:
        job.status = JobStatus.FAILED.value
        job.completed_at = utcnow()
    db.commit()
    db.refresh(job)
    return job


def is_terminal_failure(job: Job) -> bool:
    return job.status == JobStatus.FAILED.value
