"""Job scheduling, retries and worker failure hooks."""

import uuid

import pytest

from app import worker
from app.db.enums import BriefStatus, JobStatus, JobType
from app.jobs.registry import resolve_job_handler
from app.services import brief_service, job_service, storage_service


def test_schedule_job_defaults(db, org):
    job = job_service.schedule_job(db, org.id, JobType.GENERATE_BRIEF, {"task_id": "x"})
    assert job.status == JobStatus.PENDING.value
    assert job.attempts == 0
    assert job_service.get_pending_jobs(db) == [job]


def test_failed_job_retries_until_max_attempts(db, org):
    job = job_service.schedule_job(db, org.id, JobType.GENERATE_BRIEF, {}, max_attempts=2)

    job_service.mark_job_running(db, job)
    job_service.mark_job_failed(db, job, "boom")
    assert job.status == JobStatus.PENDING.value
    assert job.run_at > job.created_at
    assert not job_service.is_terminal_failure(job)

    job_service.mark_job_running(db, job)
    job_service.mark_job_failed(db, job, "boom again")
    assert job.status == JobStatus.FAILED.value
    assert job.last_error == "boom again"
    assert job_service.is_terminal_failure(job)


def test_unknown_job_type_has_no_handler():
    with pytest.raises(ValueError):
        resolve_job_handler("send_email")


async def test_worker_generates_brief(db, org, client_user, make_task):
    task = make_task(client_user, org)
    job = brief_service.queue_brief_generation(db, task)

    processed = await worker.process_jobs_once(db)

    assert processed == 1
    db.refresh(job)
    db.refresh(task)
    assert job.status == JobStatus.COMPLETED.value
    assert task.brief_status == BriefStatus.SUCCEEDED.value
    assert task.brief_url.endswith(".txt")


async def test_worker_marks_brief_failed_after_last_attempt(db, org, client_user, make_task, monkeypatch):
    def fail_store(*args, **kwargs):
        raise storage_service.StorageError("File could not be stored")

    monkeypatch.setattr(storage_service, "store_file", fail_store)
    task = make_task(client_user, org)
    job = brief_service.queue_brief_generation(db, task)
    job.max_attempts = 1
    db.commit()

    await worker.process_jobs_once(db)

    db.refresh(job)
    db.refresh(task)
    assert job.status == JobStatus.FAILED.value
    assert task.brief_status == BriefStatus.FAILED.value
    assert task.brief_error == "File could not be stored"


async def test_worker_leaves_brief_pending_while_retrying(db, org, client_user, make_task, monkeypatch):
    def fail_store(*args, **kwargs):
        raise storage_service.StorageError("File could not be stored")

    monkeypatch.setattr(storage_service, "store_file", fail_store)
    task = make_task(client_user, org)
    job = brief_service.queue_brief_generation(db, task)

    await worker.process_jobs_once(db)

    db.refresh(job)
    db.refresh(task)
    assert job.status == JobStatus.PENDING.value
    assert task.brief_status == BriefStatus.PENDING.value


async def test_worker_fails_job_for_deleted_task(db, org):
    job = job_service.schedule_job(
        db, org.id, JobType.GENERATE_BRIEF, {"task_id": str(uuid.uuid4())}, max_attempts=1
    )

    await worker.process_jobs_once(db)

    db.refresh(job)
    assert job.status == JobStatus.FAILED.value
    assert "not found" in job.last_error
