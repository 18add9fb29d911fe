"""Brief generation job handlers."""

from __future__ import annotations

import logging
from uuid import UUID

import anyio

logger = logging.getLogger(__name__)


def _task_id(job) -> UUID:
    task_id = job.payload.get("task_id") if job.payload else None
    if not task_id:
        raise ValueError("Missing task_id in generate_brief payload")
    return UUID(str(task_id))


async def process_generate_brief(db, job) -> None:
    """Compile a task brief and upload it through the storage tiers."""
    from app.services import brief_service

    task_id = _task_id(job)
    task = await anyio.to_thread.run_sync(brief_service.generate_and_store, db, task_id)
    logger.info("Brief stored for task %s at %s", task_id, task.brief_url)


def on_generate_brief_failed(db, job, error: str) -> None:
    """Final attempt failed: surface the failure on the task."""
    from app.services import brief_service

    try:
        task_id = _task_id(job)
    except ValueError:
        return
    brief_service.mark_brief_failed(db, task_id, error)
