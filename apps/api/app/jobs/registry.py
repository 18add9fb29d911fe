"""Job handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from app.db.enums import JobType
from app.jobs.handlers import briefs, products

JobHandler = Callable[[object, object], Awaitable[None]]
FailureHook = Callable[[object, object, str], None]

JOB_HANDLERS: Mapping[str, JobHandler] = {
    JobType.GENERATE_BRIEF.value: briefs.process_generate_brief,
    JobType.ANALYZE_PRODUCT.value: products.process_analyze_product,
}

# Called once a job has exhausted its attempts. Product analysis records its
# own failure before re-raising, so it has no hook.
JOB_FAILURE_HOOKS: Mapping[str, FailureHook] = {
    JobType.GENERATE_BRIEF.value: briefs.on_generate_brief_failed,
}


def resolve_job_handler(job_type: str) -> JobHandler:
    handler = JOB_HANDLERS.get(job_type)
    if not handler:
        raise ValueError(f"Unknown job type: {job_type}")
    return handler
