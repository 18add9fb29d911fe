"""Jobs router - status polling for brief generation and product analysis."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.deps import get_current_session, get_db
from app.db.models import Job
from app.schemas.auth import CallerContext
from app.schemas.job import JobRead
from app.services import job_service, product_service, task_service

router = APIRouter()


def _payload_id(job: Job, key: str) -> UUID | None:
    raw = (job.payload or {}).get(key)
    if not raw:
        return None
    try:
        return UUID(str(raw))
    except ValueError:
        return None


def can_view_job(db: Session, session: CallerContext, job: Job) -> bool:
    """A job is visible to whoever can see the task or product it works on."""
    if session.unrestricted:
        return True
    task_id = _payload_id(job, "task_id")
    if task_id and task_service.get_task(db, session, task_id):
        return True
    product_id = _payload_id(job, "product_id")
    if product_id and product_service.get_product(db, session, product_id):
        return True
    return False


@router.get("/{job_id}", response_model=JobRead)
def get_job(
    job_id: UUID,
    session: CallerContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    job = job_service.get_job(db, job_id)
    # Hidden jobs look missing
    if not job or not can_view_job(db, session, job):
        raise HTTPException(status_code=404, detail="Job not found")
    return JobRead.model_validate(job)
